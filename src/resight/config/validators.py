"""Field validators shared by the settings model and bootstrap helpers."""

from pathlib import Path

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_LOG_FORMATS = frozenset({"json", "console"})
_DECISION_STRATEGIES = frozenset({"rules", "model"})

# src/resight/config -> project root
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent


def validate_log_level(value: str) -> str:
    """Validate and normalize a stdlib logging level name.

    Args:
        value: Level name in any case.

    Returns:
        Uppercased level name.

    Raises:
        ValueError: If the level is not a standard logging level.
    """
    if value.upper() not in _LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {value}")
    return value.upper()


def validate_log_format(value: str) -> str:
    """Validate log format is 'json' or 'console'."""
    if value.lower() not in _LOG_FORMATS:
        raise ValueError(f"log_format must be one of {sorted(_LOG_FORMATS)}, got {value}")
    return value.lower()


def validate_decision_strategy(value: str) -> str:
    """Validate the router decision strategy name ('rules' or 'model')."""
    normalized = value.strip().lower()
    if normalized not in _DECISION_STRATEGIES:
        raise ValueError(
            f"decision_strategy must be one of {sorted(_DECISION_STRATEGIES)}, got {value}"
        )
    return normalized


def resolve_path(value: Path | str) -> Path:
    """Resolve a possibly-relative path against the project root.

    Args:
        value: Path value (string or Path).

    Returns:
        Absolute, resolved Path.
    """
    path = Path(value) if isinstance(value, str) else value
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path.resolve()
