"""Load and validate the model role configuration (config/models.yaml)."""

from pathlib import Path

import structlog
from pydantic import ValidationError

from resight.config.loader import ConfigLoadError, load_yaml_file
from resight.llm_client.models import ModelConfig

log = structlog.get_logger(__name__)


class ModelConfigError(ConfigLoadError):
    """Raised when model configuration cannot be loaded or is invalid."""

    pass


def load_model_config(config_path: Path | str | None = None) -> ModelConfig:
    """Load the model-per-role configuration.

    Args:
        config_path: Path to models.yaml. Defaults to ``settings.model_config_path``.

    Returns:
        Validated ModelConfig.

    Raises:
        ModelConfigError: If the file is missing, unparsable, or fails validation.

    Example:
        >>> config = load_model_config()
        >>> config.models["safety"].id
        'google/gemini-2.0-flash-001'
    """
    if config_path is None:
        from resight.config.settings import get_settings  # noqa: PLC0415

        config_path = get_settings().model_config_path
    config_path = Path(config_path)

    if not config_path.is_file():
        raise ModelConfigError(f"Model config file not found: {config_path}")

    log.info("loading_model_config", config_path=str(config_path))
    content = load_yaml_file(config_path, error_class=ModelConfigError)
    if not content:
        log.warning("model_config_empty", config_path=str(config_path))
        return ModelConfig(models={})

    try:
        config = ModelConfig.model_validate(content)
    except ValidationError as e:
        problems = "\n".join(
            f"{' -> '.join(str(loc) for loc in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise ModelConfigError(f"Model configuration validation failed:\n{problems}") from None

    log.info(
        "model_config_loaded",
        roles=sorted(config.models),
        model_ids=[model.id for model in config.models.values()],
    )
    return config
