"""Structured logging configuration using structlog.

Two sinks are configured on the stdlib root logger:
- ``current.jsonl`` in the log directory, JSON, rotated at 50 MB
- stderr, rendered as JSON or as coloured console lines per ``RESIGHT_LOG_FORMAT``

Every event carries a UTC timestamp, the level, the logger name and a short
``component`` field taken from the last segment of the logger name.
"""

import logging
import logging.handlers
import os
import pathlib
import sys
from datetime import datetime, timezone
from typing import Any

import structlog


def _add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Stamp foreign (stdlib) records with a UTC ISO timestamp."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _add_component(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Derive ``component`` from the logger name.

    ``resight.agents.safety`` becomes ``safety``. Works for both structlog
    events (name already in ``event_dict``) and stdlib records.
    """
    logger_name = event_dict.get("logger") or getattr(logger, "name", None) or "unknown"
    event_dict["component"] = logger_name.rsplit(".", 1)[-1]
    return event_dict


_FOREIGN_PRE_CHAIN = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    _add_timestamp,
    _add_component,
]


def _file_handler(log_dir: pathlib.Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=str(log_dir / "current.jsonl"),
        maxBytes=50 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_FOREIGN_PRE_CHAIN,  # type: ignore[arg-type]
        )
    )
    return handler


def _console_handler(log_format: str) -> logging.Handler:
    renderer: Any
    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=_FOREIGN_PRE_CHAIN,  # type: ignore[arg-type]
        )
    )
    return handler


def configure_logging(
    log_level: str | None = None,
    log_dir: pathlib.Path | None = None,
    log_format: str | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Called lazily by ``get_logger`` on first use, and again by the service
    with validated settings. Values not passed are read from the bootstrap
    environment so this never needs the settings singleton.

    Args:
        log_level: Console level; the file sink always records INFO and above.
        log_dir: Directory for ``current.jsonl``; defaults to ``RESIGHT_LOG_DIR``.
            The file sink is skipped entirely when ``RESIGHT_LOG_TO_FILE=0``.
        log_format: ``json`` or ``console`` for the stderr sink.
    """
    from resight.config.bootstrap import (  # noqa: PLC0415
        get_bootstrap_log_dir,
        get_bootstrap_log_level,
    )

    level_name = log_level or get_bootstrap_log_level()
    fmt = (log_format or os.getenv("RESIGHT_LOG_FORMAT", "console")).lower()

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    if os.getenv("RESIGHT_LOG_TO_FILE", "1") != "0":
        file_handler = _file_handler(log_dir or get_bootstrap_log_dir())
        file_handler.setLevel(logging.INFO)
        root_logger.addHandler(file_handler)

    console_handler = _console_handler(fmt)
    console_handler.setLevel(getattr(logging, level_name, logging.INFO))
    root_logger.addHandler(console_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            _add_component,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:  # structlog.stdlib.BoundLogger
    """Get a structured logger, configuring logging on first call.

    Args:
        name: Logger name, normally ``__name__``.

    Returns:
        A structlog bound logger.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("task_started", trace_id="abc")
    """
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(name)
