"""Configuration needed before the settings singleton can be built.

Kept free of telemetry imports: the logger itself calls in here.
"""

from __future__ import annotations

import os
from pathlib import Path

from resight.config.validators import resolve_path, validate_log_level


def get_bootstrap_log_level(default: str = "INFO") -> str:
    """Read the log level from ``RESIGHT_LOG_LEVEL`` without loading settings.

    Falls back to ``default`` when unset or invalid.
    """
    value = os.getenv("RESIGHT_LOG_LEVEL", default)
    try:
        return validate_log_level(value)
    except ValueError:
        return validate_log_level(default)


def get_bootstrap_log_dir() -> Path:
    """Read the log directory from ``RESIGHT_LOG_DIR`` without loading settings.

    Relative values resolve against the project root.
    """
    return resolve_path(os.getenv("RESIGHT_LOG_DIR", "telemetry/logs"))
