"""Configuration management for ReSight.

Environment variables (``RESIGHT_*``), layered ``.env`` files, and the
model role file are all read through this package.
"""

from resight.config.env_loader import Environment, get_environment
from resight.config.loader import ConfigLoadError
from resight.config.model_loader import ModelConfigError, load_model_config
from resight.config.settings import AppConfig, get_settings, load_app_config

__all__ = [
    "AppConfig",
    "get_settings",
    "load_app_config",
    "Environment",
    "get_environment",
    "load_model_config",
    "ConfigLoadError",
    "ModelConfigError",
]
