"""Environment detection and layered ``.env`` loading."""

import os
from enum import Enum
from pathlib import Path

from dotenv import dotenv_values

from resight.config.validators import PROJECT_ROOT
from resight.telemetry import get_logger

log = get_logger(__name__)


class Environment(str, Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


_ENV_ALIASES = {
    "production": Environment.PRODUCTION,
    "prod": Environment.PRODUCTION,
    "staging": Environment.STAGING,
    "stage": Environment.STAGING,
    "test": Environment.TEST,
}


def get_environment() -> Environment:
    """Detect the current environment from ``APP_ENV``.

    Read straight from ``os.environ`` because it must be known before the
    settings model exists. Unknown or empty values mean development.
    """
    return _ENV_ALIASES.get(os.getenv("APP_ENV", "").lower(), Environment.DEVELOPMENT)


def load_env_files(project_root: Path | None = None) -> list[str]:
    """Load ``.env`` files; more specific files win over less specific ones.

    Order: ``.env``, ``.env.local``, ``.env.{env}``, ``.env.{env}.local``.
    Variables already present in the process environment are never overridden.

    Args:
        project_root: Directory holding the files. Defaults to the project root.

    Returns:
        Names of the files that were found and loaded.
    """
    root = project_root or PROJECT_ROOT
    env_name = get_environment().value

    loaded: list[str] = []
    merged: dict[str, str | None] = {}
    for name in (".env", ".env.local", f".env.{env_name}", f".env.{env_name}.local"):
        env_file = root / name
        if env_file.exists():
            merged.update(dotenv_values(env_file))
            loaded.append(name)

    for key, value in merged.items():
        if value is not None and key not in os.environ:
            os.environ[key] = value

    if loaded:
        log.info("env_files_loaded", environment=env_name, files=loaded, project_root=str(root))
    else:
        log.debug("no_env_files_found", environment=env_name, project_root=str(root))
    return loaded
