"""Application configuration settings.

This module provides the AppConfig class and settings singleton.
"""

from pathlib import Path

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from resight.config.env_loader import Environment, get_environment, load_env_files
from resight.config.validators import (
    resolve_path,
    validate_decision_strategy,
    validate_log_format,
    validate_log_level,
)

log = structlog.get_logger(__name__)


class AppConfig(BaseSettings):
    """Unified application configuration.

    Values come from ``RESIGHT_*`` environment variables (after ``.env`` files
    are applied) and fall back to the defaults below.
    """

    model_config = SettingsConfigDict(
        env_prefix="RESIGHT_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        protected_namespaces=(),
    )

    # Environment
    environment: Environment = Field(
        default_factory=get_environment, description="Current environment"
    )
    debug: bool = Field(default=False, description="Debug mode flag")
    project_name: str = Field(default="ReSight", description="Project name")
    version: str = Field(default="0.3.0", description="Application version")

    # Telemetry
    log_dir: Path = Field(default=Path("telemetry/logs"), description="Log directory path")
    log_level: str = Field(default="INFO", description="Console logging level")
    log_format: str = Field(default="json", description="Log format (json or console)")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        return validate_log_level(v)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        return validate_log_format(v)

    @field_validator(
        "log_dir", "model_config_path", "preferences_path", "playbook_path", mode="before"
    )
    @classmethod
    def resolve_paths(cls, v: Path | str) -> Path:
        """Resolve relative paths to absolute."""
        return resolve_path(v)

    # LLM client (OpenAI-compatible chat completions)
    llm_base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="Base URL for the chat completions API"
    )
    llm_api_key: str | None = Field(
        default=None, description="API key for the model provider; required for model-backed calls"
    )
    llm_timeout_seconds: int = Field(default=45, ge=1, description="Request timeout")
    llm_max_retries: int = Field(default=2, ge=0, description="Maximum retry attempts")
    model_config_path: Path = Field(
        default=Path("config/models.yaml"), description="Path to model role config file"
    )

    # Task router
    decision_strategy: str = Field(
        default="rules", description="Capability selection strategy: 'rules' or 'model'"
    )
    router_max_steps: int = Field(
        default=4, ge=1, description="Maximum decision-loop iterations per instruction"
    )

    @field_validator("decision_strategy")
    @classmethod
    def validate_decision_strategy(cls, v: str) -> str:
        """Validate decision strategy."""
        return validate_decision_strategy(v)

    # Coordination
    clarification_timeout_seconds: float = Field(
        default=30.0, gt=0, description="How long a clarification question waits for an answer"
    )
    trace_history_limit: int = Field(
        default=100, ge=1, description="Trace events retained for replay to new subscribers"
    )
    trace_heartbeat_seconds: float = Field(
        default=15.0, gt=0, description="Interval between SSE heartbeat comments"
    )

    # Preferences
    preferences_path: Path = Field(
        default=Path("data/user_context.json"), description="Durable preference document"
    )
    learned_flow_limit: int = Field(
        default=20, ge=1, description="Most recent learned flows kept in the preference document"
    )
    playbook_path: Path = Field(
        default=Path("config/playbook.yaml"), description="Exemplar flow catalog"
    )
    describe_pages: bool = Field(
        default=False, description="Narrate how each opened page looks (vision model role)"
    )

    # Automation backend
    backend_url: str | None = Field(
        default="http://localhost:3100", description="Automation backend base URL (None disables it)"
    )
    bare_backend_url: str | None = Field(
        default=None,
        description="Server for isolated bare sessions; None opens them on backend_url",
    )
    backend_api_key: str | None = Field(default=None, description="Automation backend API key")
    backend_timeout_seconds: float = Field(
        default=60.0, gt=0, description="Timeout for a single backend call"
    )

    # Service
    service_host: str = Field(default="0.0.0.0", description="Service host address")
    service_port: int = Field(default=9000, description="Service port number")
    service_url: str = Field(
        default="http://localhost:9000", description="Base URL the CLI uses to reach the service"
    )


_settings: AppConfig | None = None


def load_app_config() -> AppConfig:
    """Load and validate application configuration.

    Applies ``.env`` files first, then builds and validates ``AppConfig``.

    Returns:
        Validated AppConfig instance.

    Raises:
        ValidationError: If configuration validation fails.
    """
    log.info("loading_app_config", environment=get_environment().value)
    load_env_files()

    try:
        config = AppConfig()
    except Exception as e:
        log.error("app_config_load_failed", error=str(e), error_type=type(e).__name__)
        raise

    log.info(
        "app_config_loaded",
        environment=config.environment.value,
        debug=config.debug,
        log_level=config.log_level,
        decision_strategy=config.decision_strategy,
        backend_configured=config.backend_url is not None,
        bare_backend_configured=config.bare_backend_url is not None,
    )
    return config


def get_settings() -> AppConfig:
    """Get the application settings singleton."""
    global _settings
    if _settings is None:
        _settings = load_app_config()
    return _settings
