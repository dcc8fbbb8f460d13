"""Schema of config/models.yaml."""

from pydantic import BaseModel, Field


class ModelDefinition(BaseModel):
    """Model used for one role.

    Attributes:
        id: Provider model identifier.
        endpoint: Base URL override for this role; None uses ``settings.llm_base_url``.
        default_timeout: Read timeout in seconds.
        temperature: Sampling temperature; None leaves the provider default.
        max_tokens: Completion token cap.
    """

    id: str = Field(..., description="Model identifier")
    endpoint: str | None = Field(None, description="Optional base URL override")
    default_timeout: int = Field(30, ge=1, description="Default timeout in seconds")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)


class ModelConfig(BaseModel):
    """Models keyed by role name (``router``, ``safety``, ``vision``)."""

    models: dict[str, ModelDefinition] = Field(..., description="Model configurations by role")
