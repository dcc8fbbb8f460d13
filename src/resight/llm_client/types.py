"""Types and errors for the chat-completions client."""

from enum import Enum
from typing import Any, TypedDict


class ModelRole(str, Enum):
    """Model roles, mapped to models in config/models.yaml."""

    ROUTER = "router"
    SAFETY = "safety"
    VISION = "vision"


class LLMResponse(TypedDict):
    """Normalized chat-completions response.

    Attributes:
        content: Text of the first choice.
        finish_reason: Why generation stopped, when reported.
        usage: Token usage as reported by the provider.
        raw: Raw response body for debugging.
    """

    content: str
    finish_reason: str | None
    usage: dict[str, Any]
    raw: dict[str, Any]


class LLMConfigurationError(Exception):
    """Required model configuration (credential, role) is missing.

    Deliberately not an ``LLMClientError``: callers that degrade on transport
    failure must not swallow it.
    """

    pass


# Transport error hierarchy


class LLMClientError(Exception):
    """Base exception for model transport failures."""

    pass


class LLMTimeout(LLMClientError):
    """The request timed out."""

    pass


class LLMConnectionError(LLMClientError):
    """The provider could not be reached."""

    pass


class LLMRateLimit(LLMClientError):
    """The provider answered 429."""

    pass


class LLMServerError(LLMClientError):
    """The provider answered 5xx."""

    pass


class LLMInvalidResponse(LLMClientError):
    """The response body did not have the expected shape."""

    pass
