"""Chat-completions client used by the safety agent and the model decision strategy."""

from resight.llm_client.client import ChatCompletionsClient
from resight.llm_client.models import ModelConfig, ModelDefinition
from resight.llm_client.parsing import extract_json_object, strip_code_fences
from resight.llm_client.types import (
    LLMClientError,
    LLMConfigurationError,
    LLMConnectionError,
    LLMInvalidResponse,
    LLMRateLimit,
    LLMResponse,
    LLMServerError,
    LLMTimeout,
    ModelRole,
)

__all__ = [
    "ChatCompletionsClient",
    "ModelConfig",
    "ModelDefinition",
    "ModelRole",
    "LLMResponse",
    "extract_json_object",
    "strip_code_fences",
    "LLMClientError",
    "LLMConfigurationError",
    "LLMConnectionError",
    "LLMInvalidResponse",
    "LLMRateLimit",
    "LLMServerError",
    "LLMTimeout",
]
