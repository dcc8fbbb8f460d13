"""Chat-completions client for OpenAI-compatible providers.

Handles per-role model lookup, retries with exponential backoff, error
classification and telemetry. Callers receive either an ``LLMResponse`` or a
typed ``LLMClientError``; configuration problems raise
``LLMConfigurationError`` or ``ModelConfigError`` instead.
"""

import asyncio
import time
from typing import Any

import httpx

from resight.config.settings import AppConfig
from resight.llm_client.models import ModelConfig, ModelDefinition
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
from resight.telemetry import get_logger
from resight.telemetry.events import MODEL_CALL_COMPLETED, MODEL_CALL_ERROR, MODEL_CALL_STARTED
from resight.telemetry.trace import TraceContext

log = get_logger(__name__)


def build_chat_request(
    model: str,
    messages: list[dict[str, Any]],
    max_tokens: int | None = None,
    temperature: float | None = None,
    response_format: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a ``/chat/completions`` payload, omitting unset parameters."""
    payload: dict[str, Any] = {"model": model, "messages": messages}
    if max_tokens is not None:
        payload["max_tokens"] = max_tokens
    if temperature is not None:
        payload["temperature"] = temperature
    if response_format is not None:
        payload["response_format"] = response_format
    return payload


def adapt_chat_response(response_data: dict[str, Any]) -> LLMResponse:
    """Normalize a chat-completions body.

    Raises:
        LLMInvalidResponse: If the body has no usable choice, or reports an error.
    """
    if response_data.get("error"):
        error = response_data["error"]
        message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
        raise LLMInvalidResponse(f"Provider returned error: {message}")
    try:
        choices = response_data.get("choices") or []
        if not choices:
            raise LLMInvalidResponse("Response has no choices")
        choice = choices[0]
        message = choice.get("message") or {}
        return LLMResponse(
            content=message.get("content") or "",
            finish_reason=choice.get("finish_reason"),
            usage=response_data.get("usage") or {},
            raw=response_data,
        )
    except (AttributeError, KeyError, TypeError) as e:
        raise LLMInvalidResponse(f"Invalid response format: {e}") from e


def _endpoint_for(base_url: str) -> str:
    base = base_url.rstrip("/")
    if base.endswith("/v1"):
        return f"{base}/chat/completions"
    return f"{base}/v1/chat/completions"


class ChatCompletionsClient:
    """Role-based chat-completions client.

    Args:
        base_url: Provider base URL used when a role has no endpoint override.
        api_key: Bearer token. Checked when a call is made, not at construction.
        timeout_seconds: Fallback read timeout.
        max_retries: Retries for timeouts, 429 and 5xx.
        model_config: Role configuration; loaded from ``models.yaml`` on first use when None.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        timeout_seconds: float = 45,
        max_retries: int = 2,
        model_config: ModelConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self._model_config = model_config
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: AppConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> "ChatCompletionsClient":
        return cls(
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key,
            timeout_seconds=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries,
            transport=transport,
        )

    def model_for(self, role: ModelRole) -> ModelDefinition:
        """Look up the model for ``role``.

        Raises:
            ModelConfigError: If models.yaml is missing or has no entry for the role.
        """
        from resight.config.model_loader import ModelConfigError, load_model_config  # noqa: PLC0415

        if self._model_config is None:
            self._model_config = load_model_config()
        model = self._model_config.models.get(role.value)
        if model is None:
            raise ModelConfigError(f"No model configured for role: {role.value}")
        return model

    async def respond(
        self,
        role: ModelRole,
        messages: list[dict[str, Any]],
        system_prompt: str | None = None,
        response_format: dict[str, Any] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> LLMResponse:
        """Make one chat-completions call for ``role``.

        Args:
            role: Model role.
            messages: Conversation messages.
            system_prompt: Prepended as a system message when given.
            response_format: OpenAI-style structured output constraint.
            max_tokens: Overrides the role's token cap.
            temperature: Overrides the role's temperature.
            trace_ctx: Trace context for log correlation.

        Returns:
            Normalized response.

        Raises:
            LLMConfigurationError: If no API key is configured.
            ModelConfigError: If the role has no model.
            LLMClientError: On transport or response-shape failures.
        """
        if not self.api_key:
            raise LLMConfigurationError(
                "No model API key configured; set RESIGHT_LLM_API_KEY to enable model-backed calls"
            )
        model = self.model_for(role)
        endpoint = _endpoint_for(model.endpoint or self.base_url)

        request_messages = list(messages)
        if system_prompt:
            request_messages.insert(0, {"role": "system", "content": system_prompt})
        payload = build_chat_request(
            model=model.id,
            messages=request_messages,
            max_tokens=max_tokens if max_tokens is not None else model.max_tokens,
            temperature=temperature if temperature is not None else model.temperature,
            response_format=response_format,
        )

        trace_ctx = trace_ctx or TraceContext.new_trace()
        _, span_id = trace_ctx.new_span()
        read_timeout = float(model.default_timeout or self.timeout_seconds)
        timeout = httpx.Timeout(connect=10.0, read=read_timeout, write=10.0, pool=10.0)
        headers = {"Authorization": f"Bearer {self.api_key}"}

        start = time.monotonic()
        log.info(
            MODEL_CALL_STARTED,
            role=role.value,
            model_id=model.id,
            endpoint=endpoint,
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )

        last_error: LLMClientError | None = None
        for attempt in range(self.max_retries + 1):
            retryable = False
            try:
                async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                    response = await client.post(endpoint, json=payload, headers=headers)
                    response.raise_for_status()
                    result = adapt_chat_response(response.json())
                log.info(
                    MODEL_CALL_COMPLETED,
                    role=role.value,
                    model_id=model.id,
                    latency_ms=int((time.monotonic() - start) * 1000),
                    attempts=attempt + 1,
                    prompt_tokens=result["usage"].get("prompt_tokens", 0),
                    completion_tokens=result["usage"].get("completion_tokens", 0),
                    trace_id=trace_ctx.trace_id,
                    span_id=span_id,
                )
                return result
            except httpx.TimeoutException:
                last_error = LLMTimeout(f"Request to {endpoint} timed out after {read_timeout}s")
                retryable = True
            except httpx.ConnectError as e:
                last_error = LLMConnectionError(f"Failed to connect to {endpoint}: {e}")
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status == 429:
                    last_error = LLMRateLimit(f"Rate limit exceeded ({status})")
                    retryable = True
                elif status >= 500:
                    last_error = LLMServerError(f"Server error {status}")
                    retryable = True
                else:
                    last_error = LLMClientError(f"HTTP error {status}")
            except httpx.RequestError as e:
                last_error = LLMConnectionError(f"Request error: {e}")
            except LLMInvalidResponse as e:
                last_error = e
            except ValueError as e:
                last_error = LLMInvalidResponse(f"Response body is not JSON: {e}")

            if not retryable or attempt >= self.max_retries:
                break
            wait_time = 2**attempt
            log.warning(
                "model_call_retry",
                role=role.value,
                attempt=attempt + 1,
                wait_time=wait_time,
                error_type=type(last_error).__name__,
                trace_id=trace_ctx.trace_id,
            )
            await asyncio.sleep(wait_time)

        assert last_error is not None
        log.error(
            MODEL_CALL_ERROR,
            role=role.value,
            model_id=model.id,
            endpoint=endpoint,
            error_type=type(last_error).__name__,
            error=str(last_error),
            latency_ms=int((time.monotonic() - start) * 1000),
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )
        raise last_error
