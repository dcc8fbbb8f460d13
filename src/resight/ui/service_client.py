"""Thin HTTP client for a running ReSight service."""

from collections.abc import AsyncIterable, AsyncIterator, Sequence
from typing import Any

import httpx
import orjson

# Default service URL, matching AppConfig.service_port
DEFAULT_SERVICE_URL = "http://localhost:9000"


async def iter_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[dict[str, Any]]:
    """Decode ``data:`` lines of a server-sent event stream. Comments and blank lines are skipped."""
    async for line in lines:
        if not line.startswith("data:"):
            continue
        payload = line[len("data:") :].strip()
        if not payload:
            continue
        try:
            event = orjson.loads(payload)
        except orjson.JSONDecodeError:
            continue
        if isinstance(event, dict):
            yield event


class ServiceClient:
    """HTTP client for the ReSight service.

    Usage:
        client = ServiceClient()
        result = await client.ask("find vanilla ice cream on target")
    """

    def __init__(  # noqa: D107
        self,
        base_url: str = DEFAULT_SERVICE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self, timeout: float | None = 30.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=self._transport)

    async def health_check(self) -> dict[str, Any]:
        """Check service health.

        Raises:
            httpx.ConnectError: If the service is not running.
        """
        async with self._client() as client:
            response = await client.get("/health")
            response.raise_for_status()
            return response.json()

    async def ask(
        self, instruction: str, history: Sequence[tuple[str, str]] | None = None
    ) -> dict[str, Any]:
        """Submit an instruction and wait for its TaskResult.

        Args:
            instruction: What to do.
            history: Optional ``(role, text)`` turns, oldest first.
        """
        body: dict[str, Any] = {"instruction": instruction}
        if history:
            body["history"] = [{"role": role, "text": text} for role, text in history]
        async with self._client(timeout=180.0) as client:
            response = await client.post("/orchestrator", json=body)
            response.raise_for_status()
            return response.json()

    async def pending_question(self) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.get("/clarification")
            response.raise_for_status()
            return response.json()

    async def answer(self, text: str) -> bool:
        """Answer the pending question. Returns whether one was waiting."""
        async with self._client() as client:
            response = await client.post("/clarification", json={"answer": text})
            response.raise_for_status()
            return bool(response.json().get("ok"))

    async def interrupt(self) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.post("/interrupt")
            response.raise_for_status()
            return response.json()

    async def trace_history(self) -> list[dict[str, Any]]:
        async with self._client() as client:
            response = await client.get("/trace/history")
            response.raise_for_status()
            return response.json()

    async def follow_trace(self) -> AsyncIterator[dict[str, Any]]:
        """Yield trace events from the live stream, history first, until the server closes it."""
        async with self._client(timeout=None) as client:
            async with client.stream("GET", "/thought-stream") as response:
                response.raise_for_status()
                async for event in iter_sse_events(response.aiter_lines()):
                    yield event
