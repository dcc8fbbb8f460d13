"""Logging wrapper around an automation backend.

``InstrumentedBackend`` implements the same interface as the backend it wraps
and records the operation, duration and outcome of every call.
"""

import time
from collections.abc import Awaitable
from typing import Any, TypeVar

from resight.browser.base import (
    ActionOutcome,
    AutomationBackend,
    BackendError,
    ObservedElement,
    PageElement,
    PageInfo,
    SessionFactory,
)
from resight.telemetry import get_logger
from resight.telemetry.events import (
    BACKEND_CALL_COMPLETED,
    BACKEND_CALL_FAILED,
    BACKEND_CALL_STARTED,
)

log = get_logger(__name__)

T = TypeVar("T")


class InstrumentedBackend:
    """Forwards every call to ``inner``, logging timing and outcome.

    Args:
        inner: Backend that does the work.
        label: Name used in log events (``primary``, ``bare``).
    """

    def __init__(self, inner: AutomationBackend, label: str = "primary") -> None:  # noqa: D107
        self.inner = inner
        self.label = label
        self.calls = 0
        self.failures = 0

    async def _call(self, operation: str, awaitable: Awaitable[T], **fields: Any) -> T:
        self.calls += 1
        start = time.monotonic()
        log.debug(BACKEND_CALL_STARTED, backend=self.label, operation=operation, **fields)
        try:
            result = await awaitable
        except BackendError as e:
            self.failures += 1
            log.warning(
                BACKEND_CALL_FAILED,
                backend=self.label,
                operation=operation,
                duration_ms=int((time.monotonic() - start) * 1000),
                error_type=type(e).__name__,
                error=str(e),
                **fields,
            )
            raise
        log.info(
            BACKEND_CALL_COMPLETED,
            backend=self.label,
            operation=operation,
            duration_ms=int((time.monotonic() - start) * 1000),
            **fields,
        )
        return result

    async def navigate(self, url: str) -> None:
        await self._call("navigate", self.inner.navigate(url), url=url)

    async def go_back(self) -> None:
        await self._call("go_back", self.inner.go_back())

    async def page_info(self) -> PageInfo:
        return await self._call("page_info", self.inner.page_info())

    async def observe(self, instruction: str) -> list[ObservedElement]:
        return await self._call("observe", self.inner.observe(instruction))

    async def act(self, instruction: str) -> ActionOutcome:
        return await self._call("act", self.inner.act(instruction))

    async def query_elements(self, selector: str, limit: int = 50) -> list[PageElement]:
        return await self._call(
            "query_elements", self.inner.query_elements(selector, limit), selector=selector
        )

    async def click(self, ref: str) -> None:
        await self._call("click", self.inner.click(ref), ref=ref)

    async def screenshot(self) -> str:
        return await self._call("screenshot", self.inner.screenshot())

    async def close(self) -> None:
        await self._call("close", self.inner.close())


class InstrumentedSessionFactory:
    """Wraps every session a factory opens in an ``InstrumentedBackend``."""

    def __init__(self, inner: SessionFactory, label: str = "bare") -> None:  # noqa: D107
        self.inner = inner
        self.label = label

    async def open_session(self) -> AutomationBackend:
        return InstrumentedBackend(await self.inner.open_session(), label=self.label)
