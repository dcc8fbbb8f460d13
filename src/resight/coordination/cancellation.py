"""Process-wide interrupt flag and per-role cancellation handles.

The flag answers "has the user asked us to stop?" and is polled between
steps. Handles let an interrupt reach into a call that is currently
suspended (a backend request, a clarification wait) and cancel it.
"""

import asyncio
import itertools
import threading
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from resight.telemetry import get_logger
from resight.telemetry.events import (
    INTERRUPT_CLEARED,
    INTERRUPT_REQUESTED,
    TASK_HANDLE_REGISTERED,
    TASK_HANDLE_RELEASED,
)

log = get_logger(__name__)

T = TypeVar("T")

CancelHandle = Callable[[], Any]


class TaskRole(str, Enum):
    """Roles that may hold a cancellation handle."""

    ROUTER = "router"
    EXECUTION = "execution"


class TaskInterrupted(Exception):
    """Raised inside a task chain when the user interrupted it."""

    def __init__(self, role: TaskRole | None = None) -> None:
        self.role = role
        super().__init__("Task interrupted" if role is None else f"{role.value} task interrupted")


class CancellationCoordinator:
    """Interrupt flag plus at most one cancellation handle per role.

    Registering a handle for a role replaces the previous one. Each
    registration returns a token; ``deregister`` only removes the handle when
    the token still matches, so a finishing older chain cannot remove the
    handle of the chain that superseded it.
    """

    def __init__(self) -> None:  # noqa: D107
        self._lock = threading.Lock()
        self._interrupted = False
        self._handles: dict[TaskRole, tuple[int, CancelHandle]] = {}
        self._tokens = itertools.count(1)

    def request_interrupt(self) -> None:
        """Set the interrupt flag without touching registered handles."""
        with self._lock:
            self._interrupted = True
        log.info(INTERRUPT_REQUESTED, flag_only=True)

    def clear_interrupt(self) -> None:
        """Clear the flag. Only a new, non-interrupt instruction should do this."""
        with self._lock:
            was_set = self._interrupted
            self._interrupted = False
        if was_set:
            log.info(INTERRUPT_CLEARED)

    def is_interrupted(self) -> bool:
        with self._lock:
            return self._interrupted

    def raise_if_interrupted(self, role: TaskRole | None = None) -> None:
        """Raise ``TaskInterrupted`` when the flag is set."""
        if self.is_interrupted():
            raise TaskInterrupted(role)

    def abort_active_task(self) -> int:
        """Set the flag and invoke every registered handle, across roles.

        Handles are called outside the lock; one failing handle does not stop
        the others.

        Returns:
            Number of handles invoked.
        """
        with self._lock:
            self._interrupted = True
            handles = [(role, handle) for role, (_, handle) in self._handles.items()]

        for role, handle in handles:
            try:
                handle()
            except Exception as e:
                log.warning(
                    "cancel_handle_failed", role=role.value, error=str(e), error_type=type(e).__name__
                )
        log.info(INTERRUPT_REQUESTED, handles=len(handles), roles=[r.value for r, _ in handles])
        return len(handles)

    def register(self, role: TaskRole, cancel: CancelHandle) -> int:
        """Register the cancellation handle for ``role``, superseding any prior one.

        Returns:
            Token to pass back to ``deregister``.
        """
        token = next(self._tokens)
        with self._lock:
            superseded = role in self._handles
            self._handles[role] = (token, cancel)
        log.debug(TASK_HANDLE_REGISTERED, role=role.value, token=token, superseded=superseded)
        return token

    def deregister(self, role: TaskRole, token: int) -> bool:
        """Remove the handle for ``role`` if ``token`` is still the current one.

        Returns:
            True if a handle was removed.
        """
        with self._lock:
            current = self._handles.get(role)
            if current is None or current[0] != token:
                return False
            del self._handles[role]
        log.debug(TASK_HANDLE_RELEASED, role=role.value, token=token)
        return True

    def active_roles(self) -> list[TaskRole]:
        with self._lock:
            return list(self._handles)

    async def run_abortable(self, role: TaskRole, awaitable: Awaitable[T]) -> T:
        """Run ``awaitable`` as a task whose cancellation handle is registered under ``role``.

        Args:
            role: Role to register the handle under.
            awaitable: Coroutine or future to run.

        Returns:
            The awaitable's result.

        Raises:
            TaskInterrupted: If the handle was invoked before the awaitable finished.
            asyncio.CancelledError: If the caller itself was cancelled.
        """
        task = asyncio.ensure_future(awaitable)
        token = self.register(role, task.cancel)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            raise TaskInterrupted(role) from None
        finally:
            self.deregister(role, token)
