"""Single-slot blocking question/answer handshake with the user.

The execution agent calls ``ask`` and suspends. The user's reply reaches
``answer`` out of band (the task router or ``POST /clarification``). Observers
poll ``peek`` to render the question.
"""

import asyncio
import threading
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from resight.telemetry import get_logger
from resight.telemetry.events import (
    CLARIFICATION_ANSWERED,
    CLARIFICATION_ASKED,
    CLARIFICATION_SUPERSEDED,
    CLARIFICATION_TIMED_OUT,
)

log = get_logger(__name__)

NO_RESPONSE = "no response"


@dataclass(frozen=True)
class PendingQuestion:
    """The question currently waiting for the user.

    Attributes:
        question_id: Identifier of this ask; answers are matched against it.
        question: Question text shown to the user.
        options: Suggested answers, if any.
        asked_at: Epoch seconds when the question was raised.
    """

    question_id: str
    question: str
    options: tuple[str, ...] | None
    asked_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "options": list(self.options) if self.options is not None else None,
        }


def _settle(future: asyncio.Future[str], value: str) -> bool:
    if future.done():
        return False
    future.set_result(value)
    return True


class ClarificationBridge:
    """Holds at most one pending question system-wide.

    A second ``ask`` while one is outstanding takes over the slot; the earlier
    caller is resolved with ``NO_RESPONSE`` straight away rather than left to
    run out its timer. Each ask only ever clears its own slot, so an expiring
    older question cannot wipe out a newer one.

    Args:
        timeout_seconds: Default wait before an unanswered question resolves to ``NO_RESPONSE``.
    """

    def __init__(self, timeout_seconds: float = 30.0) -> None:  # noqa: D107
        self.timeout_seconds = timeout_seconds
        self._lock = threading.Lock()
        self._pending: PendingQuestion | None = None
        self._future: asyncio.Future[str] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    async def ask(
        self,
        question: str,
        options: Sequence[str] | None = None,
        timeout: float | None = None,
    ) -> str:
        """Publish a question and wait for the answer.

        Args:
            question: Question text.
            options: Optional suggested answers.
            timeout: Override for the default wait, in seconds.

        Returns:
            The user's answer, or ``NO_RESPONSE`` on timeout or when superseded.

        Raises:
            asyncio.CancelledError: If the waiting task is cancelled; the slot is released.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str] = loop.create_future()
        pending = PendingQuestion(
            question_id=uuid.uuid4().hex,
            question=question,
            options=tuple(options) if options else None,
            asked_at=time.time(),
        )

        with self._lock:
            previous, previous_future, previous_loop = self._pending, self._future, self._loop
            self._pending, self._future, self._loop = pending, future, loop

        if previous is not None and previous_future is not None and previous_loop is not None:
            log.info(
                CLARIFICATION_SUPERSEDED,
                question_id=previous.question_id,
                superseded_by=pending.question_id,
            )
            self._resolve(previous_future, previous_loop, NO_RESPONSE)

        log.info(
            CLARIFICATION_ASKED,
            question_id=pending.question_id,
            question=question,
            options_count=len(pending.options or ()),
        )

        wait = self.timeout_seconds if timeout is None else timeout
        try:
            return await asyncio.wait_for(future, timeout=wait)
        except asyncio.TimeoutError:
            log.info(CLARIFICATION_TIMED_OUT, question_id=pending.question_id, timeout_s=wait)
            return NO_RESPONSE
        finally:
            self._release(pending.question_id)

    def answer(self, text: str) -> bool:
        """Resolve the pending question.

        Args:
            text: The user's answer.

        Returns:
            True if a pending question was resolved, False if none was waiting.
        """
        with self._lock:
            pending, future, loop = self._pending, self._future, self._loop
            if pending is None or future is None or loop is None or future.done():
                return False
            self._pending, self._future, self._loop = None, None, None

        resolved = self._resolve(future, loop, text)
        if resolved:
            log.info(CLARIFICATION_ANSWERED, question_id=pending.question_id)
        return resolved

    def peek(self) -> PendingQuestion | None:
        """Current pending question, without resolving it."""
        with self._lock:
            return self._pending

    def has_pending(self) -> bool:
        return self.peek() is not None

    def _release(self, question_id: str) -> None:
        with self._lock:
            if self._pending is not None and self._pending.question_id == question_id:
                self._pending, self._future, self._loop = None, None, None

    @staticmethod
    def _resolve(
        future: asyncio.Future[str], loop: asyncio.AbstractEventLoop, value: str
    ) -> bool:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            return _settle(future, value)
        if loop.is_closed():
            return False
        loop.call_soon_threadsafe(_settle, future, value)
        return True
