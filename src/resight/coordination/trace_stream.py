"""Bounded-history publish/subscribe of step narration.

Every agent narrates what it is doing through ``TraceStream.send_event``. The
stream keeps the most recent events so that an observer connecting late (the
SSE endpoint, the CLI ``trace`` command) first sees what already happened and
then follows live events, without gaps or duplicates between the two.
"""

import asyncio
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from resight.telemetry import get_logger
from resight.telemetry.events import TRACE_OBSERVER_FAILED, TRACE_SUBSCRIBER_DROPPED

log = get_logger(__name__)


@dataclass(frozen=True)
class TraceEvent:
    """One narrated step.

    Attributes:
        agent: Display name of the narrating agent (``Orchestrator``, ``Navigator``...).
        message: Human-readable description of the step.
        timestamp: Creation time in epoch milliseconds.
    """

    agent: str
    message: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"agent": self.agent, "message": self.message, "timestamp": self.timestamp}


TraceObserver = Callable[[TraceEvent], None]
Unsubscribe = Callable[[], None]


class TraceStream:
    """Publisher with replay-then-follow subscription semantics.

    Publishing and subscribing share one re-entrant lock, so a new subscriber
    receives the retained history and is registered atomically with respect to
    concurrent ``send_event`` calls. Observers run synchronously on the
    publisher's thread and must not block.

    Args:
        history_limit: Number of events retained; older events are evicted first.
    """

    def __init__(self, history_limit: int = 100) -> None:  # noqa: D107
        self._history: deque[TraceEvent] = deque(maxlen=history_limit)
        self._observers: dict[int, TraceObserver] = {}
        self._next_id = 0
        self._lock = threading.RLock()

    @property
    def history_limit(self) -> int:
        return self._history.maxlen or 0

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    def send_event(self, agent: str, message: str) -> TraceEvent:
        """Record an event and fan it out to every current observer.

        Delivery is best-effort: an observer that raises is logged and skipped,
        and the remaining observers still receive the event.

        Args:
            agent: Narrating agent name.
            message: Step description.

        Returns:
            The recorded event.
        """
        event = TraceEvent(agent=agent, message=message, timestamp=int(time.time() * 1000))
        with self._lock:
            self._history.append(event)
            observers = list(self._observers.items())
            for observer_id, observer in observers:
                self._deliver(observer_id, observer, event)
        return event

    def get_history(self) -> list[TraceEvent]:
        """Snapshot of retained events, oldest first."""
        with self._lock:
            return list(self._history)

    def subscribe(self, observer: TraceObserver, replay: bool = True) -> Unsubscribe:
        """Register an observer.

        Args:
            observer: Callable invoked once per event.
            replay: Deliver the retained history before any live event.

        Returns:
            A callable that removes the observer. Calling it twice is harmless.
        """
        with self._lock:
            observer_id = self._next_id
            self._next_id += 1
            if replay:
                for event in self._history:
                    self._deliver(observer_id, observer, event)
            self._observers[observer_id] = observer

        def unsubscribe() -> None:
            with self._lock:
                self._observers.pop(observer_id, None)

        return unsubscribe

    def subscribe_queue(self, maxsize: int = 256) -> tuple[asyncio.Queue[TraceEvent], Unsubscribe]:
        """Subscribe an asyncio queue bound to the running loop.

        Used by streaming endpoints. Events published from another thread are
        handed to the loop thread-safely. When the queue is full the event is
        dropped for that subscriber only.

        Returns:
            The queue (already holding the replayed history) and its unsubscribe callable.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[TraceEvent] = asyncio.Queue(maxsize=maxsize)

        def put(event: TraceEvent) -> None:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                log.warning(TRACE_SUBSCRIBER_DROPPED, agent=event.agent, queue_size=maxsize)

        def observer(event: TraceEvent) -> None:
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                put(event)
            else:
                loop.call_soon_threadsafe(put, event)

        return queue, self.subscribe(observer)

    def _deliver(self, observer_id: int, observer: TraceObserver, event: TraceEvent) -> None:
        try:
            observer(event)
        except Exception as e:
            log.warning(
                TRACE_OBSERVER_FAILED,
                observer_id=observer_id,
                error=str(e),
                error_type=type(e).__name__,
            )
