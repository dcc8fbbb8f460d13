"""The shared coordination state owned by one running service."""

from dataclasses import dataclass, field

from resight.config.settings import AppConfig
from resight.coordination.cancellation import CancellationCoordinator
from resight.coordination.clarification import ClarificationBridge
from resight.coordination.frames import FrameStore
from resight.coordination.trace_stream import TraceStream


@dataclass
class Coordination:
    """Process-wide coordination objects, created once and injected into every agent.

    Attributes:
        trace: Step narration publisher.
        cancellation: Interrupt flag and cancellation handles.
        clarification: Pending-question slot.
        frames: Last captured frame and highlighted regions.
    """

    trace: TraceStream = field(default_factory=TraceStream)
    cancellation: CancellationCoordinator = field(default_factory=CancellationCoordinator)
    clarification: ClarificationBridge = field(default_factory=ClarificationBridge)
    frames: FrameStore = field(default_factory=FrameStore)

    @classmethod
    def from_settings(cls, settings: AppConfig) -> "Coordination":
        return cls(
            trace=TraceStream(history_limit=settings.trace_history_limit),
            clarification=ClarificationBridge(
                timeout_seconds=settings.clarification_timeout_seconds
            ),
        )
