"""Shared state that lets concurrent task chains cooperate.

- ``TraceStream``: replayable narration of every step
- ``CancellationCoordinator``: interrupt flag and abortable calls
- ``ClarificationBridge``: the single pending question to the user
- ``FrameStore``: latest frame of the automation target
"""

from resight.coordination.cancellation import (
    CancellationCoordinator,
    TaskInterrupted,
    TaskRole,
)
from resight.coordination.clarification import NO_RESPONSE, ClarificationBridge, PendingQuestion
from resight.coordination.context import Coordination
from resight.coordination.frames import FrameSnapshot, FrameStore, HighlightRegion
from resight.coordination.trace_stream import TraceEvent, TraceStream

__all__ = [
    "Coordination",
    "TraceStream",
    "TraceEvent",
    "CancellationCoordinator",
    "TaskInterrupted",
    "TaskRole",
    "ClarificationBridge",
    "PendingQuestion",
    "NO_RESPONSE",
    "FrameStore",
    "FrameSnapshot",
    "HighlightRegion",
]
