"""Last captured frame of the automation target, for polling observers."""

import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class HighlightRegion:
    """Bounding box of an element the agent is looking at, in page pixels."""

    x: float
    y: float
    width: float
    height: float
    label: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "label": self.label,
        }


@dataclass(frozen=True)
class FrameSnapshot:
    """What ``GET /screenshot`` returns.

    Attributes:
        frame: Base64-encoded image, or None before the first capture.
        regions: Highlighted regions for the frame.
        timestamp: Epoch milliseconds of the capture; 0 before the first one.
    """

    frame: str | None = None
    regions: tuple[HighlightRegion, ...] = field(default_factory=tuple)
    timestamp: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "screenshot": self.frame,
            "boundingBoxes": [region.to_dict() for region in self.regions],
            "timestamp": self.timestamp,
        }


class FrameStore:
    """Holds the latest frame. An unchanged timestamp means no new frame."""

    def __init__(self) -> None:  # noqa: D107
        self._lock = threading.Lock()
        self._snapshot = FrameSnapshot()

    def update_frame(
        self, frame: str, regions: Sequence[HighlightRegion] = ()
    ) -> FrameSnapshot:
        """Replace the frame and its highlighted regions together."""
        snapshot = FrameSnapshot(frame=frame, regions=tuple(regions), timestamp=int(time.time() * 1000))
        with self._lock:
            self._snapshot = snapshot
        return snapshot

    def snapshot(self) -> FrameSnapshot:
        with self._lock:
            return self._snapshot
