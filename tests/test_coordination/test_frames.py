"""Tests for the frame store and coordination wiring."""

from resight.config import AppConfig
from resight.coordination import Coordination, FrameStore, HighlightRegion


class TestFrameStore:
    """Test latest-frame storage."""

    def test_empty_snapshot(self) -> None:
        snapshot = FrameStore().snapshot()
        assert snapshot.to_dict() == {"screenshot": None, "boundingBoxes": [], "timestamp": 0}

    def test_update_replaces_frame_and_regions_together(self) -> None:
        store = FrameStore()
        store.update_frame("first", [HighlightRegion(1, 2, 3, 4, "old")])
        store.update_frame("second")

        snapshot = store.snapshot()
        assert snapshot.frame == "second"
        assert snapshot.regions == ()
        assert snapshot.timestamp > 0

    def test_region_wire_format(self) -> None:
        store = FrameStore()
        store.update_frame("img", [HighlightRegion(10, 20, 30, 40, "Add to cart")])
        boxes = store.snapshot().to_dict()["boundingBoxes"]
        assert boxes == [{"x": 10, "y": 20, "width": 30, "height": 40, "label": "Add to cart"}]


class TestCoordination:
    """Test construction from settings."""

    def test_from_settings(self) -> None:
        settings = AppConfig(trace_history_limit=7, clarification_timeout_seconds=3.5)
        coordination = Coordination.from_settings(settings)
        assert coordination.trace.history_limit == 7
        assert coordination.clarification.timeout_seconds == 3.5
        assert not coordination.cancellation.is_interrupted()
