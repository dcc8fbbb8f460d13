"""Tests for the trace publisher."""

import asyncio
import threading

import pytest

from resight.coordination import TraceEvent, TraceStream


class TestSendEvent:
    """Test publishing and retained history."""

    def test_event_fields(self) -> None:
        stream = TraceStream()
        event = stream.send_event("Navigator", "Opening page")
        assert event.agent == "Navigator"
        assert event.message == "Opening page"
        assert event.timestamp > 0
        assert event.to_dict() == {
            "agent": "Navigator",
            "message": "Opening page",
            "timestamp": event.timestamp,
        }

    def test_history_capped_oldest_evicted(self) -> None:
        stream = TraceStream(history_limit=100)
        for i in range(150):
            stream.send_event("Orchestrator", f"step {i}")

        history = stream.get_history()
        assert len(history) == 100
        assert history[0].message == "step 50"
        assert history[-1].message == "step 149"

    def test_history_is_a_snapshot(self) -> None:
        stream = TraceStream()
        stream.send_event("Scribe", "one")
        snapshot = stream.get_history()
        stream.send_event("Scribe", "two")
        assert len(snapshot) == 1


class TestSubscribe:
    """Test replay-then-follow subscriptions."""

    def test_replays_history_then_follows(self) -> None:
        stream = TraceStream()
        stream.send_event("Orchestrator", "first")
        stream.send_event("Navigator", "second")
        received: list[TraceEvent] = []

        stream.subscribe(received.append)
        stream.send_event("Guardian", "third")

        assert [e.message for e in received] == ["first", "second", "third"]

    def test_without_replay(self) -> None:
        stream = TraceStream()
        stream.send_event("Orchestrator", "old")
        received: list[TraceEvent] = []

        stream.subscribe(received.append, replay=False)
        stream.send_event("Orchestrator", "new")

        assert [e.message for e in received] == ["new"]

    def test_unsubscribe_is_idempotent(self) -> None:
        stream = TraceStream()
        received: list[TraceEvent] = []
        unsubscribe = stream.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        stream.send_event("Orchestrator", "after")

        assert received == []
        assert stream.observer_count == 0

    def test_failing_observer_does_not_block_others(self) -> None:
        stream = TraceStream()
        received: list[TraceEvent] = []

        def broken(event: TraceEvent) -> None:
            raise RuntimeError("observer failed")

        stream.subscribe(broken)
        stream.subscribe(received.append)
        stream.send_event("Navigator", "still delivered")

        assert [e.message for e in received] == ["still delivered"]
        assert len(stream.get_history()) == 1

    def test_failing_observer_stays_subscribed(self) -> None:
        stream = TraceStream()
        calls: list[str] = []

        def flaky(event: TraceEvent) -> None:
            calls.append(event.message)
            if event.message == "first":
                raise RuntimeError("observer failed")

        stream.subscribe(flaky)
        stream.send_event("Navigator", "first")
        stream.send_event("Navigator", "second")

        assert calls == ["first", "second"]
        assert stream.observer_count == 1

    def test_no_gap_or_duplicate_under_concurrent_publishing(self) -> None:
        stream = TraceStream(history_limit=1000)
        received: list[TraceEvent] = []
        start = threading.Event()

        def publish() -> None:
            start.wait()
            for i in range(200):
                stream.send_event("Navigator", f"bg {i}")

        worker = threading.Thread(target=publish)
        worker.start()
        start.set()
        stream.subscribe(received.append)
        worker.join()

        messages = [e.message for e in received]
        assert messages == [f"bg {i}" for i in range(200)]


class TestSubscribeQueue:
    """Test the asyncio queue adapter used by the SSE endpoint."""

    @pytest.mark.asyncio
    async def test_queue_receives_history_and_live_events(self) -> None:
        stream = TraceStream()
        stream.send_event("Orchestrator", "before")

        queue, unsubscribe = stream.subscribe_queue()
        stream.send_event("Navigator", "after")

        first = await asyncio.wait_for(queue.get(), timeout=1)
        second = await asyncio.wait_for(queue.get(), timeout=1)
        assert (first.message, second.message) == ("before", "after")
        unsubscribe()
        assert stream.observer_count == 0

    @pytest.mark.asyncio
    async def test_events_from_another_thread(self) -> None:
        stream = TraceStream()
        queue, unsubscribe = stream.subscribe_queue()

        thread = threading.Thread(target=stream.send_event, args=("Guardian", "threaded"))
        thread.start()
        thread.join()

        event = await asyncio.wait_for(queue.get(), timeout=1)
        assert event.message == "threaded"
        unsubscribe()

    @pytest.mark.asyncio
    async def test_full_queue_drops_for_that_subscriber_only(self) -> None:
        stream = TraceStream()
        small, _ = stream.subscribe_queue(maxsize=1)
        large, _ = stream.subscribe_queue(maxsize=10)

        stream.send_event("Navigator", "one")
        stream.send_event("Navigator", "two")

        assert small.qsize() == 1
        assert large.qsize() == 2
