"""Tests for the clarification bridge."""

import asyncio
import threading

import pytest

from resight.coordination import NO_RESPONSE, ClarificationBridge


async def _wait_for_question(bridge: ClarificationBridge, question: str | None = None) -> None:
    async def poll() -> None:
        while True:
            pending = bridge.peek()
            if pending is not None and (question is None or pending.question == question):
                return
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout=1)


class TestAsk:
    """Test the ask/answer handshake."""

    @pytest.mark.asyncio
    async def test_answer_resolves_ask(self) -> None:
        bridge = ClarificationBridge(timeout_seconds=5)
        waiter = asyncio.create_task(bridge.ask("Which size?", ["Small", "Large"]))
        await _wait_for_question(bridge)

        pending = bridge.peek()
        assert pending is not None
        assert pending.to_dict() == {"question": "Which size?", "options": ["Small", "Large"]}

        assert bridge.answer("Large") is True
        assert await waiter == "Large"
        assert bridge.peek() is None

    @pytest.mark.asyncio
    async def test_timeout_resolves_to_no_response_once(self) -> None:
        bridge = ClarificationBridge(timeout_seconds=0.05)

        answer = await bridge.ask("Still there?")

        assert answer == NO_RESPONSE
        assert not bridge.has_pending()
        # A late answer finds nothing waiting
        assert bridge.answer("yes") is False

    @pytest.mark.asyncio
    async def test_per_call_timeout_override(self) -> None:
        bridge = ClarificationBridge(timeout_seconds=60)
        assert await bridge.ask("Quick?", timeout=0.01) == NO_RESPONSE

    def test_answer_without_question(self) -> None:
        assert ClarificationBridge().answer("hello") is False

    @pytest.mark.asyncio
    async def test_peek_does_not_resolve(self) -> None:
        bridge = ClarificationBridge(timeout_seconds=5)
        waiter = asyncio.create_task(bridge.ask("Color?"))
        await _wait_for_question(bridge)

        bridge.peek()
        bridge.peek()
        assert not waiter.done()

        bridge.answer("blue")
        assert await waiter == "blue"

    @pytest.mark.asyncio
    async def test_second_ask_supersedes_first(self) -> None:
        bridge = ClarificationBridge(timeout_seconds=5)
        first = asyncio.create_task(bridge.ask("First?"))
        await _wait_for_question(bridge, "First?")
        second = asyncio.create_task(bridge.ask("Second?"))
        await _wait_for_question(bridge, "Second?")

        assert await asyncio.wait_for(first, timeout=1) == NO_RESPONSE
        pending = bridge.peek()
        assert pending is not None and pending.question == "Second?"

        bridge.answer("two")
        assert await second == "two"

    @pytest.mark.asyncio
    async def test_cancelled_ask_releases_slot(self) -> None:
        bridge = ClarificationBridge(timeout_seconds=5)
        waiter = asyncio.create_task(bridge.ask("Cancel me?"))
        await _wait_for_question(bridge)

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert bridge.peek() is None

    @pytest.mark.asyncio
    async def test_answer_from_another_thread(self) -> None:
        bridge = ClarificationBridge(timeout_seconds=5)
        waiter = asyncio.create_task(bridge.ask("Threaded?"))
        await _wait_for_question(bridge)

        results: list[bool] = []
        thread = threading.Thread(target=lambda: results.append(bridge.answer("from thread")))
        thread.start()
        thread.join()

        assert results == [True]
        assert await asyncio.wait_for(waiter, timeout=1) == "from thread"
