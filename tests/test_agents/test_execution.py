"""Tests for the execution agent and its tiers."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import FakeBackend, FakeSessions, model_reply

from resight.agents.execution import (
    STOPPED_MESSAGE,
    ExecutionAgent,
    describe_outcome,
    navigation_target,
)
from resight.agents.vision import VisionAgent
from resight.agents.memory_agent import MemoryAgent
from resight.agents.types import HistoryTurn, Instruction, TaskResult
from resight.browser import ActionOutcome, ObservedElement, PageElement, PageInfo
from resight.coordination import ClarificationBridge, Coordination
from resight.coordination.frames import HighlightRegion
from resight.llm_client import ChatCompletionsClient, LLMTimeout, ModelRole


def make_agent(
    backend: FakeBackend,
    coordination: Coordination,
    sessions: FakeSessions | None = None,
    memory: MemoryAgent | None = None,
    vision: VisionAgent | None = None,
) -> ExecutionAgent:
    return ExecutionAgent(
        backend,
        sessions or FakeSessions(),
        coordination,
        coordination.trace.send_event,
        memory=memory,
        flows=(),
        vision=vision,
    )


async def wait_for_question(coordination: Coordination) -> None:
    while coordination.clarification.peek() is None:
        await asyncio.sleep(0.01)


class TestNavigationTarget:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("https://example.com", "https://example.com"),
            ("example.org", "https://example.org"),
            ("go to target", "https://www.target.com"),
            ("Open YouTube.", "https://www.youtube.com"),
            ("visit example.org/about", "https://example.org/about"),
        ],
    )
    def test_directives(self, text: str, expected: str) -> None:
        assert navigation_target(text) == expected

    @pytest.mark.parametrize(
        "text", ["open the nutrition tab", "find coffee", "go to new york times"]
    )
    def test_not_directives(self, text: str) -> None:
        assert navigation_target(text) is None


class TestPrimaryTier:
    """Test AI-assisted execution on the primary session."""

    @pytest.mark.asyncio
    async def test_bare_address_opens_exact_page(
        self, execution: ExecutionAgent, backend: FakeBackend, coordination: Coordination
    ) -> None:
        result = await execution.execute("https://example.com")

        assert result.success
        assert result.message == "I opened Example Domain."
        assert backend.navigated() == ["https://example.com"]
        assert backend.acted == []
        assert coordination.frames.snapshot().frame == "aW1hZ2U="

    @pytest.mark.asyncio
    async def test_observe_then_act(self, coordination: Coordination) -> None:
        region = HighlightRegion(x=10, y=20, width=100, height=30, label="Add to cart")
        backend = FakeBackend(
            observed=[ObservedElement("Add to cart button", "#add", region)],
            outcomes=[ActionOutcome(success=True, message="Added it to your cart.")],
        )

        frames = coordination.frames
        frames.update_frame = MagicMock(wraps=frames.update_frame)  # type: ignore[method-assign]

        result = await make_agent(backend, coordination).execute("click add to cart")

        assert result == TaskResult.ok("Added it to your cart.")
        assert backend.acted == ["click add to cart"]
        captured_regions = [c.args[1] for c in frames.update_frame.call_args_list]
        assert [region] in captured_regions

    @pytest.mark.asyncio
    async def test_plan_navigates_before_acting(self, coordination: Coordination) -> None:
        backend = FakeBackend()

        await make_agent(backend, coordination).execute("find vanilla ice cream on target")

        assert backend.navigated() == [
            "https://www.target.com/s?searchTerm=vanilla%20ice%20cream"
        ]
        assert "EXECUTION PLAN" in backend.acted[0]

    @pytest.mark.asyncio
    async def test_guidance_includes_learned_flow_and_history(
        self, coordination: Coordination, memory: MemoryAgent
    ) -> None:
        memory.save_learned_flow("click add to cart", "clicked the yellow button")
        backend = FakeBackend()
        instruction = Instruction.of(
            "click add to cart", [HistoryTurn("user", "find vanilla ice cream")]
        )

        await make_agent(backend, coordination, memory=memory).execute(instruction)

        prompt = backend.acted[0]
        assert prompt.startswith("click add to cart\n\n")
        assert "clicked the yellow button" in prompt
        assert "user: find vanilla ice cream" in prompt

    @pytest.mark.asyncio
    async def test_clarifying_question_round_trip(self, coordination: Coordination) -> None:
        backend = FakeBackend(
            outcomes=[
                ActionOutcome(success=False, question="Which size?", options=("S", "M")),
                ActionOutcome(success=True, message="Added size M."),
            ]
        )
        task = asyncio.create_task(make_agent(backend, coordination).execute("pick a size"))

        await wait_for_question(coordination)
        pending = coordination.clarification.peek()
        assert pending is not None
        assert pending.options == ("S", "M")
        assert coordination.clarification.answer("M")

        result = await task
        assert result.message == "Added size M."
        assert backend.acted[1] == "pick a size\nThe user answered: M"

    @pytest.mark.asyncio
    async def test_unanswered_question_pauses(self) -> None:
        coordination = Coordination(clarification=ClarificationBridge(timeout_seconds=0.05))
        backend = FakeBackend(outcomes=[ActionOutcome(success=False, question="Which size?")])

        result = await make_agent(backend, coordination).execute("pick a size")

        assert not result.success
        assert result.message == "I didn't hear back, so I've paused here."
        assert len(backend.acted) == 1


class TestFallbackTiers:
    """Test tier ordering after a failure."""

    @pytest.mark.asyncio
    async def test_failed_act_falls_back_to_click(self, coordination: Coordination) -> None:
        backend = FakeBackend(
            outcomes=[ActionOutcome(success=False, message="Could not find it")],
            elements=[PageElement("e1", "Add to cart"), PageElement("e2", "Reviews")],
        )

        result = await make_agent(backend, coordination).execute("click add to cart")

        assert result.success
        assert result.message == 'I clicked "Add to cart".'
        assert ("click", "e1") in backend.calls

    @pytest.mark.asyncio
    async def test_failed_act_falls_back_to_search(self, coordination: Coordination) -> None:
        backend = FakeBackend(
            outcomes=[ActionOutcome(success=False)],
            cards=[PageElement("c1", "Vanilla Bean\n$4.99")],
        )

        result = await make_agent(backend, coordination).execute(
            "find vanilla ice cream on target"
        )

        assert result.message == "Here's what's at the top: Vanilla Bean ($4.99)."
        assert result.data == {"url": "https://www.target.com/s?searchTerm=vanilla+ice+cream"}

    @pytest.mark.asyncio
    async def test_fallback_navigation_skips_primary(
        self, execution: ExecutionAgent, backend: FakeBackend
    ) -> None:
        result = await execution.execute("weather in oakland", fallback_navigation=True)

        assert result.success
        assert result.message == "I opened the page: Example Domain"
        assert backend.acted == []
        assert backend.navigated() == ["https://www.google.com/search?q=weather+in+oakland"]

    @pytest.mark.asyncio
    async def test_unreachable_backend_uses_bare_session(
        self, coordination: Coordination
    ) -> None:
        sessions = FakeSessions(FakeBackend(title="Target"))
        backend = FakeBackend(unavailable=True)

        result = await make_agent(backend, coordination, sessions=sessions).execute(
            "find vanilla ice cream on target"
        )

        assert result.success
        assert result.message == "I opened the page: Target"
        assert sessions.opened == 1
        assert sessions.session.closed
        assert sessions.session.navigated() == [
            "https://www.target.com/s?searchTerm=vanilla+ice+cream"
        ]

    @pytest.mark.asyncio
    async def test_action_failure_never_opens_bare_session(
        self, coordination: Coordination
    ) -> None:
        sessions = FakeSessions()
        backend = FakeBackend(outcomes=[ActionOutcome(success=False)])

        await make_agent(backend, coordination, sessions=sessions).execute("weather in oakland")

        assert sessions.opened == 0

    @pytest.mark.asyncio
    async def test_every_tier_fails(self, coordination: Coordination) -> None:
        sessions = FakeSessions(FakeBackend(unavailable=True))

        result = await make_agent(
            FakeBackend(unavailable=True), coordination, sessions=sessions
        ).execute("weather in oakland")

        assert not result.success
        assert result.message == "Navigation failed: connection refused"
        assert sessions.session.closed



class WalledBackend(FakeBackend):
    """Serves a CAPTCHA page for every address starting with ``walled_prefix``."""

    def __init__(self, walled_prefix: str, **kwargs: object) -> None:  # noqa: D107
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.walled_prefix = walled_prefix

    async def page_info(self) -> PageInfo:
        info = await super().page_info()
        if self.url.startswith(self.walled_prefix):
            return PageInfo(url=self.url, title="Robot Check", text="Verify you are human")
        return info


class TestBotWalls:
    """Test that a bot check is never reported as an opened page."""

    @pytest.mark.asyncio
    async def test_walled_site_is_retried_as_web_search(self, coordination: Coordination) -> None:
        backend = WalledBackend("https://shop.example.com")

        result = await make_agent(backend, coordination).execute("https://shop.example.com")

        assert result.success
        assert result.message == "I opened the page: Example Domain"
        web_search = "https://www.google.com/search?q=https%3A%2F%2Fshop.example.com"
        assert backend.navigated() == [
            "https://shop.example.com",
            "https://shop.example.com",
            web_search,
        ]
        assert result.data == {"url": web_search}
        messages = [event.message for event in coordination.trace.get_history()]
        assert "Site is blocking automated access, trying another approach..." in messages

    @pytest.mark.asyncio
    async def test_walled_web_search_fails(self, coordination: Coordination) -> None:
        sessions = FakeSessions()
        backend = FakeBackend(title="Just a moment...", text="Checking your browser. Ray ID: 1")

        result = await make_agent(backend, coordination, sessions=sessions).execute(
            "weather in oakland", fallback_navigation=True
        )

        assert not result.success
        assert result.message == (
            "Navigation failed: https://www.google.com/search?q=weather+in+oakland"
            " blocked automated access (Cloudflare challenge)"
        )
        assert sessions.opened == 0

    @pytest.mark.asyncio
    async def test_wall_seen_in_card_text(self, coordination: Coordination) -> None:
        backend = FakeBackend(cards=[PageElement("c1", "Pardon Our Interruption")])

        result = await make_agent(backend, coordination).execute(
            "buy vanilla ice cream on target", fallback_navigation=True
        )

        assert not result.success
        assert "Bot detection (retail)" in result.message
        assert len(backend.navigated()) == 2

    @pytest.mark.asyncio
    async def test_bare_session_wall_fails_and_closes(self, coordination: Coordination) -> None:
        session = FakeBackend(title="Access Denied")
        sessions = FakeSessions(session)

        result = await make_agent(
            FakeBackend(unavailable=True), coordination, sessions=sessions
        ).execute("weather in oakland")

        assert not result.success
        assert "Access denied" in result.message
        assert session.closed


def vision_for(coordination: Coordination, llm: MagicMock) -> VisionAgent:
    return VisionAgent(llm, coordination.trace.send_event)


class TestPageDescription:
    """Test the visual description added after a successful tier."""

    @pytest.mark.asyncio
    async def test_success_carries_description(self, coordination: Coordination) -> None:
        llm = MagicMock(spec=ChatCompletionsClient)
        llm.respond = AsyncMock(return_value=model_reply("A calm white page with blue links."))
        agent = make_agent(FakeBackend(), coordination, vision=vision_for(coordination, llm))

        result = await agent.execute("https://example.com")

        assert result.message == "I opened Example Domain."
        assert result.data == {
            "url": "https://example.com",
            "visual": "A calm white page with blue links.",
        }
        role, messages = llm.respond.await_args.args
        assert role is ModelRole.VISION
        image = messages[0]["content"][0]["image_url"]["url"]
        assert image == "data:image/png;base64,aW1hZ2U="
        agents = [event.agent for event in coordination.trace.get_history()]
        assert "Vision" in agents

    @pytest.mark.asyncio
    async def test_model_failure_keeps_result(self, coordination: Coordination) -> None:
        llm = MagicMock(spec=ChatCompletionsClient)
        llm.respond = AsyncMock(side_effect=LLMTimeout("slow"))
        agent = make_agent(FakeBackend(), coordination, vision=vision_for(coordination, llm))

        result = await agent.execute("https://example.com")

        assert result == TaskResult.ok(
            "I opened Example Domain.", data={"url": "https://example.com"}
        )

    @pytest.mark.asyncio
    async def test_failure_is_not_described(self, coordination: Coordination) -> None:
        llm = MagicMock(spec=ChatCompletionsClient)
        llm.respond = AsyncMock()
        agent = make_agent(
            FakeBackend(unavailable=True),
            coordination,
            sessions=FakeSessions(FakeBackend(unavailable=True)),
            vision=vision_for(coordination, llm),
        )

        result = await agent.execute("weather in oakland")

        assert not result.success
        llm.respond.assert_not_awaited()

class TestInterrupts:
    @pytest.mark.asyncio
    async def test_interrupt_flag_stops_before_any_call(
        self, execution: ExecutionAgent, backend: FakeBackend, coordination: Coordination
    ) -> None:
        coordination.cancellation.request_interrupt()

        result = await execution.execute("https://example.com")

        assert result == TaskResult.fail(STOPPED_MESSAGE)
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_abort_cancels_in_flight_call(
        self, execution: ExecutionAgent, backend: FakeBackend, coordination: Coordination
    ) -> None:
        task = asyncio.create_task(execution.execute("https://slow.example.com"))
        await backend.navigate_started.wait()

        assert coordination.cancellation.abort_active_task() == 1

        result = await task
        assert result.message == STOPPED_MESSAGE
        assert coordination.cancellation.active_roles() == []


class TestGoBack:
    @pytest.mark.asyncio
    async def test_go_back(self, execution: ExecutionAgent, backend: FakeBackend) -> None:
        result = await execution.go_back()

        assert result.success
        assert result.message == "Went back to Example Domain."
        assert ("go_back", None) in backend.calls

    @pytest.mark.asyncio
    async def test_go_back_failure(self, coordination: Coordination) -> None:
        result = await make_agent(FakeBackend(unavailable=True), coordination).go_back()
        assert result.message == "I couldn't go back: connection refused"


def test_describe_outcome() -> None:
    result = TaskResult.ok("I opened Target.", data={"url": "https://www.target.com"})
    assert describe_outcome(result) == "I opened Target. (https://www.target.com)"
    assert describe_outcome(TaskResult.ok("x" * 300)) == "x" * 200


def test_with_data_merges_payload() -> None:
    result = TaskResult.ok("I opened Target.", data={"url": "https://www.target.com"})

    merged = result.with_data(visual="Red and white.")

    assert merged.data == {"url": "https://www.target.com", "visual": "Red and white."}
    assert result.data == {"url": "https://www.target.com"}
    assert TaskResult.fail("x").with_data(visual="y").to_dict()["data"] == {"visual": "y"}
