"""Tests for the task router."""

import asyncio

import pytest
from conftest import FakeBackend

from resight.agents.execution import STOPPED_MESSAGE, ExecutionAgent
from resight.agents.memory_agent import MemoryAgent
from resight.agents.safety import SafetyAgent
from resight.agents.types import HistoryTurn, TaskResult
from resight.browser import ActionOutcome
from resight.coordination import Coordination
from resight.orchestrator import (
    STOPPED_REPLY,
    Decision,
    DecisionContext,
    Remember,
    TaskRouter,
)
from resight.orchestrator.router import CLARIFICATION_REPLY, normalize_command


class NoDecision:
    """Strategy that never picks anything."""

    name = "none"

    async def decide(self, context: DecisionContext) -> Decision | None:
        return None


class AlwaysRecall:
    """Strategy that keeps recalling the same key."""

    name = "recall"

    def __init__(self) -> None:  # noqa: D107
        self.calls = 0

    async def decide(self, context: DecisionContext) -> Decision | None:
        self.calls += 1
        return Remember("recall", "likes")


class Exploding:
    """Strategy whose decision raises."""

    name = "exploding"

    async def decide(self, context: DecisionContext) -> Decision | None:
        raise RuntimeError("failed reading /srv/resight/secret.txt with api_key=abc123")


def router_with(
    strategy: object,
    coordination: Coordination,
    execution: ExecutionAgent,
    memory: MemoryAgent,
    safety: SafetyAgent,
    max_steps: int = 4,
) -> TaskRouter:
    return TaskRouter(
        coordination,
        execution=execution,
        memory=memory,
        safety=safety,
        strategy=strategy,  # type: ignore[arg-type]
        max_steps=max_steps,
    )


async def wait_for_question(coordination: Coordination) -> None:
    while coordination.clarification.peek() is None:
        await asyncio.sleep(0.01)


def test_normalize_command() -> None:
    assert normalize_command("  Go   Back! ") == "go back"
    assert normalize_command("STOP.") == "stop"


class TestVocabulary:
    """Test the short-circuit checks before the decision loop."""

    @pytest.mark.asyncio
    async def test_stop_when_idle(self, router: TaskRouter, coordination: Coordination) -> None:
        result = await router.route("Stop!")

        assert result == TaskResult.ok(STOPPED_REPLY)
        assert coordination.cancellation.is_interrupted()

    @pytest.mark.asyncio
    async def test_stop_during_task(
        self, router: TaskRouter, backend: FakeBackend, coordination: Coordination
    ) -> None:
        running = asyncio.create_task(router.route("https://slow.example.com"))
        await backend.navigate_started.wait()

        stopped = await router.route("cancel")
        result = await running

        assert stopped.message == STOPPED_REPLY
        assert result == TaskResult.fail(STOPPED_MESSAGE)
        assert coordination.cancellation.active_roles() == []

    @pytest.mark.asyncio
    async def test_go_back(self, router: TaskRouter, backend: FakeBackend) -> None:
        result = await router.route("go back a page")

        assert result.message == "Went back to Example Domain."
        assert ("go_back", None) in backend.calls

    @pytest.mark.asyncio
    async def test_go_back_after_stop(
        self, router: TaskRouter, backend: FakeBackend, coordination: Coordination
    ) -> None:
        await router.route("stop")
        assert coordination.cancellation.is_interrupted()

        result = await router.route("go back")

        assert result.success
        assert ("go_back", None) in backend.calls
        assert not coordination.cancellation.is_interrupted()

    @pytest.mark.asyncio
    async def test_answer_to_pending_question(
        self, coordination: Coordination, execution: ExecutionAgent, router: TaskRouter
    ) -> None:
        backend = execution.backend
        assert isinstance(backend, FakeBackend)
        backend.outcomes = [
            ActionOutcome(success=False, question="Which size?", options=("Small", "Medium")),
            ActionOutcome(success=True, message="Picked medium."),
        ]
        running = asyncio.create_task(router.route("pick a size for the shirt"))
        await wait_for_question(coordination)

        reply = await router.route("medium")
        result = await running

        assert reply == TaskResult.ok(CLARIFICATION_REPLY)
        assert result.success
        assert result.message == "Picked medium."
        assert backend.acted[-1].endswith("The user answered: medium")


class TestDecisionLoop:
    """Test routing through the capabilities."""

    @pytest.mark.asyncio
    async def test_navigate(self, router: TaskRouter, coordination: Coordination) -> None:
        result = await router.route("https://example.com")

        assert result.success
        assert result.message == "I opened Example Domain."
        messages = [event.message for event in coordination.trace.get_history()]
        assert messages[0] == 'Processing: "https://example.com"'
        assert messages[-1] == "Task complete"

    @pytest.mark.asyncio
    async def test_remember_and_recall(self, router: TaskRouter, backend: FakeBackend) -> None:
        stored = await router.route("remember that I like vanilla")
        recalled = await router.route("what do I like?")

        assert stored.success
        assert "vanilla" in stored.message
        assert recalled.message == "likes: vanilla"
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_recurring_charge_needs_confirmation(
        self, router: TaskRouter, backend: FakeBackend
    ) -> None:
        result = await router.route("subscribe to the auto-renewing plan at $9.99/month")

        assert result.success
        assert result.confirmation_required
        assert result.to_dict()["confirmationRequired"] is True
        assert backend.navigated() == []

    @pytest.mark.asyncio
    async def test_blocked_link(self, router: TaskRouter, backend: FakeBackend) -> None:
        result = await router.route("open bit.ly/claim-your-prize")

        assert not result.success
        assert not result.confirmation_required
        assert result.data == {"threatType": "sketchy_url"}
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_yes_after_confirmation_proceeds(
        self, router: TaskRouter, backend: FakeBackend
    ) -> None:
        history = [
            HistoryTurn("user", "subscribe to the auto-renewing plan at $9.99/month"),
            HistoryTurn("assistant", "This sets up a recurring charge. Want me to go ahead?"),
        ]

        result = await router.route("yes", history=history)

        assert result.success
        assert not result.confirmation_required
        assert backend.acted[0].startswith("subscribe to the auto-renewing plan")

    @pytest.mark.asyncio
    async def test_successful_navigation_is_learned(
        self, router: TaskRouter, memory: MemoryAgent
    ) -> None:
        await router.route("https://example.com")

        flows = memory.learned_flows()
        assert len(flows) == 1
        assert flows[0].steps.startswith("I opened Example Domain.")

    @pytest.mark.asyncio
    async def test_no_decision_forces_navigation(
        self,
        coordination: Coordination,
        execution: ExecutionAgent,
        memory: MemoryAgent,
        safety: SafetyAgent,
        backend: FakeBackend,
    ) -> None:
        router = router_with(NoDecision(), coordination, execution, memory, safety)

        result = await router.route("https://example.com")

        assert result.message == "I opened Example Domain."
        assert backend.navigated() == ["https://example.com"]

    @pytest.mark.asyncio
    async def test_loop_is_bounded(
        self,
        coordination: Coordination,
        execution: ExecutionAgent,
        memory: MemoryAgent,
        safety: SafetyAgent,
    ) -> None:
        strategy = AlwaysRecall()
        router = router_with(strategy, coordination, execution, memory, safety, max_steps=2)

        result = await router.route("what do I like")

        assert strategy.calls == 2
        assert not result.success

    @pytest.mark.asyncio
    async def test_unexpected_error_is_sanitized(
        self,
        coordination: Coordination,
        execution: ExecutionAgent,
        memory: MemoryAgent,
        safety: SafetyAgent,
    ) -> None:
        router = router_with(Exploding(), coordination, execution, memory, safety)

        result = await router.route("find coffee")

        assert not result.success
        assert result.message.startswith("Something went wrong")
        assert result.data is not None
        error = result.data["error"]
        assert "/srv" not in error
        assert "abc123" not in error


class TestSuperseding:
    @pytest.mark.asyncio
    async def test_new_instruction_aborts_previous(
        self, router: TaskRouter, backend: FakeBackend, coordination: Coordination
    ) -> None:
        first = asyncio.create_task(router.route("https://slow.example.com"))
        await backend.navigate_started.wait()

        second = await router.route("https://example.com")
        first_result = await first

        assert first_result == TaskResult.fail(STOPPED_MESSAGE)
        assert second.success
        assert second.message == "I opened Example Domain."
        assert not coordination.cancellation.is_interrupted()
