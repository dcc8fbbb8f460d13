"""Task router: the single entry point for user instructions.

Checks run in order and each one short-circuits the rest:

1. A pending clarification takes the instruction as its answer.
2. Interrupt vocabulary ("stop", "cancel", ...) aborts the active task.
3. "Go back" vocabulary is a new command too: it clears the interrupt flag
   and navigates back directly.
4. Anything else aborts whatever is still running, clears the interrupt flag
   and runs the bounded decision loop.

The decision loop asks the configured strategy for the next capability, runs
it, and repeats up to ``max_steps`` times. If the loop ends without running
any capability, the instruction is navigated directly. Exceptions never
escape ``route``; they come back as a failed ``TaskResult``.
"""

from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from resight.agents.execution import STOPPED_MESSAGE, ExecutionAgent, describe_outcome
from resight.agents.memory_agent import MemoryAgent
from resight.agents.safety import SafetyAgent
from resight.agents.types import HistoryTurn, Instruction, TaskResult
from resight.coordination import Coordination, TaskInterrupted, TaskRole
from resight.memory import PreferenceStoreError
from resight.orchestrator.strategy import DecisionStrategy
from resight.orchestrator.types import (
    Capability,
    DecisionContext,
    Finish,
    Navigate,
    Remember,
    SafetyCheck,
    StepRecord,
    describe_decision,
)
from resight.security import sanitize_error_message, scrub_error_text
from resight.telemetry import PhaseTimer, TraceContext, get_logger
from resight.telemetry.events import (
    CAPABILITY_DISPATCHED,
    CLARIFICATION_REPLY_ROUTED,
    REQUEST_RECEIVED,
    ROUTING_DECISION,
    ROUTING_FORCED_NAVIGATE,
    TASK_COMPLETED,
    TASK_FAILED,
    TASK_INTERRUPTED,
    TASK_STARTED,
)

log = get_logger(__name__)

AGENT_NAME = "Orchestrator"

INTERRUPT_VOCABULARY = frozenset({"stop", "cancel", "wait", "never mind", "nevermind", "halt", "pause"})
BACK_VOCABULARY = frozenset(
    {"go back", "back", "go back a page", "previous page", "go to the previous page", "back up"}
)

STOPPED_REPLY = "Okay, I've stopped."
CLARIFICATION_REPLY = "Got it."


def normalize_command(text: str) -> str:
    """Trimmed, lowercased text without trailing punctuation, for vocabulary checks."""
    return " ".join(text.strip().lower().rstrip(".!?,").split())


class TaskRouter:
    """Routes one instruction at a time through the agents.

    Many ``route`` calls may be in flight; a new genuine instruction aborts
    the ones before it, so only the newest gets a real result.

    Args:
        coordination: Shared trace, cancellation, clarification and frame state.
        execution: Execution agent (Navigate).
        memory: Memory agent (Remember, preference loading, learned flows).
        safety: Safety agent (SafetyCheck).
        strategy: Decision strategy for the loop.
        max_steps: Upper bound on loop iterations.
    """

    def __init__(  # noqa: D107
        self,
        coordination: Coordination,
        execution: ExecutionAgent,
        memory: MemoryAgent,
        safety: SafetyAgent,
        strategy: DecisionStrategy,
        max_steps: int = 4,
    ) -> None:
        self.coordination = coordination
        self.execution = execution
        self.memory = memory
        self.safety = safety
        self.strategy = strategy
        self.max_steps = max_steps

    def send_event(self, message: str) -> None:
        self.coordination.trace.send_event(AGENT_NAME, message)

    async def route(
        self, instruction: Instruction | str, history: Sequence[HistoryTurn] | None = None
    ) -> TaskResult:
        """Route one instruction.

        Args:
            instruction: The instruction, or its bare text.
            history: Recent turns, used when ``instruction`` is bare text.

        Returns:
            The outcome. Never raises for task-level failures.
        """
        if isinstance(instruction, str):
            instruction = Instruction.of(instruction, history)
        text = instruction.text
        command = normalize_command(text)
        coordination = self.coordination

        log.info(REQUEST_RECEIVED, instruction_length=len(text), history_turns=len(instruction.history))

        if coordination.clarification.has_pending():
            if coordination.clarification.answer(text):
                log.info(CLARIFICATION_REPLY_ROUTED)
                self.send_event(f'Answer received: "{text}"')
                return TaskResult.ok(CLARIFICATION_REPLY)

        if command in INTERRUPT_VOCABULARY:
            aborted = coordination.cancellation.abort_active_task()
            self.send_event("Stopping")
            log.info(TASK_INTERRUPTED, source="instruction", handles=aborted)
            return TaskResult.ok(STOPPED_REPLY)

        if command in BACK_VOCABULARY:
            self._supersede()
            self.send_event("Going back")
            return await self.execution.go_back()

        return await self._run(instruction)

    def _supersede(self) -> None:
        """Abort whatever is still running and clear the interrupt flag for a new command."""
        cancellation = self.coordination.cancellation
        if cancellation.active_roles():
            cancellation.abort_active_task()
        cancellation.clear_interrupt()

    async def _run(self, instruction: Instruction) -> TaskResult:
        coordination = self.coordination
        self._supersede()

        trace_ctx = TraceContext.new_trace()
        timer = PhaseTimer(trace_id=trace_ctx.trace_id)
        log.info(TASK_STARTED, trace_id=trace_ctx.trace_id, strategy=self.strategy.name)
        self.send_event(f'Processing: "{instruction.text}"')

        try:
            with timer.span("load_preferences") as extra:
                preferences = self.memory.load_preferences()
                extra["count"] = len(preferences)
            context = DecisionContext(
                instruction=instruction, preferences=preferences, trace_ctx=trace_ctx
            )
            result = await coordination.cancellation.run_abortable(
                TaskRole.ROUTER, self._decision_loop(context, timer)
            )
        except TaskInterrupted:
            log.info(TASK_INTERRUPTED, trace_id=trace_ctx.trace_id, phases=timer.to_breakdown())
            return TaskResult.fail(STOPPED_MESSAGE)
        except Exception as e:
            log.error(
                TASK_FAILED,
                trace_id=trace_ctx.trace_id,
                error=scrub_error_text(e),
                error_type=type(e).__name__,
                phases=timer.to_breakdown(),
                exc_info=True,
            )
            self.send_event(f"Error: {scrub_error_text(e)}")
            return TaskResult.fail(sanitize_error_message(e), data={"error": scrub_error_text(e)})

        self.send_event("Task complete")
        log.info(
            TASK_COMPLETED,
            trace_id=trace_ctx.trace_id,
            success=result.success,
            confirmation_required=result.confirmation_required,
            duration_ms=timer.total_ms(),
            phases=timer.to_breakdown(),
        )
        return result

    async def _decision_loop(self, context: DecisionContext, timer: PhaseTimer) -> TaskResult:
        finish: Finish | None = None
        for step in range(self.max_steps):
            with timer.span("decide", step=step) as extra:
                decision = await self.strategy.decide(context)
                extra["capability"] = decision.kind.value if decision is not None else None
            log.info(
                ROUTING_DECISION,
                step=step,
                trace_id=context.trace_ctx.trace_id if context.trace_ctx else None,
                **(describe_decision(decision) if decision is not None else {"capability": None}),
            )
            if decision is None or isinstance(decision, Finish):
                finish = decision
                break
            with timer.span("dispatch", capability=decision.kind.value):
                result = await self._dispatch(decision, context)
            context.steps.append(StepRecord(capability=decision, result=result))

        if not context.steps:
            log.warning(ROUTING_FORCED_NAVIGATE, strategy=self.strategy.name)
            self.send_event("No action chosen, going straight to the browser")
            forced = Navigate(context.instruction.text)
            with timer.span("dispatch", capability=forced.kind.value, forced=True):
                result = await self._dispatch(forced, context)
            context.steps.append(StepRecord(capability=forced, result=result))

        self._learn(context)
        return self._final_result(context, finish)

    async def _dispatch(self, capability: Capability, context: DecisionContext) -> TaskResult:
        log.info(
            CAPABILITY_DISPATCHED,
            trace_id=context.trace_ctx.trace_id if context.trace_ctx else None,
            **describe_decision(capability),
        )
        if isinstance(capability, Navigate):
            self.send_event(f"Sending to Navigator: {capability.instruction}")
            navigation = Instruction(text=capability.instruction, history=context.instruction.history)
            return await self.execution.execute(navigation, trace_ctx=context.trace_ctx)
        if isinstance(capability, Remember):
            if capability.action == "recall":
                return self.memory.recall(capability.key)
            if capability.value is None:
                return TaskResult.fail(f'Nothing to remember for "{capability.key}"')
            return self.memory.store(capability.key, capability.value)
        if isinstance(capability, SafetyCheck):
            return await self.safety.check(
                capability.action,
                capability.page_context,
                instruction=context.instruction,
                trace_ctx=context.trace_ctx,
            )
        raise TypeError(f"Unknown capability: {capability!r}")

    def _learn(self, context: DecisionContext) -> None:
        """Best-effort save of successful navigations as learned flows."""
        for step in context.steps:
            if not isinstance(step.capability, Navigate) or not step.result.success:
                continue
            try:
                self.memory.save_learned_flow(step.capability.instruction, describe_outcome(step.result))
            except (PreferenceStoreError, ValidationError) as e:
                log.debug("learned_flow_not_saved", error=str(e))

    @staticmethod
    def _final_result(context: DecisionContext, finish: Finish | None) -> TaskResult:
        last = context.steps[-1].result
        confirmation = any(step.result.confirmation_required for step in context.steps)
        message = finish.message if finish is not None and finish.message else last.message
        data: dict[str, Any] | None = dict(last.data) if last.data is not None else None
        if last.success:
            return TaskResult.ok(message, data=data, confirmation_required=confirmation)
        return TaskResult.fail(message, data=data, confirmation_required=confirmation)
