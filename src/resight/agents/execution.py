"""Execution agent: carries an instruction out against the automation backend.

Three tiers are tried in a fixed order, each behind the same interface:

1. ``PrimaryTier`` uses the backend's AI-assisted ``observe``/``act`` on the
   primary session, guided by the fast-path plan, a matching playbook flow and
   a learned flow when there is one.
2. ``HeuristicTier`` uses only deterministic primitives on the primary
   session: derive a search address, or score and click a page element.
3. ``BareSessionTier`` opens an isolated bare session when the primary
   backend is unreachable, repeats the search heuristics and always releases
   the session.

A tier that cannot finish raises ``TierFailed``; the next tier decides from
that failure whether it applies. Every backend call runs through the
cancellation coordinator under the ``execution`` role, and every screenshot
updates the shared frame store.

A page that turns out to be a bot check (CAPTCHA, Cloudflare challenge,
access denied) counts as a failed action, not as an opened page. When a vision
agent is configured, a successful result also carries a short description of
how the final page looks.
"""

import asyncio
import re
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from resight.agents.fallback import (
    InstructionKind,
    build_search_url,
    classify_instruction,
    detect_bot_wall,
    extract_cards,
    find_explicit_address,
    pick_element,
    summarize_cards,
    web_search_url,
)
from resight.agents.memory_agent import MemoryAgent
from resight.agents.planner import ExecutionPlan, format_plan_for_prompt, log_plan, plan_fast_path
from resight.agents.playbook import PlaybookFlow, find_similar_flow, format_flow_for_prompt
from resight.agents.types import Instruction, SendEvent, TaskResult
from resight.agents.vision import VisionAgent
from resight.browser import (
    AutomationBackend,
    BackendActionError,
    BackendError,
    BackendUnavailable,
    ObservedElement,
    PageInfo,
    SessionFactory,
)
from resight.coordination import Coordination, TaskInterrupted, TaskRole
from resight.coordination.clarification import NO_RESPONSE
from resight.coordination.frames import HighlightRegion
from resight.telemetry import get_logger
from resight.telemetry.events import (
    BOT_WALL_DETECTED,
    EXECUTION_CHECKPOINT,
    EXECUTION_TIER_FAILED,
    EXECUTION_TIER_STARTED,
    TASK_INTERRUPTED,
)
from resight.telemetry.trace import TraceContext

log = get_logger(__name__)

T = TypeVar("T")

AGENT_NAME = "Navigator"

STOPPED_MESSAGE = "Stopped."

# Elements the heuristic tier considers for in-page interaction
INTERACTIVE_SELECTOR = "a, button, [role='button'], [role='tab'], summary, input[type='submit']"

_DIRECTIVE_RE = re.compile(
    r"^(?:please\s+)?(?:go\s+to|open\s+up|open|visit|navigate\s+to|take\s+me\s+to|pull\s+up)\s+(.+)$",
    re.IGNORECASE,
)
_SITE_WORDS_RE = re.compile(r"\b(?:the\s+)?(?:website|site|homepage|home\s+page)\b", re.IGNORECASE)


def navigation_target(text: str) -> str | None:
    """Address for an explicit "go to / open / visit <target>" directive, else None.

    A bare address with nothing else is treated as a directive too.
    """
    stripped = text.strip()
    if " " not in stripped:
        address = find_explicit_address(stripped)
        if address:
            return address
    match = _DIRECTIVE_RE.match(stripped)
    if not match:
        return None
    target = _SITE_WORDS_RE.sub(" ", match.group(1)).strip(" .!?")
    if not target or target.lower().split()[0] in ("the", "this", "that", "it"):
        return None
    address = find_explicit_address(target)
    if address:
        return address
    if " " not in target:
        return f"https://www.{target.lower()}.com"
    return None


class TierFailed(Exception):
    """A tier could not complete; carries what the next tier needs to decide.

    Attributes:
        tier: Name of the failing tier.
        reason: Human-readable reason.
        unavailable: The primary backend itself could not be reached.
    """

    def __init__(self, tier: str, reason: str, unavailable: bool = False) -> None:  # noqa: D107
        self.tier = tier
        self.reason = reason
        self.unavailable = unavailable
        super().__init__(f"{tier}: {reason}")

    @classmethod
    def from_backend(cls, tier: str, error: BackendError) -> "TierFailed":
        return cls(tier, str(error) or type(error).__name__, isinstance(error, BackendUnavailable))


class BotWallDetected(BackendActionError):
    """The page is a bot check (CAPTCHA, challenge, access denied) instead of content."""

    def __init__(self, kind: str, url: str) -> None:  # noqa: D107
        self.kind = kind
        self.url = url
        super().__init__(f"{url or 'The site'} blocked automated access ({kind})")


@dataclass(frozen=True)
class ExecutionRequest:
    """Everything a tier needs for one attempt.

    Attributes:
        instruction: The instruction being carried out.
        plan: Fast-path plan, if one matched.
        guidance: Plan, playbook and learned-flow text for the AI backend.
        fallback_navigation: Skip the AI tier and go straight to the heuristics.
        trace_ctx: Trace context for log correlation.
    """

    instruction: Instruction
    plan: ExecutionPlan | None = None
    guidance: str = ""
    fallback_navigation: bool = False
    trace_ctx: TraceContext | None = None

    @property
    def text(self) -> str:
        return self.instruction.text


class ExecutionSupport:
    """Shared plumbing for the tiers: abortable calls, checkpoints, summaries."""

    def __init__(self, coordination: Coordination, send_event: SendEvent) -> None:  # noqa: D107
        self.coordination = coordination
        self.send_event = send_event

    async def call(self, awaitable: Awaitable[T]) -> T:
        """Run one backend call so that an abort can cancel it.

        Raises:
            TaskInterrupted: If the interrupt flag is set or the call was aborted.
        """
        cancellation = self.coordination.cancellation
        if cancellation.is_interrupted():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise TaskInterrupted(TaskRole.EXECUTION)
        return await cancellation.run_abortable(TaskRole.EXECUTION, awaitable)

    async def checkpoint(
        self, backend: AutomationBackend, step: str, regions: Sequence[HighlightRegion] = ()
    ) -> None:
        """Capture a frame into the frame store. A failed capture is logged, not raised."""
        try:
            frame = await self.call(backend.screenshot())
        except BackendError as e:
            log.debug(EXECUTION_CHECKPOINT, step=step, captured=False, error=str(e))
            return
        self.coordination.frames.update_frame(frame, regions)
        log.debug(EXECUTION_CHECKPOINT, step=step, captured=True, regions=len(regions))

    def check_bot_wall(self, page: PageInfo, extra_text: str = "") -> None:
        """Raise ``BotWallDetected`` when ``page`` is a bot check rather than content."""
        kind = detect_bot_wall(page.title, f"{page.text} {extra_text}")
        if kind is None:
            return
        log.warning(BOT_WALL_DETECTED, kind=kind, url=page.url)
        self.send_event(AGENT_NAME, "Site is blocking automated access, trying another approach...")
        raise BotWallDetected(kind, page.url)

    async def summarize_page(self, backend: AutomationBackend, fallback_label: str) -> str:
        """Result-card summary of the current page, or a generic opened-page message.

        Raises:
            BotWallDetected: If the page title or text shows a bot check.
        """
        cards = await extract_cards(backend, call=self.call)
        try:
            page = await self.call(backend.page_info())
        except BackendError:
            page = PageInfo(url=fallback_label)
        self.check_bot_wall(page, " ".join(card.title for card in cards))
        if cards:
            return summarize_cards(cards, fallback_label)
        return summarize_cards((), page.title or page.url or fallback_label)

    async def search_and_summarize(
        self, backend: AutomationBackend, request: ExecutionRequest
    ) -> TaskResult:
        """Navigate to the heuristic search address and summarize what is there.

        A bot wall on a site-specific address is retried once as a web search.
        """
        url = build_search_url(request.text)
        try:
            summary = await self._open_and_summarize(backend, url)
        except BotWallDetected:
            search_url = web_search_url(request.text)
            if url == search_url:
                raise
            url = search_url
            summary = await self._open_and_summarize(backend, url)
        self.send_event(AGENT_NAME, summary)
        return TaskResult.ok(summary, data={"url": url})

    async def _open_and_summarize(self, backend: AutomationBackend, url: str) -> str:
        self.send_event(AGENT_NAME, f"Heading to {url}")
        await self.call(backend.navigate(url))
        await self.checkpoint(backend, "search_opened")
        return await self.summarize_page(backend, url)


class ExecutionTier(Protocol):
    """One way of carrying out an instruction."""

    name: str

    def applies(self, request: ExecutionRequest, previous: TierFailed | None) -> bool: ...

    async def attempt(self, request: ExecutionRequest) -> TaskResult: ...


def _regions(elements: Sequence[ObservedElement]) -> list[HighlightRegion]:
    return [element.region for element in elements if element.region is not None]


class PrimaryTier:
    """AI-assisted observe/act on the primary session."""

    name = "primary"

    def __init__(self, backend: AutomationBackend, support: ExecutionSupport) -> None:  # noqa: D107
        self.backend = backend
        self.support = support

    def applies(self, request: ExecutionRequest, previous: TierFailed | None) -> bool:
        return previous is None and not request.fallback_navigation

    async def attempt(self, request: ExecutionRequest) -> TaskResult:
        support = self.support
        try:
            target = navigation_target(request.text)
            if target is not None:
                support.send_event(AGENT_NAME, f"Opening {target}")
                await support.call(self.backend.navigate(target))
                await support.checkpoint(self.backend, "navigated")
                page = await support.call(self.backend.page_info())
                support.check_bot_wall(page)
                message = f"I opened {page.title or page.url or target}."
                support.send_event(AGENT_NAME, message)
                return TaskResult.ok(message, data={"url": page.url or target})

            if request.plan is not None and request.plan.first_url:
                support.send_event(AGENT_NAME, f"Going straight to {request.plan.first_url}")
                await support.call(self.backend.navigate(request.plan.first_url))
                await support.checkpoint(self.backend, "plan_start")

            support.send_event(AGENT_NAME, "Looking over the page...")
            observed = await support.call(self.backend.observe(request.text))
            if observed:
                support.send_event(AGENT_NAME, f"Found {len(observed)} relevant elements")
            await support.checkpoint(self.backend, "observed", _regions(observed))

            outcome = await support.call(self.backend.act(self._action_prompt(request)))
            if outcome.question:
                answer = await self._ask_user(outcome.question, outcome.options)
                if answer == NO_RESPONSE:
                    message = "I didn't hear back, so I've paused here."
                    support.send_event(AGENT_NAME, message)
                    return TaskResult.fail(message)
                follow_up = f"{request.text}\nThe user answered: {answer}"
                outcome = await support.call(self.backend.act(follow_up))
            await support.checkpoint(self.backend, "acted")
        except BackendError as e:
            raise TierFailed.from_backend(self.name, e) from e

        if not outcome.success:
            raise TierFailed(self.name, outcome.message or "The action did not complete")
        message = outcome.message or "Done."
        support.send_event(AGENT_NAME, message)
        return TaskResult.ok(message)

    async def _ask_user(self, question: str, options: Sequence[str]) -> str:
        self.support.send_event(AGENT_NAME, f"Asking you: {question}")
        bridge = self.support.coordination.clarification
        return await self.support.call(bridge.ask(question, list(options) or None))

    @staticmethod
    def _action_prompt(request: ExecutionRequest) -> str:
        if not request.guidance:
            return request.text
        return f"{request.text}\n\n{request.guidance}"


class HeuristicTier:
    """Deterministic primitives on the primary session."""

    name = "heuristic"

    def __init__(self, backend: AutomationBackend, support: ExecutionSupport) -> None:  # noqa: D107
        self.backend = backend
        self.support = support

    def applies(self, request: ExecutionRequest, previous: TierFailed | None) -> bool:
        return previous is None or not previous.unavailable

    async def attempt(self, request: ExecutionRequest) -> TaskResult:
        try:
            if not request.fallback_navigation:
                kind = classify_instruction(request.text)
                if kind is InstructionKind.INTERACTION:
                    result = await self._interact(request)
                    if result is not None:
                        return result
            return await self.support.search_and_summarize(self.backend, request)
        except BackendError as e:
            raise TierFailed.from_backend(self.name, e) from e

    async def _interact(self, request: ExecutionRequest) -> TaskResult | None:
        support = self.support
        elements = await support.call(self.backend.query_elements(INTERACTIVE_SELECTOR))
        element = pick_element(request.text, elements)
        if element is None:
            support.send_event(AGENT_NAME, "Nothing on the page matched, searching instead")
            return None
        support.send_event(AGENT_NAME, f'Clicking "{element.text}"')
        await support.call(self.backend.click(element.ref))
        regions = [element.region] if element.region is not None else []
        await support.checkpoint(self.backend, "clicked", regions)
        message = f'I clicked "{element.text}".'
        support.send_event(AGENT_NAME, message)
        return TaskResult.ok(message, data={"element": element.text})


class BareSessionTier:
    """An isolated bare session, used only when the primary backend is unreachable."""

    name = "bare_session"

    def __init__(self, sessions: SessionFactory, support: ExecutionSupport) -> None:  # noqa: D107
        self.sessions = sessions
        self.support = support

    def applies(self, request: ExecutionRequest, previous: TierFailed | None) -> bool:
        return previous is not None and previous.unavailable

    async def attempt(self, request: ExecutionRequest) -> TaskResult:
        support = self.support
        support.send_event(AGENT_NAME, "Main browser is unavailable, starting a fresh one")
        try:
            session = await support.call(self.sessions.open_session())
        except BackendError as e:
            raise TierFailed.from_backend(self.name, e) from e
        try:
            return await support.search_and_summarize(session, request)
        except BackendError as e:
            raise TierFailed.from_backend(self.name, e) from e
        finally:
            try:
                await session.close()
            except BackendError as e:
                log.warning("bare_session_close_failed", error=str(e))


class ExecutionAgent:
    """Runs instructions through the execution tiers.

    Args:
        backend: Primary session.
        sessions: Factory for isolated bare sessions.
        coordination: Shared cancellation, clarification and frame state.
        send_event: Trace publisher callback.
        memory: Memory agent, used to offer learned flows as guidance.
        flows: Playbook catalog; defaults to the configured one.
        vision: Describes how the page looks after a successful tier; off when None.
    """

    def __init__(  # noqa: D107
        self,
        backend: AutomationBackend,
        sessions: SessionFactory,
        coordination: Coordination,
        send_event: SendEvent,
        memory: MemoryAgent | None = None,
        flows: Sequence[PlaybookFlow] | None = None,
        vision: VisionAgent | None = None,
    ) -> None:
        self.backend = backend
        self.support = ExecutionSupport(coordination, send_event)
        self.memory = memory
        self.flows = flows
        self.vision = vision
        self.tiers: list[ExecutionTier] = [
            PrimaryTier(backend, self.support),
            HeuristicTier(backend, self.support),
            BareSessionTier(sessions, self.support),
        ]

    @property
    def send_event(self) -> SendEvent:
        return self.support.send_event

    async def execute(
        self,
        instruction: Instruction | str,
        fallback_navigation: bool = False,
        trace_ctx: TraceContext | None = None,
    ) -> TaskResult:
        """Carry out ``instruction``, falling through the tiers on failure.

        Args:
            instruction: What to do.
            fallback_navigation: Go straight to the heuristic search tiers.
            trace_ctx: Trace context for log correlation.

        Returns:
            The first tier's success, ``Stopped.`` on interrupt, or the last
            tier's failure.
        """
        if isinstance(instruction, str):
            instruction = Instruction.of(instruction)
        request = self._prepare(instruction, fallback_navigation, trace_ctx)
        trace_id = trace_ctx.trace_id if trace_ctx else None

        previous: TierFailed | None = None
        try:
            for tier in self.tiers:
                if not tier.applies(request, previous):
                    continue
                log.info(EXECUTION_TIER_STARTED, tier=tier.name, trace_id=trace_id)
                try:
                    result = await tier.attempt(request)
                except TierFailed as failure:
                    log.warning(
                        EXECUTION_TIER_FAILED,
                        tier=tier.name,
                        reason=failure.reason,
                        unavailable=failure.unavailable,
                        trace_id=trace_id,
                    )
                    self.send_event(AGENT_NAME, "That didn't work, trying another way...")
                    previous = failure
                else:
                    return await self._describe_page(result, request)
        except TaskInterrupted:
            log.info(TASK_INTERRUPTED, role=TaskRole.EXECUTION.value, trace_id=trace_id)
            self.send_event(AGENT_NAME, "Stopped")
            return TaskResult.fail(STOPPED_MESSAGE)

        reason = previous.reason if previous is not None else "no execution tier applied"
        self.send_event(AGENT_NAME, f"Couldn't finish: {reason}")
        return TaskResult.fail(f"Navigation failed: {reason}")

    async def go_back(self) -> TaskResult:
        """Direct backward navigation on the primary session."""
        try:
            await self.support.call(self.backend.go_back())
            await self.support.checkpoint(self.backend, "went_back")
            page = await self.support.call(self.backend.page_info())
        except TaskInterrupted:
            return TaskResult.fail(STOPPED_MESSAGE)
        except BackendError as e:
            log.warning("go_back_failed", error=str(e), error_type=type(e).__name__)
            return TaskResult.fail(f"I couldn't go back: {e}")
        message = f"Went back to {page.title or page.url}."
        self.send_event(AGENT_NAME, message)
        return TaskResult.ok(message, data={"url": page.url})

    async def _describe_page(self, result: TaskResult, request: ExecutionRequest) -> TaskResult:
        if self.vision is None or not result.success:
            return result
        frame = self.support.coordination.frames.snapshot().frame
        description = await self.support.call(
            self.vision.describe(frame, request.text, request.trace_ctx)
        )
        return result.with_data(visual=description) if description else result

    def _prepare(
        self, instruction: Instruction, fallback_navigation: bool, trace_ctx: TraceContext | None
    ) -> ExecutionRequest:
        plan = plan_fast_path(instruction.text)
        log_plan(plan, instruction.text)
        sections: list[str] = []
        if plan is not None:
            self.send_event(AGENT_NAME, f"Plan: {plan.reasoning}")
            sections.append(format_plan_for_prompt(plan))

        flow = find_similar_flow(instruction.text, self.flows)
        if flow is not None:
            self.send_event(AGENT_NAME, f"Following the {flow.title} playbook")
            sections.append(format_flow_for_prompt(flow))

        if self.memory is not None:
            learned = self.memory.find_learned_flow(instruction.text)
            if learned is not None:
                sections.append(
                    f'LEARNED FLOW (worked before for "{learned.pattern}"):\n{learned.steps}'
                )

        if instruction.history:
            sections.append(f"RECENT CONVERSATION:\n{instruction.history_text()}")

        return ExecutionRequest(
            instruction=instruction,
            plan=plan,
            guidance="\n\n".join(sections),
            fallback_navigation=fallback_navigation,
            trace_ctx=trace_ctx,
        )


def describe_outcome(result: TaskResult, limit: int = 200) -> str:
    """Condensed outcome text stored with a learned flow."""
    data: dict[str, Any] = dict(result.data or {})
    url = data.get("url")
    summary = result.message[:limit]
    return f"{summary} ({url})" if url else summary
