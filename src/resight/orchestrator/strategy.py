"""Decision strategies for the task router's loop.

A strategy looks at the instruction, the stored preferences and the steps
taken so far, and picks the next capability or ``Finish``. Two strategies
share the ``DecisionStrategy`` interface:

- ``RuleDecisionStrategy``: deterministic phrase rules, no model calls.
- ``ModelDecisionStrategy``: structured JSON decision from the router model,
  falling back to the rules for a step when the model call fails.
"""

import re
from typing import Any, Protocol

import orjson

from resight.llm_client import ChatCompletionsClient, LLMClientError, ModelRole, extract_json_object
from resight.orchestrator.types import (
    Decision,
    DecisionContext,
    Finish,
    Navigate,
    Remember,
    SafetyCheck,
)
from resight.telemetry import get_logger
from resight.telemetry.events import MODEL_RESPONSE_UNPARSEABLE, ROUTING_STRATEGY_FALLBACK

log = get_logger(__name__)


class DecisionStrategy(Protocol):
    """Chooses the router's next step."""

    name: str

    async def decide(self, context: DecisionContext) -> Decision | None:
        """Next decision, or None when nothing should be done."""
        ...


def preference_key(phrase: str) -> str:
    """Normalize a spoken preference name into a storage key."""
    words = re.findall(r"[a-z0-9]+", phrase.lower())
    return "_".join(words)


_REMEMBER_RE = re.compile(
    r"^(?:please\s+)?(?:remember|note|save|keep in mind)\s+(?:that\s+)?(.+?)[.!]*$", re.IGNORECASE
)
_STATEMENT_PATTERNS: tuple[tuple[re.Pattern[str], str | None], ...] = (
    (re.compile(r"^i(?:'m| am) allergic to (.+)$"), "allergies"),
    (
        re.compile(
            r"^i(?:'m| am) (?:a )?"
            r"(vegan|vegetarian|pescatarian|gluten[- ]free|dairy[- ]free|kosher|halal)$"
        ),
        "diet",
    ),
    (re.compile(r"^i (?:don't|do not) like (.+)$"), "dislikes"),
    (re.compile(r"^i (?:dislike|hate) (.+)$"), "dislikes"),
    (re.compile(r"^i(?: really)? (?:like|love|prefer|enjoy) (.+)$"), "likes"),
    (re.compile(r"^i live (?:in|at|near) (.+)$"), "location"),
    (re.compile(r"^my (.+?) (?:is|are) (.+)$"), None),
)
_RECALL_PATTERNS: tuple[tuple[re.Pattern[str], str | None], ...] = (
    (re.compile(r"^what am i allergic to\??$"), "allergies"),
    (re.compile(r"^what do i (?:like|love|prefer)\??$"), "likes"),
    (re.compile(r"^what don't i like\??$"), "dislikes"),
    (re.compile(r"^where do i live\??$"), "location"),
    (re.compile(r"^what(?:'s| is| are) my (.+?)\??$"), None),
    (re.compile(r"^do you remember my (.+?)\??$"), None),
    (re.compile(r"^(?:recall|remind me of) my (.+?)\??$"), None),
)
_SENSITIVE_ACTION_RE = re.compile(
    r"\b(?:buy|order|purchase|check ?out|add (?:it |this |that |them |the \w+ )?to (?:my |the )?cart"
    r"|subscribe|sign up for|download|install|pay for|enter my (?:card|credit card|password))\b"
    r"|\b(?:bit\.ly|tinyurl\.com|t\.co|goo\.gl)/|\bis (?:this|it|that) (?:link |site |page )?safe\b"
)
_SAFETY_QUESTION_RE = re.compile(r"\bis (?:this|it|that) (?:link |site |page )?safe\b")
_AFFIRMATIVE_RE = re.compile(
    r"^(?:yes|yeah|yep|yup|sure|ok(?:ay)?|go ahead|do it|confirm(?:ed)?|proceed)\b"
)


def parse_remember(text: str) -> Remember | None:
    """A store request ("remember that I like vanilla") or a recall question."""
    stripped = text.strip()
    match = _REMEMBER_RE.match(stripped)
    if match:
        statement = match.group(1).strip()
        lowered = statement.lower()
        for pattern, key in _STATEMENT_PATTERNS:
            found = pattern.match(lowered)
            if not found:
                continue
            if key is None:
                start, end = found.span(2)
                return Remember("store", preference_key(found.group(1)), statement[start:end])
            start, end = found.span(1)
            return Remember("store", key, statement[start:end])
        return Remember("store", "note", statement)

    lowered = stripped.lower()
    for pattern, key in _RECALL_PATTERNS:
        found = pattern.match(lowered)
        if found:
            return Remember("recall", key or preference_key(found.group(1)))
    return None


def _confirmed_request(context: DecisionContext) -> str | None:
    """The earlier request the user is saying yes to, if this is a confirmation."""
    instruction = context.instruction
    if not _AFFIRMATIVE_RE.match(instruction.text.strip().lower()) or not instruction.history:
        return None
    if instruction.history[-1].role != "assistant":
        return None
    for turn in reversed(instruction.history):
        if turn.role == "user" and not _AFFIRMATIVE_RE.match(turn.text.strip().lower()):
            return turn.text
    return None


class RuleDecisionStrategy:
    """Deterministic decisions from phrase rules.

    First step: remember/recall phrases go to memory, a yes to a previous
    confirmation goes straight to navigation, safety-sensitive vocabulary is
    checked first, anything else is navigated. After a safety check the loop
    navigates only on a plain approval; after any other capability it finishes.
    """

    name = "rules"

    async def decide(self, context: DecisionContext) -> Decision | None:
        text = context.instruction.text
        last = context.last_step
        if last is None:
            remember = parse_remember(text)
            if remember is not None:
                return remember
            confirmed = _confirmed_request(context)
            if confirmed is not None:
                return Navigate(confirmed)
            if _SENSITIVE_ACTION_RE.search(text.lower()):
                return SafetyCheck(action=text)
            return Navigate(text)

        if isinstance(last.capability, SafetyCheck):
            verdict = last.result
            if not verdict.success or verdict.confirmation_required:
                return Finish()
            if _SAFETY_QUESTION_RE.search(text.lower()):
                return Finish("That looks safe to me.")
            return Navigate(text)
        return Finish()


ROUTER_SYSTEM_PROMPT = """You coordinate a voice-controlled web browser for blind and low-vision users.
Pick exactly one next step and answer with JSON only.

Capabilities:
- navigate: browse, search, click or read web pages.
  {"capability": "navigate", "instruction": "<specific browser task>"}
- remember: store or recall a user preference.
  {"capability": "remember", "action": "store" | "recall", "key": "<snake_case key>", "value": "<text, store only>"}
- safety_check: judge an action BEFORE purchases, downloads, subscriptions, personal data entry or unfamiliar links.
  {"capability": "safety_check", "action": "<the action>", "pageContext": "<what is known about the page>"}
- finish: stop and reply to the user.
  {"capability": "finish", "message": "<short spoken reply, or empty to keep the last result>"}

Rules:
- Never finish on the first step; every instruction needs at least one capability.
- After a safety_check that blocks or needs confirmation, finish.
- Use stored preferences when they matter to the task."""

ROUTER_RESPONSE_FORMAT: dict[str, Any] = {"type": "json_object"}


def parse_decision(data: dict[str, Any], context: DecisionContext) -> Decision | None:
    """Map the model's JSON onto a decision; None when it is not a valid one."""
    capability = str(data.get("capability") or "").strip().lower()
    if capability == "navigate":
        instruction = str(data.get("instruction") or "").strip()
        return Navigate(instruction or context.instruction.text)
    if capability == "remember":
        action = str(data.get("action") or "").strip().lower()
        key = preference_key(str(data.get("key") or ""))
        if action not in ("store", "recall") or not key:
            return None
        if action == "recall":
            return Remember("recall", key)
        value = data.get("value")
        if value is None:
            return None
        return Remember("store", key, str(value))
    if capability == "safety_check":
        action = str(data.get("action") or "").strip()
        if not action:
            return None
        return SafetyCheck(action=action, page_context=str(data.get("pageContext") or ""))
    if capability == "finish":
        return Finish(str(data.get("message") or ""))
    return None


class ModelDecisionStrategy:
    """Decisions from the router model.

    Args:
        llm: Chat-completions client for the ``router`` role.
        fallback: Strategy used for a step when the model call fails or its
            reply cannot be parsed into a decision.
    """

    name = "model"

    def __init__(  # noqa: D107
        self, llm: ChatCompletionsClient, fallback: DecisionStrategy | None = None
    ) -> None:
        self.llm = llm
        self.fallback = fallback or RuleDecisionStrategy()

    async def decide(self, context: DecisionContext) -> Decision | None:
        """Ask the router model for the next step.

        Raises:
            LLMConfigurationError: If the model is not configured.
        """
        try:
            response = await self.llm.respond(
                role=ModelRole.ROUTER,
                messages=[{"role": "user", "content": self._prompt(context)}],
                system_prompt=ROUTER_SYSTEM_PROMPT,
                response_format=ROUTER_RESPONSE_FORMAT,
                trace_ctx=context.trace_ctx,
            )
        except LLMClientError as e:
            log.warning(
                ROUTING_STRATEGY_FALLBACK,
                strategy=self.fallback.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return await self.fallback.decide(context)

        data = extract_json_object(response["content"])
        decision = parse_decision(data, context) if data is not None else None
        if decision is None:
            log.warning(MODEL_RESPONSE_UNPARSEABLE, role=ModelRole.ROUTER.value)
            return await self.fallback.decide(context)
        if isinstance(decision, Finish) and not context.steps:
            return await self.fallback.decide(context)
        return decision

    @staticmethod
    def _prompt(context: DecisionContext) -> str:
        instruction = context.instruction
        sections = [
            f"User context: {orjson.dumps(context.preferences, default=str).decode()}",
        ]
        if instruction.history:
            sections.append(f"Conversation so far:\n{instruction.history_text()}")
        sections.append(f'User instruction: "{instruction.text}"')
        if context.steps:
            done = [
                {
                    "capability": step.capability.kind.value,
                    "success": step.result.success,
                    "message": step.result.message,
                    "confirmationRequired": step.result.confirmation_required,
                }
                for step in context.steps
            ]
            sections.append(f"Steps taken so far: {orjson.dumps(done).decode()}")
        return "\n\n".join(sections)
