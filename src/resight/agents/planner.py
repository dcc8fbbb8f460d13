"""Fast-path planner: pattern matching to deterministic execution plans.

No model calls. ``plan_fast_path`` is pure: the same instruction always yields
the same plan, or None when nothing matches and the caller should let the
automation backend work it out on its own.
"""

import re
from dataclasses import dataclass
from urllib.parse import quote

from resight.telemetry import get_logger
from resight.telemetry.events import FAST_PATH_PLANNED

log = get_logger(__name__)

_URL_RE = re.compile(r"\bhttps?://[^\s]+", re.IGNORECASE)
_HANDLE_RE = re.compile(r"@([\w.-]+)")
_CREATOR_RE = re.compile(
    r"(?:videos?|uploads?|latest|newest|recent)\s+(?:from|by|of|uploaded by|on)\s+(\w[\w\s]{1,30})"
)
_VIDEO_NOISE_RE = re.compile(r"\b(search|find|look|for|on|youtube|videos?|show|me|the|watch)\b")
_BEST_THEN_RE = re.compile(
    r"(?:find|search|get|look)\s+(?:the\s+)?best\s+(.+?)\s+(?:and|then)\s+"
    r"(?:get|find|show|check|tell)\s+(?:me\s+)?(?:the\s+)?(.+)"
)
_SEARCH_RE = re.compile(
    r"(?:search|google|find|look up|look for|what'?s|what is|who is|where is|how to|how do)\s+(.+)"
)
_SEARCH_NOISE_RE = re.compile(r"\b(on google|on the web|online|for me|please)\b")
_SPACES_RE = re.compile(r"\s+")

# Marketplace name -> search URL prefix
SHOPPING_SITES: dict[str, str] = {
    "amazon": "https://www.amazon.com/s?k=",
    "target": "https://www.target.com/s?searchTerm=",
    "walmart": "https://www.walmart.com/search?q=",
}

# Trailing punctuation that ends a sentence rather than a URL
_URL_TRAILING = ".,;:!?)\"'"


@dataclass(frozen=True)
class PlanStep:
    """One step of a plan.

    Attributes:
        action: ``goto_url``, ``narrate``, ``extract_info`` or ``done``.
        argument: Target URL, extraction query, or free-form guidance.
    """

    action: str
    argument: str = ""

    def describe(self) -> str:
        if self.action in ("goto_url", "extract_info") and self.argument:
            return f'{self.action}("{self.argument}")'
        if self.argument:
            return f"{self.action} {self.argument}"
        return self.action


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered steps plus a one-line reason for choosing them."""

    steps: tuple[PlanStep, ...]
    reasoning: str

    @property
    def first_url(self) -> str | None:
        for step in self.steps:
            if step.action == "goto_url" and step.argument.startswith("http"):
                return step.argument
        return None


def _encode(query: str) -> str:
    return quote(query, safe="!*'()")


def _squash(text: str) -> str:
    return _SPACES_RE.sub(" ", text).strip()


def _plan(reasoning: str, *steps: PlanStep) -> ExecutionPlan:
    return ExecutionPlan(steps=tuple(steps), reasoning=reasoning)


def _channel_plan(reasoning: str, handle: str) -> ExecutionPlan:
    return _plan(
        reasoning,
        PlanStep("goto_url", f"https://www.youtube.com/@{handle}/videos"),
        PlanStep("narrate", "the channel page and recent videos"),
        PlanStep("extract_info", "List the most recent videos with titles and upload dates"),
        PlanStep("done", "with a conversational summary of the videos"),
    )


def plan_fast_path(instruction: str) -> ExecutionPlan | None:
    """Match ``instruction`` against known patterns, in priority order.

    1. explicit http(s) address
    2. ``@handle`` channel syntax
    3. creator phrase plus video vocabulary
    4. video topic search
    5. marketplace keyword
    6. "find the best X and get Y" composite
    7. generic search phrase

    Returns:
        A plan, or None when no pattern applies.
    """
    lower = instruction.lower().strip()

    url_match = _URL_RE.search(instruction)
    if url_match:
        url = url_match.group(0).rstrip(_URL_TRAILING)
        return _plan(
            f"User provided a direct URL: {url}",
            PlanStep("goto_url", url),
            PlanStep("narrate", "what the page looks like"),
            PlanStep("extract_info", f"key content on this page relevant to: {instruction}"),
            PlanStep("done", "with a conversational summary"),
        )

    handle_match = _HANDLE_RE.search(instruction)
    if handle_match:
        handle = handle_match.group(1)
        return _channel_plan(f"YouTube creator handle detected: @{handle}", handle)

    creator_match = _CREATOR_RE.search(lower)
    if creator_match and ("youtube" in lower or "video" in lower):
        creator = re.sub(r"\s+", "", creator_match.group(1).strip())
        return _channel_plan(f"YouTube creator search: {creator}", creator)

    if "youtube" in lower or ("video" in lower and "by " not in lower):
        query = _squash(_VIDEO_NOISE_RE.sub("", lower))
        if len(query) > 2:
            return _plan(
                f"YouTube topic search: {query}",
                PlanStep("goto_url", f"https://www.youtube.com/results?search_query={_encode(query)}"),
                PlanStep("narrate", "the search results"),
                PlanStep("extract_info", "List the top video results with titles, channels, and view counts"),
                PlanStep("done", "with a conversational summary"),
            )

    for site, base_url in SHOPPING_SITES.items():
        if site not in lower:
            continue
        noise = re.compile(rf"\b(search|find|look|for|on|{site}|show|me|the|get|buy|price|of)\b|'s\b")
        query = _squash(noise.sub("", lower))
        if len(query) > 1:
            return _plan(
                f"Shopping search on {site}: {query}",
                PlanStep("goto_url", f"{base_url}{_encode(query)}"),
                PlanStep("narrate", "the search results page: product names, prices, ratings"),
                PlanStep("extract_info", "List the top products with names, prices, and ratings"),
                PlanStep("done", "with a conversational summary of the products found"),
            )

    best_match = _BEST_THEN_RE.search(lower)
    if best_match:
        topic = best_match.group(1).strip()
        detail = best_match.group(2).strip()
        return _plan(
            f"Multi-step: find best {topic}, then get {detail}",
            PlanStep("goto_url", f"https://www.google.com/search?q={_encode(f'best {topic}')}"),
            PlanStep("narrate", "the Google search results"),
            PlanStep("extract_info", f"What is the top-recommended result for best {topic}?"),
            PlanStep("goto_url", "to the top result's website"),
            PlanStep("narrate", "what the page looks like"),
            PlanStep("extract_info", detail),
            PlanStep("done", f"with a summary of the best {topic} and {detail}"),
        )

    search_match = _SEARCH_RE.search(lower)
    if search_match:
        query = _SEARCH_NOISE_RE.sub("", search_match.group(1)).strip()
        if len(query) > 2:
            return _plan(
                f"General search: {query}",
                PlanStep("goto_url", f"https://www.google.com/search?q={_encode(query)}"),
                PlanStep("narrate", "the top search results"),
                PlanStep("extract_info", f"Summarize the most relevant information about: {query}"),
                PlanStep("done", "with a conversational summary"),
            )

    return None


def format_plan_for_prompt(plan: ExecutionPlan) -> str:
    """Render a plan as numbered guidance text for the automation backend."""
    numbered = "\n".join(f"{i}. {step.describe()}" for i, step in enumerate(plan.steps, start=1))
    return (
        f"EXECUTION PLAN ({len(plan.steps)} steps, follow in order, adapt if needed):\n{numbered}"
    )


def log_plan(plan: ExecutionPlan | None, instruction: str) -> None:
    """Log the planner outcome for an instruction."""
    if plan is None:
        log.debug(FAST_PATH_PLANNED, matched=False, instruction_length=len(instruction))
        return
    log.info(FAST_PATH_PLANNED, matched=True, reasoning=plan.reasoning, steps=len(plan.steps))
