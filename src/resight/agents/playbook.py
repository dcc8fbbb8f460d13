"""Playbook matcher: keyword-scored retrieval of exemplar flows.

Before a task runs, the instruction is matched against a small static catalog
of reference flows (config/playbook.yaml). The best match, if it is clearly
relevant, is handed to the automation backend as guidance on approach and tone.
"""

import re
from collections.abc import Sequence
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from resight.config.loader import ConfigLoadError, load_yaml_file
from resight.telemetry import get_logger
from resight.telemetry.events import PLAYBOOK_MATCHED

log = get_logger(__name__)

MATCH_THRESHOLD = 1.5

STOP_WORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "is", "it", "this", "that", "can", "you", "me",
        "my", "i", "we", "do", "what", "how", "where", "when", "which",
        "from", "up", "out", "if", "about", "into", "then", "some", "so",
        "tell", "show", "give", "get", "find", "look", "check", "please",
        "also", "just", "really", "very", "most", "best", "top", "good",
    }
)

_NON_TOKEN_RE = re.compile(r"[^a-z0-9\s.-]")


class PlaybookError(ConfigLoadError):
    """The playbook catalog cannot be loaded."""

    pass


class PlaybookFlow(BaseModel):
    """One exemplar flow.

    Attributes:
        id: Stable identifier.
        title: Short human title.
        keywords: Declared keywords; multi-word keywords are allowed.
        instruction: Example user instruction the flow answers.
        reference: Condensed reference of the ideal approach.
        agents: Agents involved, for display and logging.
    """

    model_config = {"frozen": True}

    id: str
    title: str
    keywords: tuple[str, ...] = Field(default_factory=tuple)
    instruction: str
    reference: str
    agents: tuple[str, ...] = Field(default_factory=tuple)


def tokenize(text: str) -> list[str]:
    """Lowercase, blank out punctuation other than ``.`` and ``-``, drop stop-words and 1-char tokens."""
    cleaned = _NON_TOKEN_RE.sub(" ", text.lower())
    return [word for word in cleaned.split() if len(word) > 1 and word not in STOP_WORDS]


def score_flow(flow: PlaybookFlow, tokens: Sequence[str]) -> float:
    """Normalized overlap score of ``tokens`` against ``flow``.

    Per token: +2 if it equals a keyword or either contains the other, +1 if
    it occurs in the title, +1 if it occurs in the example instruction. The
    sum is divided by the token count.
    """
    if not tokens:
        return 0.0
    keywords = [keyword.lower() for keyword in flow.keywords]
    title = flow.title.lower()
    example = flow.instruction.lower()

    score = 0
    for token in tokens:
        if any(kw == token or kw in token or token in kw for kw in keywords):
            score += 2
        if token in title:
            score += 1
        if token in example:
            score += 1
    return score / len(tokens)


def find_similar_flow(
    instruction: str, flows: Sequence[PlaybookFlow] | None = None
) -> PlaybookFlow | None:
    """Return the best-matching flow when its score exceeds ``MATCH_THRESHOLD``.

    Ties go to the flow declared first.

    Args:
        instruction: User instruction.
        flows: Catalog to search; defaults to the configured playbook.
    """
    tokens = tokenize(instruction)
    if not tokens:
        return None
    catalog = default_flows() if flows is None else flows

    best_flow: PlaybookFlow | None = None
    best_score = 0.0
    for flow in catalog:
        score = score_flow(flow, tokens)
        if score > best_score:
            best_score = score
            best_flow = flow

    if best_flow is None or best_score <= MATCH_THRESHOLD:
        return None
    log.info(PLAYBOOK_MATCHED, flow_id=best_flow.id, score=round(best_score, 2))
    return best_flow


def format_flow_for_prompt(flow: PlaybookFlow) -> str:
    return (
        f"REFERENCE FLOW ({flow.title}):\n"
        f'Example request: "{flow.instruction}"\n'
        f"{flow.reference.strip()}"
    )


def load_playbook(path: Path) -> tuple[PlaybookFlow, ...]:
    """Load and validate a playbook catalog.

    Raises:
        PlaybookError: If the file is missing, malformed, or fails validation.
    """
    content = load_yaml_file(path, error_class=PlaybookError)
    raw_flows = content.get("flows") or []
    if not isinstance(raw_flows, list):
        raise PlaybookError(f"'flows' in {path} must be a list")
    try:
        return tuple(PlaybookFlow.model_validate(item) for item in raw_flows)
    except ValidationError as e:
        raise PlaybookError(f"Invalid playbook flow in {path}: {e}") from None


@lru_cache(maxsize=1)
def default_flows() -> tuple[PlaybookFlow, ...]:
    """The configured catalog, loaded once per process."""
    from resight.config.settings import get_settings  # noqa: PLC0415

    flows = load_playbook(get_settings().playbook_path)
    log.debug("playbook_loaded", flows=len(flows))
    return flows
