"""Memory agent: durable user preferences and learned flows.

``store`` and ``recall`` never raise; storage failures come back as failed
results. Learned flows live in the same document under a reserved key and are
written best-effort by the task router after a successful navigation.
"""

import re
import time
from typing import Any

from pydantic import ValidationError

from resight.agents.playbook import tokenize
from resight.agents.types import SendEvent, TaskResult
from resight.memory import LEARNED_FLOWS_KEY, LearnedFlow, PreferenceStore, PreferenceStoreError
from resight.telemetry import get_logger
from resight.telemetry.events import LEARNED_FLOW_SAVED, PREFERENCE_STORE_FAILED, PREFERENCE_STORED

log = get_logger(__name__)

AGENT_NAME = "Scribe"

# Minimum token overlap (Jaccard) for a learned flow to count as the same request
LEARNED_FLOW_SIMILARITY = 0.6

_PATTERN_MAX_CHARS = 120
_SPACES_RE = re.compile(r"\s+")


def normalize_pattern(instruction: str) -> str:
    """Condensed form of an instruction used as a learned-flow key."""
    pattern = _SPACES_RE.sub(" ", instruction.lower()).strip().rstrip(".!?")
    return pattern[:_PATTERN_MAX_CHARS]


def _display(value: Any) -> str:
    return value if isinstance(value, str) else repr(value)


class MemoryAgent:
    """Stores and recalls preferences in the preference document.

    Args:
        store: Backing preference document.
        send_event: Trace publisher callback.
        learned_flow_limit: Most recent learned flows to keep.
    """

    def __init__(  # noqa: D107
        self, store: PreferenceStore, send_event: SendEvent, learned_flow_limit: int = 20
    ) -> None:
        self.preferences = store
        self.send_event = send_event
        self.learned_flow_limit = learned_flow_limit

    def store(self, key: str, value: Any) -> TaskResult:
        """Persist ``key``; sibling keys are left untouched."""
        self.send_event(AGENT_NAME, f'Storing "{key}"')
        if key == LEARNED_FLOWS_KEY:
            return TaskResult.fail(f'"{key}" is reserved')
        try:
            self.preferences.set(key, value)
        except PreferenceStoreError as e:
            log.error(PREFERENCE_STORE_FAILED, key=key, error=str(e))
            self.send_event(AGENT_NAME, f'Couldn\'t save "{key}"')
            return TaskResult.fail(f'I couldn\'t save "{key}" right now.')

        log.info(PREFERENCE_STORED, key=key)
        self.send_event(AGENT_NAME, f'Stored: {key} = "{_display(value)}"')
        return TaskResult.ok(f'Remembered: {key} = "{_display(value)}"', data={key: value})

    def recall(self, key: str) -> TaskResult:
        """Look up ``key``; a missing key is a failed result, not an error."""
        self.send_event(AGENT_NAME, f'Recalling "{key}"')
        found = self.preferences.get(key)
        if found is None:
            self.send_event(AGENT_NAME, f'No memory found for "{key}"')
            return TaskResult.fail(f'No stored value for "{key}"')
        self.send_event(AGENT_NAME, f'Found: {key} = "{_display(found)}"')
        return TaskResult.ok(f"{key}: {_display(found)}", data={key: found})

    def load_preferences(self) -> dict[str, Any]:
        """All user preferences, without the reserved learned-flow key."""
        self.send_event(AGENT_NAME, "Loading user context...")
        preferences = {k: v for k, v in self.preferences.read().items() if k != LEARNED_FLOWS_KEY}
        if preferences:
            self.send_event(
                AGENT_NAME,
                f"Loaded {len(preferences)} preferences: {', '.join(sorted(preferences))}",
            )
        else:
            self.send_event(AGENT_NAME, "No stored preferences yet")
        return preferences

    def learned_flows(self) -> list[LearnedFlow]:
        """Stored learned flows, oldest first. Malformed entries are skipped."""
        raw = self.preferences.get(LEARNED_FLOWS_KEY)
        if not isinstance(raw, list):
            return []
        flows = []
        for item in raw:
            try:
                flows.append(LearnedFlow.model_validate(item))
            except ValidationError:
                log.debug("learned_flow_skipped", item=str(item)[:80])
        return flows

    def save_learned_flow(self, instruction: str, steps: str) -> LearnedFlow:
        """Record a successful ``(pattern, outcome)`` pair.

        An existing entry with the same pattern is updated in place; only the
        most recent ``learned_flow_limit`` entries are kept.

        Raises:
            PreferenceStoreError: If the document cannot be written.
        """
        flow = LearnedFlow(
            pattern=normalize_pattern(instruction),
            steps=steps.strip()[:400],
            timestamp=int(time.time() * 1000),
        )
        flows = self.learned_flows()
        for i, existing in enumerate(flows):
            if existing.pattern == flow.pattern:
                flows[i] = flow
                break
        else:
            flows.append(flow)
        trimmed = flows[-self.learned_flow_limit :]
        self.preferences.set(LEARNED_FLOWS_KEY, [f.model_dump() for f in trimmed])
        log.info(LEARNED_FLOW_SAVED, pattern=flow.pattern, total=len(trimmed))
        return flow

    def find_learned_flow(self, instruction: str) -> LearnedFlow | None:
        """Most similar learned flow, or None below ``LEARNED_FLOW_SIMILARITY``.

        Later flows win ties, so a re-learned pattern takes precedence.
        """
        pattern = normalize_pattern(instruction)
        tokens = set(tokenize(pattern))
        best: LearnedFlow | None = None
        best_score = 0.0
        for flow in self.learned_flows():
            if flow.pattern == pattern:
                return flow
            flow_tokens = set(tokenize(flow.pattern))
            if not tokens or not flow_tokens:
                continue
            score = len(tokens & flow_tokens) / len(tokens | flow_tokens)
            if score >= best_score:
                best, best_score = flow, score
        if best is None or best_score < LEARNED_FLOW_SIMILARITY:
            return None
        return best
