"""Shared fixtures: an in-memory automation backend and wired coordination state."""

import asyncio
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Keep test runs from writing telemetry/logs/current.jsonl
os.environ.setdefault("RESIGHT_LOG_TO_FILE", "0")

from resight.agents.execution import ExecutionAgent
from resight.agents.memory_agent import MemoryAgent
from resight.agents.safety import SafetyAgent
from resight.browser import (
    ActionOutcome,
    AutomationBackend,
    BackendUnavailable,
    ObservedElement,
    PageElement,
    PageInfo,
)
from resight.coordination import ClarificationBridge, Coordination
from resight.llm_client import ChatCompletionsClient, LLMResponse
from resight.memory import PreferenceStore
from resight.orchestrator import RuleDecisionStrategy, TaskRouter


class FakeBackend:
    """Scriptable in-memory browser session.

    ``outcomes`` are returned by ``act`` in order (the last one repeats).
    ``cards`` are returned for every element query whose selector is not the
    interactive one. URLs containing ``slow_marker`` block on navigate until
    cancelled.
    """

    def __init__(  # noqa: D107
        self,
        outcomes: list[ActionOutcome] | None = None,
        observed: list[ObservedElement] | None = None,
        elements: list[PageElement] | None = None,
        cards: list[PageElement] | None = None,
        title: str = "Example Domain",
        text: str = "",
        unavailable: bool = False,
        slow_marker: str = "slow",
    ) -> None:
        self.outcomes = list(outcomes or [ActionOutcome(success=True, message="Done it.")])
        self.observed = observed or []
        self.elements = elements or []
        self.cards = cards or []
        self.title = title
        self.text = text
        self.unavailable = unavailable
        self.slow_marker = slow_marker
        self.url = "about:blank"
        self.calls: list[tuple[str, Any]] = []
        self.acted: list[str] = []
        self.navigate_started = asyncio.Event()
        self.closed = False

    def _check(self) -> None:
        if self.unavailable:
            raise BackendUnavailable("connection refused")

    async def navigate(self, url: str) -> None:
        self.calls.append(("navigate", url))
        self._check()
        self.navigate_started.set()
        if self.slow_marker and self.slow_marker in url:
            await asyncio.Event().wait()
        self.url = url

    async def go_back(self) -> None:
        self.calls.append(("go_back", None))
        self._check()
        self.url = "https://previous.example.com"

    async def page_info(self) -> PageInfo:
        self._check()
        return PageInfo(url=self.url, title=self.title, text=self.text)

    async def observe(self, instruction: str) -> list[ObservedElement]:
        self.calls.append(("observe", instruction))
        self._check()
        return self.observed

    async def act(self, instruction: str) -> ActionOutcome:
        self.calls.append(("act", instruction))
        self._check()
        self.acted.append(instruction)
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]

    async def query_elements(self, selector: str, limit: int = 50) -> list[PageElement]:
        self.calls.append(("query_elements", selector))
        self._check()
        if selector.startswith("a, button"):
            return self.elements[:limit]
        return self.cards[:limit]

    async def click(self, ref: str) -> None:
        self.calls.append(("click", ref))
        self._check()

    async def screenshot(self) -> str:
        self._check()
        return "aW1hZ2U="

    async def close(self) -> None:
        self.closed = True

    def navigated(self) -> list[str]:
        return [arg for name, arg in self.calls if name == "navigate"]


class FakeSessions:
    """Session factory handing out one prepared bare session."""

    def __init__(self, session: FakeBackend | None = None) -> None:  # noqa: D107
        self.session = session or FakeBackend()
        self.opened = 0

    async def open_session(self) -> AutomationBackend:
        self.opened += 1
        return self.session


def model_reply(content: str) -> LLMResponse:
    return LLMResponse(content=content, finish_reason="stop", usage={}, raw={})


@pytest.fixture
def coordination() -> Coordination:
    return Coordination(clarification=ClarificationBridge(timeout_seconds=2.0))


@pytest.fixture
def send_event(coordination: Coordination) -> Callable[[str, str], Any]:
    return coordination.trace.send_event


@pytest.fixture
def preference_store(tmp_path: Path) -> PreferenceStore:
    return PreferenceStore(tmp_path / "user_context.json")


@pytest.fixture
def memory(preference_store: PreferenceStore, send_event: Callable[[str, str], Any]) -> MemoryAgent:
    return MemoryAgent(preference_store, send_event)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sessions() -> FakeSessions:
    return FakeSessions()


@pytest.fixture
def llm() -> MagicMock:
    """Model client whose safety verdict is a plain approval."""
    client = MagicMock(spec=ChatCompletionsClient)
    client.respond = AsyncMock(
        return_value=model_reply(
            '{"safe": true, "reason": "ok", "confirmationRequired": false, "threatType": "none"}'
        )
    )
    return client


@pytest.fixture
def execution(
    backend: FakeBackend,
    sessions: FakeSessions,
    coordination: Coordination,
    memory: MemoryAgent,
) -> ExecutionAgent:
    return ExecutionAgent(
        backend, sessions, coordination, coordination.trace.send_event, memory=memory, flows=()
    )


@pytest.fixture
def safety(llm: MagicMock, coordination: Coordination) -> SafetyAgent:
    return SafetyAgent(llm, coordination.trace.send_event)


@pytest.fixture
def router(
    coordination: Coordination,
    execution: ExecutionAgent,
    memory: MemoryAgent,
    safety: SafetyAgent,
) -> TaskRouter:
    return TaskRouter(
        coordination,
        execution=execution,
        memory=memory,
        safety=safety,
        strategy=RuleDecisionStrategy(),
    )
