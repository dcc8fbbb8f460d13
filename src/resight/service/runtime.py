"""Wiring of one running service: coordination state, agents and router."""

from dataclasses import dataclass

import httpx

from resight.agents.execution import ExecutionAgent
from resight.agents.memory_agent import MemoryAgent
from resight.agents.safety import SafetyAgent
from resight.agents.vision import VisionAgent
from resight.browser import (
    AutomationBackend,
    DisconnectedBackend,
    HttpAutomationBackend,
    HttpSessionFactory,
    InstrumentedBackend,
    InstrumentedSessionFactory,
    SessionFactory,
    build_http_client,
)
from resight.config.settings import AppConfig
from resight.coordination import Coordination
from resight.llm_client import ChatCompletionsClient
from resight.memory import PreferenceStore
from resight.orchestrator import (
    DecisionStrategy,
    ModelDecisionStrategy,
    RuleDecisionStrategy,
    TaskRouter,
)
from resight.telemetry import get_logger

log = get_logger(__name__)


@dataclass
class Runtime:
    """Everything the HTTP surface needs, owned by one service instance."""

    settings: AppConfig
    coordination: Coordination
    router: TaskRouter
    backend: AutomationBackend
    http_client: httpx.AsyncClient | None = None
    bare_http_client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        for client in (self.http_client, self.bare_http_client):
            if client is not None:
                await client.aclose()


def build_strategy(settings: AppConfig, llm: ChatCompletionsClient) -> DecisionStrategy:
    if settings.decision_strategy == "model":
        return ModelDecisionStrategy(llm)
    return RuleDecisionStrategy()


def build_runtime(
    settings: AppConfig,
    llm: ChatCompletionsClient | None = None,
    backend: AutomationBackend | None = None,
    sessions: SessionFactory | None = None,
) -> Runtime:
    """Assemble a runtime from settings.

    Args:
        settings: Application configuration.
        llm: Model client; built from settings when omitted.
        backend: Primary session; an HTTP backend when a backend URL is
            configured, otherwise a disconnected stand-in.
        sessions: Bare session factory. When omitted it opens sessions on
            ``bare_backend_url``, or on the primary server when that is unset
            (in which case bare sessions fail whenever the primary does).
    """
    coordination = Coordination.from_settings(settings)
    send_event = coordination.trace.send_event
    llm = llm or ChatCompletionsClient.from_settings(settings)

    http_client: httpx.AsyncClient | None = None
    bare_http_client: httpx.AsyncClient | None = None
    if sessions is None and settings.bare_backend_url:
        bare_http_client = build_http_client(settings, base_url=settings.bare_backend_url)
        sessions = InstrumentedSessionFactory(HttpSessionFactory(bare_http_client))
    if backend is None:
        if settings.backend_url:
            http_client = build_http_client(settings)
            backend = InstrumentedBackend(HttpAutomationBackend(http_client), label="primary")
            if sessions is None:
                log.warning("bare_sessions_share_primary_server", backend_url=settings.backend_url)
                sessions = InstrumentedSessionFactory(HttpSessionFactory(http_client))
        else:
            disconnected = DisconnectedBackend()
            backend = disconnected
            sessions = sessions or disconnected
    if sessions is None:
        sessions = DisconnectedBackend("No isolated sessions available")

    memory = MemoryAgent(
        PreferenceStore(settings.preferences_path),
        send_event,
        learned_flow_limit=settings.learned_flow_limit,
    )
    vision = VisionAgent(llm, send_event) if settings.describe_pages else None
    execution = ExecutionAgent(
        backend, sessions, coordination, send_event, memory=memory, vision=vision
    )
    safety = SafetyAgent(llm, send_event)
    router = TaskRouter(
        coordination,
        execution=execution,
        memory=memory,
        safety=safety,
        strategy=build_strategy(settings, llm),
        max_steps=settings.router_max_steps,
    )
    log.info(
        "runtime_built",
        strategy=router.strategy.name,
        backend=type(backend).__name__,
        max_steps=router.max_steps,
        bare_sessions=type(sessions).__name__,
        describe_pages=vision is not None,
    )
    return Runtime(
        settings=settings,
        coordination=coordination,
        router=router,
        backend=backend,
        http_client=http_client,
        bare_http_client=bare_http_client,
    )
