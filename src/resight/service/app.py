"""FastAPI service application."""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import orjson
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse

from resight.agents.types import HistoryTurn, Instruction
from resight.config.settings import get_settings
from resight.coordination import TraceStream
from resight.service.models import (
    AckResponse,
    ClarificationAnswer,
    ClarificationResponse,
    HealthResponse,
    InterruptResponse,
    OrchestratorRequest,
)
from resight.service.runtime import Runtime, build_runtime
from resight.telemetry import configure_logging, get_logger
from resight.telemetry.events import REPLY_READY, SERVICE_STARTED, SERVICE_STOPPED

log = get_logger(__name__)

HEARTBEAT_COMMENT = ": heartbeat\n\n"


def format_sse(payload: dict[str, Any]) -> str:
    return f"data: {orjson.dumps(payload).decode()}\n\n"


async def trace_event_stream(
    trace: TraceStream,
    heartbeat_seconds: float,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """Server-sent events for the trace: retained history first, then live events.

    A heartbeat comment is sent whenever no event arrived for
    ``heartbeat_seconds``. The subscription is released when the client goes
    away or the generator is closed.
    """
    queue, unsubscribe = trace.subscribe_queue()
    try:
        while True:
            if is_disconnected is not None and await is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield HEARTBEAT_COMMENT
                continue
            yield format_sse(event.to_dict())
    finally:
        unsubscribe()


def get_runtime(request: Request) -> Runtime:
    runtime: Runtime | None = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return runtime


def create_app(runtime: Runtime | None = None) -> FastAPI:
    """Build the application.

    Args:
        runtime: Pre-built runtime (tests, embedding). When omitted one is
            built from settings at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan management."""
        owned = runtime is None
        if owned:
            configure_logging()
            app.state.runtime = build_runtime(get_settings())
        active: Runtime = app.state.runtime
        log.info(
            SERVICE_STARTED,
            port=active.settings.service_port,
            strategy=active.router.strategy.name,
        )

        yield

        if owned:
            await active.aclose()
        log.info(SERVICE_STOPPED)

    app = FastAPI(
        title="ReSight Coordination Service",
        description="Routes spoken instructions through browsing, safety and memory agents",
        version="0.3.0",
        lifespan=lifespan,
    )
    if runtime is not None:
        app.state.runtime = runtime

    # ========================================================================
    # Task submission
    # ========================================================================

    @app.post("/orchestrator")
    async def orchestrate(
        body: OrchestratorRequest, rt: Runtime = Depends(get_runtime)
    ) -> dict[str, Any]:
        """Route one instruction and return its TaskResult.

        Failed tasks are still 200 responses; ``success`` carries the outcome.
        """
        if body.instruction is None or not body.instruction.strip():
            raise HTTPException(status_code=400, detail="Missing 'instruction' field")
        instruction = Instruction.of(
            body.instruction.strip(),
            [HistoryTurn(role=turn.role, text=turn.text) for turn in body.history],
        )
        result = await rt.router.route(instruction)
        log.info(REPLY_READY, success=result.success, confirmation_required=result.confirmation_required)
        return result.to_dict()

    # ========================================================================
    # Trace
    # ========================================================================

    @app.get("/thought-stream")
    async def thought_stream(request: Request, rt: Runtime = Depends(get_runtime)) -> StreamingResponse:
        """Long-lived event stream of trace events."""
        stream = trace_event_stream(
            rt.coordination.trace,
            heartbeat_seconds=rt.settings.trace_heartbeat_seconds,
            is_disconnected=request.is_disconnected,
        )
        return StreamingResponse(
            stream,
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.get("/trace/history")
    async def trace_history(rt: Runtime = Depends(get_runtime)) -> list[dict[str, Any]]:
        return [event.to_dict() for event in rt.coordination.trace.get_history()]

    # ========================================================================
    # Clarification
    # ========================================================================

    @app.get("/clarification", response_model=ClarificationResponse)
    async def get_clarification(rt: Runtime = Depends(get_runtime)) -> ClarificationResponse:
        """The pending question, if any. Polling never resolves it."""
        pending = rt.coordination.clarification.peek()
        if pending is None:
            return ClarificationResponse(question=None)
        return ClarificationResponse(
            question=pending.question,
            options=list(pending.options) if pending.options else None,
        )

    @app.post("/clarification", response_model=AckResponse)
    async def post_clarification(
        body: ClarificationAnswer, rt: Runtime = Depends(get_runtime)
    ) -> AckResponse:
        if body.answer is None or not body.answer.strip():
            raise HTTPException(status_code=400, detail="Missing 'answer' field")
        return AckResponse(ok=rt.coordination.clarification.answer(body.answer.strip()))

    # ========================================================================
    # Frames and control
    # ========================================================================

    @app.get("/screenshot")
    async def screenshot(rt: Runtime = Depends(get_runtime)) -> dict[str, Any]:
        """Latest frame and highlighted regions; an unchanged timestamp means no new frame."""
        return rt.coordination.frames.snapshot().to_dict()

    @app.post("/interrupt", response_model=InterruptResponse)
    async def interrupt(rt: Runtime = Depends(get_runtime)) -> InterruptResponse:
        """Abort the active task, the same way a spoken "stop" does."""
        aborted = rt.coordination.cancellation.abort_active_task()
        rt.coordination.trace.send_event("Orchestrator", "Stopping")
        return InterruptResponse(ok=True, aborted=aborted)

    @app.get("/health")
    async def health_check(rt: Runtime = Depends(get_runtime)) -> HealthResponse:
        """Service health check endpoint."""
        coordination = rt.coordination
        return {
            "status": "healthy",
            "components": {
                "strategy": rt.router.strategy.name,
                "backend": type(rt.backend).__name__,
                "pending_question": coordination.clarification.has_pending(),
                "interrupted": coordination.cancellation.is_interrupted(),
                "active_roles": [role.value for role in coordination.cancellation.active_roles()],
                "trace_observers": coordination.trace.observer_count,
            },
        }

    return app


app = create_app()
