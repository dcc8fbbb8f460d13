"""Request and response models for the HTTP surface."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class HistoryTurnModel(BaseModel):
    """One prior conversation turn."""

    role: Literal["user", "assistant"]
    text: str


class OrchestratorRequest(BaseModel):
    """Task submission. ``instruction`` is checked by the endpoint so a missing one is a 400."""

    instruction: str | None = None
    history: list[HistoryTurnModel] = Field(default_factory=list)


class ClarificationAnswer(BaseModel):
    answer: str | None = None


class ClarificationResponse(BaseModel):
    """The pending question, or ``question: null`` when there is none."""

    question: str | None = None
    options: list[str] | None = None


class AckResponse(BaseModel):
    ok: bool


class InterruptResponse(BaseModel):
    """Result of an out-of-band interrupt."""

    ok: bool = True
    aborted: int = Field(0, description="Cancellation handles invoked")


HealthResponse = dict[str, Any]
