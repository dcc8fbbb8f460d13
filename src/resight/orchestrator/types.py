"""Core types for the task router.

This module defines the closed set of decisions the router's loop can take:
- Navigate: hand an instruction to the execution agent
- Remember: store or recall a preference through the memory agent
- SafetyCheck: ask the safety agent for a verdict on an action
- Finish: stop the loop with a final message

plus the context a decision strategy sees at each step.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from resight.agents.types import Instruction, TaskResult
from resight.telemetry.trace import TraceContext


class CapabilityKind(str, Enum):
    """Decision tags, as used in logs and in the router model's JSON."""

    NAVIGATE = "navigate"
    REMEMBER = "remember"
    SAFETY_CHECK = "safety_check"
    FINISH = "finish"


@dataclass(frozen=True)
class Navigate:
    """Carry ``instruction`` out in the browser."""

    instruction: str

    @property
    def kind(self) -> CapabilityKind:
        return CapabilityKind.NAVIGATE


@dataclass(frozen=True)
class Remember:
    """Store or recall one preference.

    Attributes:
        action: ``store`` or ``recall``.
        key: Preference key.
        value: Value to store; ignored for recall.
    """

    action: Literal["store", "recall"]
    key: str
    value: str | None = None

    @property
    def kind(self) -> CapabilityKind:
        return CapabilityKind.REMEMBER


@dataclass(frozen=True)
class SafetyCheck:
    """Judge ``action`` before it is carried out."""

    action: str
    page_context: str = ""

    @property
    def kind(self) -> CapabilityKind:
        return CapabilityKind.SAFETY_CHECK


@dataclass(frozen=True)
class Finish:
    """End the loop. An empty message keeps the last capability's message."""

    message: str = ""

    @property
    def kind(self) -> CapabilityKind:
        return CapabilityKind.FINISH


Capability = Navigate | Remember | SafetyCheck
Decision = Navigate | Remember | SafetyCheck | Finish


def describe_decision(decision: Decision) -> dict[str, Any]:
    """Log-friendly fields for a decision (values are never logged)."""
    fields: dict[str, Any] = {"capability": decision.kind.value}
    if isinstance(decision, Remember):
        fields.update(action=decision.action, key=decision.key)
    elif isinstance(decision, Navigate):
        fields["instruction_length"] = len(decision.instruction)
    return fields


@dataclass(frozen=True)
class StepRecord:
    """One executed capability and its result."""

    capability: Capability
    result: TaskResult


@dataclass
class DecisionContext:
    """What a decision strategy sees before each step.

    Attributes:
        instruction: The routed instruction with its history.
        preferences: Stored user preferences, loaded when routing began.
        steps: Capabilities executed so far, in order.
        trace_ctx: Trace context for log correlation.
    """

    instruction: Instruction
    preferences: dict[str, Any] = field(default_factory=dict)
    steps: list[StepRecord] = field(default_factory=list)
    trace_ctx: TraceContext | None = None

    @property
    def last_step(self) -> StepRecord | None:
        return self.steps[-1] if self.steps else None
