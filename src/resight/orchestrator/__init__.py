"""Task router, its decision strategies and capability types."""

from resight.orchestrator.router import (
    BACK_VOCABULARY,
    INTERRUPT_VOCABULARY,
    STOPPED_REPLY,
    TaskRouter,
)
from resight.orchestrator.strategy import (
    DecisionStrategy,
    ModelDecisionStrategy,
    RuleDecisionStrategy,
    parse_remember,
)
from resight.orchestrator.types import (
    Capability,
    CapabilityKind,
    Decision,
    DecisionContext,
    Finish,
    Navigate,
    Remember,
    SafetyCheck,
    StepRecord,
)

__all__ = [
    "TaskRouter",
    "INTERRUPT_VOCABULARY",
    "BACK_VOCABULARY",
    "STOPPED_REPLY",
    "DecisionStrategy",
    "RuleDecisionStrategy",
    "ModelDecisionStrategy",
    "parse_remember",
    "Capability",
    "CapabilityKind",
    "Decision",
    "DecisionContext",
    "Finish",
    "Navigate",
    "Remember",
    "SafetyCheck",
    "StepRecord",
]
