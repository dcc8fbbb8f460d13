"""Task handlers invoked by the task router.

- Execution agent: carries instructions out against the automation backend
- Safety agent: three-way risk verdict for proposed actions
- Memory agent: durable preferences and learned flows
- Vision agent: spoken impression of how the current page looks
- Fast-path planner and playbook matcher: model-free guidance for execution
"""

from resight.agents.execution import BotWallDetected, ExecutionAgent, TierFailed, navigation_target
from resight.agents.memory_agent import MemoryAgent
from resight.agents.planner import ExecutionPlan, PlanStep, plan_fast_path
from resight.agents.playbook import PlaybookFlow, find_similar_flow, load_playbook
from resight.agents.safety import SafetyAgent, SafetyVerdict, ThreatType, screen_signatures
from resight.agents.types import HistoryTurn, Instruction, SendEvent, TaskResult
from resight.agents.vision import VisionAgent

__all__ = [
    "TaskResult",
    "Instruction",
    "HistoryTurn",
    "SendEvent",
    "ExecutionAgent",
    "TierFailed",
    "BotWallDetected",
    "navigation_target",
    "MemoryAgent",
    "VisionAgent",
    "SafetyAgent",
    "SafetyVerdict",
    "ThreatType",
    "screen_signatures",
    "ExecutionPlan",
    "PlanStep",
    "plan_fast_path",
    "PlaybookFlow",
    "find_similar_flow",
    "load_playbook",
]
