"""Result and context types shared by the agents and the task router."""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Literal

# (agent, message) -> None; publishes one trace event
SendEvent = Callable[[str, str], Any]


@dataclass(frozen=True)
class TaskResult:
    """Outcome of one agent call or one routed instruction.

    Attributes:
        success: False when the task failed or was blocked.
        message: Natural-language outcome, safe to show or speak to the user.
        data: Optional structured payload.
        confirmation_required: The user should confirm once before proceeding.
    """

    success: bool
    message: str
    data: Mapping[str, Any] | None = None
    confirmation_required: bool = False

    @classmethod
    def ok(
        cls, message: str, data: dict[str, Any] | None = None, confirmation_required: bool = False
    ) -> "TaskResult":
        return cls(
            success=True,
            message=message,
            data=MappingProxyType(dict(data)) if data is not None else None,
            confirmation_required=confirmation_required,
        )

    @classmethod
    def fail(
        cls, message: str, data: dict[str, Any] | None = None, confirmation_required: bool = False
    ) -> "TaskResult":
        return cls(
            success=False,
            message=message,
            data=MappingProxyType(dict(data)) if data is not None else None,
            confirmation_required=confirmation_required,
        )

    def with_data(self, **extra: Any) -> "TaskResult":
        """Copy with ``extra`` merged into the data payload."""
        merged = {**(self.data or {}), **extra}
        return replace(self, data=MappingProxyType(merged))

    def to_dict(self) -> dict[str, Any]:
        """Wire representation (``confirmationRequired`` in camelCase)."""
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            payload["data"] = dict(self.data)
        if self.confirmation_required:
            payload["confirmationRequired"] = True
        return payload


@dataclass(frozen=True)
class HistoryTurn:
    """One prior conversation turn."""

    role: Literal["user", "assistant"]
    text: str


@dataclass(frozen=True)
class Instruction:
    """An inbound instruction with optional recent history, oldest turn first."""

    text: str
    history: tuple[HistoryTurn, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, text: str, history: Sequence[HistoryTurn] | None = None) -> "Instruction":
        return cls(text=text, history=tuple(history or ()))

    def history_text(self, limit: int = 6) -> str:
        """Recent turns rendered one per line, for prompts."""
        return "\n".join(f"{turn.role}: {turn.text}" for turn in self.history[-limit:])
