"""Inline timing of the phases of one routed instruction.

Usage:
    timer = PhaseTimer(trace_id=ctx.trace_id)

    with timer.span("load_preferences"):
        preferences = memory.load_preferences()

    timer.mark("routing_decision", capability="navigate")
    log.info(TASK_COMPLETED, phases=timer.to_breakdown())
"""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Phase:
    """One timed phase.

    Attributes:
        name: Phase name.
        offset_ms: Start, in milliseconds since the timer was created.
        duration_ms: Duration in milliseconds; zero for instant marks.
        metadata: Extra key-value pairs attached on close.
    """

    name: str
    offset_ms: float
    duration_ms: float
    metadata: dict[str, Any] = field(default_factory=dict)


def _ms(ns: int) -> float:
    return round(ns / 1_000_000, 2)


class PhaseTimer:
    """Monotonic-clock phase recorder for a single instruction."""

    def __init__(self, trace_id: str) -> None:  # noqa: D107
        self.trace_id = trace_id
        self._origin_ns = time.monotonic_ns()
        self._phases: list[Phase] = []

    @contextmanager
    def span(self, name: str, **metadata: Any) -> Iterator[dict[str, Any]]:
        """Time the enclosed block.

        Yields a dict the block may add metadata to; it is merged into the
        recorded phase on exit, including when the block raises.
        """
        start_ns = time.monotonic_ns()
        extra: dict[str, Any] = {}
        try:
            yield extra
        finally:
            end_ns = time.monotonic_ns()
            self._phases.append(
                Phase(
                    name=name,
                    offset_ms=_ms(start_ns - self._origin_ns),
                    duration_ms=_ms(end_ns - start_ns),
                    metadata={**metadata, **extra},
                )
            )

    def mark(self, name: str, **metadata: Any) -> None:
        """Record a zero-duration marker."""
        self._phases.append(
            Phase(
                name=name,
                offset_ms=_ms(time.monotonic_ns() - self._origin_ns),
                duration_ms=0.0,
                metadata=dict(metadata),
            )
        )

    def total_ms(self) -> float:
        """Milliseconds since the timer was created."""
        return _ms(time.monotonic_ns() - self._origin_ns)

    def to_breakdown(self) -> list[dict[str, Any]]:
        """Phases ordered by start offset, as plain dicts for logging."""
        breakdown = []
        for phase in sorted(self._phases, key=lambda p: p.offset_ms):
            entry: dict[str, Any] = {
                "phase": phase.name,
                "offset_ms": phase.offset_ms,
                "duration_ms": phase.duration_ms,
            }
            if phase.metadata:
                entry.update(phase.metadata)
            breakdown.append(entry)
        return breakdown
