"""Trace identifiers for correlating log events of one instruction."""

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class TraceContext:
    """Correlation identifiers carried through one routed instruction.

    Attributes:
        trace_id: Identifier shared by every log event of the instruction.
        parent_span_id: Span that spawned the current unit of work, if any.
    """

    trace_id: str
    parent_span_id: str | None = None

    @classmethod
    def new_trace(cls) -> "TraceContext":
        """Start a fresh trace with no parent span."""
        return cls(trace_id=uuid.uuid4().hex)

    def new_span(self) -> tuple["TraceContext", str]:
        """Open a child span.

        Returns:
            The child context (same trace, parent set to the new span) and the span id.
        """
        span_id = uuid.uuid4().hex[:16]
        return TraceContext(trace_id=self.trace_id, parent_span_id=span_id), span_id
