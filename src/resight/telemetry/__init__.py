"""Structured logging, event names, and trace correlation."""

from resight.telemetry.logger import configure_logging, get_logger
from resight.telemetry.timing import PhaseTimer
from resight.telemetry.trace import TraceContext

__all__ = [
    "TraceContext",
    "PhaseTimer",
    "get_logger",
    "configure_logging",
]
