"""Automation backend interface and its HTTP implementation."""

from resight.browser.base import (
    ActionOutcome,
    AutomationBackend,
    BackendActionError,
    BackendError,
    BackendUnavailable,
    DisconnectedBackend,
    ObservedElement,
    PageElement,
    PageInfo,
    SessionFactory,
)
from resight.browser.http_backend import (
    HttpAutomationBackend,
    HttpSessionFactory,
    build_http_client,
)
from resight.browser.instrumented import InstrumentedBackend, InstrumentedSessionFactory

__all__ = [
    "AutomationBackend",
    "SessionFactory",
    "ActionOutcome",
    "ObservedElement",
    "PageElement",
    "PageInfo",
    "BackendError",
    "BackendUnavailable",
    "BackendActionError",
    "DisconnectedBackend",
    "HttpAutomationBackend",
    "HttpSessionFactory",
    "InstrumentedBackend",
    "InstrumentedSessionFactory",
    "build_http_client",
]
