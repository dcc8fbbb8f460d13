"""Capability interface of the automation backend.

The backend drives a live browser. Two flavours exist behind the same
interface: the primary session, which also offers AI-assisted ``observe`` and
``act``, and bare isolated sessions that only support the deterministic
primitives. Bare sessions raise ``BackendActionError`` from the AI calls.
"""

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from resight.coordination.frames import HighlightRegion


class BackendError(Exception):
    """Base exception for automation backend failures."""

    pass


class BackendUnavailable(BackendError):
    """The backend cannot be reached or refuses new work."""

    pass


class BackendActionError(BackendError):
    """The backend was reached but the requested operation failed."""

    pass


@dataclass(frozen=True)
class ObservedElement:
    """An element the backend judged relevant to an instruction."""

    description: str
    selector: str | None = None
    region: HighlightRegion | None = None


@dataclass(frozen=True)
class PageElement:
    """A concrete element on the current page.

    Attributes:
        ref: Backend handle used to click the element.
        text: Visible text (or accessible label).
        role: Tag or ARIA role, e.g. ``button``, ``a``.
        region: Bounding box, when known.
    """

    ref: str
    text: str
    role: str = ""
    region: HighlightRegion | None = None


@dataclass(frozen=True)
class ActionOutcome:
    """Result of an AI-assisted action.

    A backend that needs the user to choose (size, account...) returns
    ``question`` and optional ``options`` instead of guessing.
    """

    success: bool
    message: str = ""
    question: str | None = None
    options: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PageInfo:
    """Where the session is.

    Attributes:
        url: Current address.
        title: Document title.
        text: Leading visible body text, when the backend reports it.
    """

    url: str
    title: str = ""
    text: str = ""


@runtime_checkable
class AutomationBackend(Protocol):
    """Operations the execution agent needs from a browser session."""

    async def navigate(self, url: str) -> None: ...

    async def go_back(self) -> None: ...

    async def page_info(self) -> PageInfo: ...

    async def observe(self, instruction: str) -> list[ObservedElement]: ...

    async def act(self, instruction: str) -> ActionOutcome: ...

    async def query_elements(self, selector: str, limit: int = 50) -> list[PageElement]: ...

    async def click(self, ref: str) -> None: ...

    async def screenshot(self) -> str: ...

    async def close(self) -> None: ...


class SessionFactory(Protocol):
    """Opens isolated bare sessions, independent of the primary one."""

    async def open_session(self) -> AutomationBackend: ...


class DisconnectedBackend:
    """Stands in when no automation server is configured; every call is unavailable."""

    def __init__(self, reason: str = "No automation backend configured") -> None:  # noqa: D107
        self.reason = reason

    def _fail(self) -> BackendUnavailable:
        return BackendUnavailable(self.reason)

    async def navigate(self, url: str) -> None:
        raise self._fail()

    async def go_back(self) -> None:
        raise self._fail()

    async def page_info(self) -> PageInfo:
        raise self._fail()

    async def observe(self, instruction: str) -> list[ObservedElement]:
        raise self._fail()

    async def act(self, instruction: str) -> ActionOutcome:
        raise self._fail()

    async def query_elements(self, selector: str, limit: int = 50) -> list[PageElement]:
        raise self._fail()

    async def click(self, ref: str) -> None:
        raise self._fail()

    async def screenshot(self) -> str:
        raise self._fail()

    async def close(self) -> None:
        return None

    async def open_session(self) -> AutomationBackend:
        raise self._fail()
