"""Automation backend reached over HTTP.

The browser runs in a separate automation server. Each browser session is a
resource under ``/sessions/{id}``; the primary session is long-lived and named
in configuration, bare sessions are created on demand and deleted on close.
Bare sessions can live on a second server (``RESIGHT_BARE_BACKEND_URL``) so
that they stay reachable when the primary one is down.

Wire format (JSON):
    POST   /sessions                      {"mode": "bare"}        -> {"session_id": str}
    DELETE /sessions/{id}
    POST   /sessions/{id}/navigate        {"url": str}
    POST   /sessions/{id}/back
    GET    /sessions/{id}/page                                    -> {"url", "title", "text"?}
    POST   /sessions/{id}/observe         {"instruction": str}    -> {"elements": [...]}
    POST   /sessions/{id}/act             {"instruction": str}    -> {"success", "message", "question"?, "options"?}
    POST   /sessions/{id}/elements        {"selector", "limit"}   -> {"elements": [...]}
    POST   /sessions/{id}/click           {"ref": str}
    GET    /sessions/{id}/screenshot                              -> {"image": base64}
"""

from typing import Any

import httpx

from resight.browser.base import (
    ActionOutcome,
    AutomationBackend,
    BackendActionError,
    BackendUnavailable,
    ObservedElement,
    PageElement,
    PageInfo,
)
from resight.config.settings import AppConfig
from resight.coordination.frames import HighlightRegion
from resight.telemetry import get_logger
from resight.telemetry.events import BACKEND_SESSION_CLOSED, BACKEND_SESSION_OPENED

log = get_logger(__name__)

PRIMARY_SESSION_ID = "primary"


def _region(data: Any, label: str = "") -> HighlightRegion | None:
    if not isinstance(data, dict):
        return None
    try:
        return HighlightRegion(
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            height=float(data["height"]),
            label=label,
        )
    except (KeyError, TypeError, ValueError):
        return None


class HttpAutomationBackend:
    """One browser session on the automation server.

    Args:
        client: Shared httpx client with ``base_url`` set to the server.
        session_id: Session resource id.
        owns_session: Delete the session on ``close`` (bare sessions).
    """

    def __init__(
        self, client: httpx.AsyncClient, session_id: str = PRIMARY_SESSION_ID, owns_session: bool = False
    ) -> None:
        self._client = client
        self.session_id = session_id
        self.owns_session = owns_session

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"/sessions/{self.session_id}{path}"
        try:
            response = await self._client.request(method, url, json=json)
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise BackendUnavailable(f"Automation backend unreachable: {e}") from e
        except httpx.RequestError as e:
            raise BackendUnavailable(f"Automation backend request failed: {e}") from e

        if response.status_code in (502, 503, 504):
            raise BackendUnavailable(f"Automation backend unavailable ({response.status_code})")
        if response.status_code >= 400:
            raise BackendActionError(
                f"{method} {path or '/'} failed with {response.status_code}: {response.text[:200]}"
            )
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise BackendActionError(f"{method} {path or '/'} returned a non-JSON body") from e
        return body if isinstance(body, dict) else {}

    async def navigate(self, url: str) -> None:
        await self._request("POST", "/navigate", {"url": url})

    async def go_back(self) -> None:
        await self._request("POST", "/back")

    async def page_info(self) -> PageInfo:
        body = await self._request("GET", "/page")
        return PageInfo(
            url=str(body.get("url", "")),
            title=str(body.get("title", "")),
            text=str(body.get("text") or ""),
        )

    async def observe(self, instruction: str) -> list[ObservedElement]:
        body = await self._request("POST", "/observe", {"instruction": instruction})
        elements = []
        for item in body.get("elements") or []:
            if not isinstance(item, dict):
                continue
            description = str(item.get("description", ""))
            elements.append(
                ObservedElement(
                    description=description,
                    selector=item.get("selector"),
                    region=_region(item.get("box"), label=description),
                )
            )
        return elements

    async def act(self, instruction: str) -> ActionOutcome:
        body = await self._request("POST", "/act", {"instruction": instruction})
        options = body.get("options") or []
        return ActionOutcome(
            success=bool(body.get("success", False)),
            message=str(body.get("message", "")),
            question=body.get("question") or None,
            options=tuple(str(option) for option in options),
        )

    async def query_elements(self, selector: str, limit: int = 50) -> list[PageElement]:
        body = await self._request("POST", "/elements", {"selector": selector, "limit": limit})
        elements = []
        for item in (body.get("elements") or [])[:limit]:
            if not isinstance(item, dict) or "ref" not in item:
                continue
            text = " ".join(str(item.get("text", "")).split())
            elements.append(
                PageElement(
                    ref=str(item["ref"]),
                    text=text,
                    role=str(item.get("role", "")),
                    region=_region(item.get("box"), label=text[:60]),
                )
            )
        return elements

    async def click(self, ref: str) -> None:
        await self._request("POST", "/click", {"ref": ref})

    async def screenshot(self) -> str:
        body = await self._request("GET", "/screenshot")
        image = body.get("image")
        if not isinstance(image, str) or not image:
            raise BackendActionError("Screenshot response carried no image")
        return image

    async def close(self) -> None:
        if not self.owns_session:
            return
        try:
            await self._client.delete(f"/sessions/{self.session_id}")
        except httpx.RequestError as e:
            log.warning(BACKEND_SESSION_CLOSED, session_id=self.session_id, error=str(e))
            return
        log.info(BACKEND_SESSION_CLOSED, session_id=self.session_id)


class HttpSessionFactory:
    """Opens bare isolated sessions on the automation server."""

    def __init__(self, client: httpx.AsyncClient) -> None:  # noqa: D107
        self._client = client

    async def open_session(self) -> AutomationBackend:
        """Create a bare session.

        Raises:
            BackendUnavailable: If the server cannot create one.
        """
        try:
            response = await self._client.post("/sessions", json={"mode": "bare"})
            response.raise_for_status()
            session_id = response.json()["session_id"]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise BackendUnavailable(f"Could not open an isolated session: {e}") from e
        log.info(BACKEND_SESSION_OPENED, session_id=session_id, mode="bare")
        return HttpAutomationBackend(self._client, session_id=str(session_id), owns_session=True)


def build_http_client(
    settings: AppConfig,
    transport: httpx.AsyncBaseTransport | None = None,
    base_url: str | None = None,
) -> httpx.AsyncClient:
    """Shared httpx client for an automation server.

    Args:
        settings: Credentials and timeouts.
        transport: Optional httpx transport.
        base_url: Server to reach; defaults to ``settings.backend_url``.

    Raises:
        BackendUnavailable: If no backend URL is configured.
    """
    base_url = base_url or settings.backend_url
    if not base_url:
        raise BackendUnavailable("No automation backend configured (RESIGHT_BACKEND_URL)")
    headers = {}
    if settings.backend_api_key:
        headers["Authorization"] = f"Bearer {settings.backend_api_key}"
    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers,
        timeout=httpx.Timeout(settings.backend_timeout_seconds, connect=5.0),
        transport=transport,
    )
