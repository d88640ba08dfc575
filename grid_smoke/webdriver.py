"""Async client for the W3C WebDriver protocol spoken by the remote grid.

Only the handful of commands the smoke scenarios need are exposed. Every call
is a single JSON request/response; transport failures surface as ``httpx``
errors and protocol failures as ``WebDriverError``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx
import structlog


logger = structlog.get_logger(__name__)


ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"


class Keys:
    ENTER = "\ue007"
    TAB = "\ue004"
    ESCAPE = "\ue00c"


@dataclass(frozen=True)
class By:
    """Locator as sent on the wire: a W3C strategy plus its value."""

    using: str
    value: str

    @classmethod
    def css(cls, selector: str) -> "By":
        return cls("css selector", selector)

    @classmethod
    def id(cls, element_id: str) -> "By":
        return cls("css selector", f"#{element_id}")

    @classmethod
    def class_name(cls, name: str) -> "By":
        return cls("css selector", f".{name}")

    @classmethod
    def xpath(cls, expression: str) -> "By":
        return cls("xpath", expression)

    def __str__(self) -> str:
        return f"{self.using}={self.value!r}"


class WebDriverError(Exception):
    """Error reported by the remote end (``{"value": {"error": ..., "message": ...}}``)."""

    def __init__(self, error: str, message: str = "", *, status_code: int | None = None):
        self.error = error
        self.message = message
        self.status_code = status_code
        super().__init__(f"{error}: {message}" if message else error)


class NoSuchElementError(WebDriverError):
    pass


def _unwrap(resp: httpx.Response) -> Any:
    try:
        data = resp.json()
    except ValueError:
        data = None

    value = data.get("value") if isinstance(data, dict) else None
    if resp.status_code < 400 and not (isinstance(value, dict) and "error" in value):
        return value

    if isinstance(value, dict):
        error = str(value.get("error") or "unknown error")
        message = str(value.get("message") or "")
    else:
        error = "unknown error"
        message = (resp.text or "")[:500]

    if error == "no such element":
        raise NoSuchElementError(error, message, status_code=resp.status_code)
    raise WebDriverError(error, message, status_code=resp.status_code)


class RemoteElement:
    def __init__(self, session: "RemoteSession", element_id: str):
        self.session = session
        self.element_id = element_id

    def _path(self, suffix: str) -> str:
        return f"element/{self.element_id}/{suffix}"

    async def text(self) -> str:
        return str(await self.session._command("GET", self._path("text")) or "")

    async def attribute(self, name: str) -> str | None:
        value = await self.session._command("GET", self._path(f"attribute/{name}"))
        return None if value is None else str(value)

    async def prop(self, name: str) -> Any:
        return await self.session._command("GET", self._path(f"property/{name}"))

    async def send_keys(self, text: str) -> None:
        await self.session._command("POST", self._path("value"), {"text": text})

    async def click(self) -> None:
        await self.session._command("POST", self._path("click"), {})

    def __repr__(self) -> str:
        return f"RemoteElement({self.element_id!r})"


class RemoteSession:
    """Handle to one live browser session on the grid."""

    def __init__(self, client: httpx.AsyncClient, endpoint: str, session_id: str, capabilities: dict[str, Any]):
        self._client = client
        self._base = f"{endpoint.rstrip('/')}/session/{session_id}"
        self.session_id = session_id
        self.capabilities = capabilities
        self.closed = False

    async def _command(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        url = f"{self._base}/{path}" if path else self._base
        resp = await self._client.request(method, url, json=payload)
        return _unwrap(resp)

    async def get(self, url: str) -> None:
        await self._command("POST", "url", {"url": url})

    async def title(self) -> str:
        return str(await self._command("GET", "title") or "")

    async def current_url(self) -> str:
        return str(await self._command("GET", "url") or "")

    async def find_element(self, by: By) -> RemoteElement:
        value = await self._command("POST", "element", {"using": by.using, "value": by.value})
        return self._element(value)

    async def find_elements(self, by: By) -> list[RemoteElement]:
        value = await self._command("POST", "elements", {"using": by.using, "value": by.value})
        return [self._element(v) for v in (value or [])]

    async def add_cookie(self, name: str, value: str) -> None:
        await self._command("POST", "cookie", {"cookie": {"name": name, "value": value}})

    async def quit(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._command("DELETE", "")

    def _element(self, value: Any) -> RemoteElement:
        if not isinstance(value, dict) or ELEMENT_KEY not in value:
            raise WebDriverError("invalid response", f"not an element reference: {value!r}")
        return RemoteElement(self, str(value[ELEMENT_KEY]))


class WebDriverClient:
    """Opens sessions on one WebDriver endpoint over a shared ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient, endpoint: str):
        self._client = client
        self.endpoint = endpoint

    async def new_session(self, capabilities: dict[str, Any], *, timeout: float | None = None) -> RemoteSession:
        """Request a new session; ``timeout`` bounds the whole creation call."""
        url = f"{self.endpoint.rstrip('/')}/session"
        request = self._client.post(url, json=capabilities)
        if timeout is not None:
            resp = await asyncio.wait_for(request, timeout=timeout)
        else:
            resp = await request
        value = _unwrap(resp)

        if not isinstance(value, dict) or not value.get("sessionId"):
            raise WebDriverError("session not created", f"response carried no sessionId: {value!r}")
        session_id = str(value["sessionId"])
        logger.debug("Remote session created", session_id=session_id)
        return RemoteSession(self._client, self.endpoint, session_id, value.get("capabilities") or {})
