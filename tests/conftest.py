from __future__ import annotations

import asyncio
import copy
import itertools
import json
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx
import pytest
from structlog.testing import capture_logs

from grid_smoke.config import RunConfig
from grid_smoke.fixtures import FIXTURE_TITLE, FIXTURE_URL
from grid_smoke.webdriver import ELEMENT_KEY, Keys


ENDPOINT = "http://grid.test/wd/hub"


@dataclass
class FakeElement:
    text: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    value: str = ""
    on_click: Callable[["FakePage"], None] | None = None
    on_enter: Callable[["FakePage"], None] | None = None


@dataclass
class FakePage:
    title: str = ""
    elements: dict[str, list[FakeElement]] = field(default_factory=dict)
    # selector -> number of find calls that still come back empty
    hidden_polls: dict[str, int] = field(default_factory=dict)


class FakeGrid:
    """In-memory W3C WebDriver endpoint served through ``httpx.MockTransport``."""

    Element = FakeElement
    Page = FakePage

    def __init__(self) -> None:
        self.pages: dict[str, Callable[[], FakePage]] = {}
        self.sessions: dict[str, FakePage | None] = {}
        self.new_session_payloads: list[dict[str, Any]] = []
        self.closed: list[str] = []
        self.cookies: dict[str, list[tuple[str, str]]] = defaultdict(list)
        self.find_calls: dict[str, int] = defaultdict(int)
        self.requests = 0

        self.reject_new_session: str | None = None
        self.new_session_delay = 0.0
        self.fail_cookies = False
        self.fail_delete = False

        self._session_ids = itertools.count(1)
        self._element_ids = itertools.count(1)
        self._elements: dict[str, FakeElement] = {}
        self._element_refs: dict[int, str] = {}
        self.transport = httpx.MockTransport(self.handler)

    def add_page(
        self,
        url: str,
        *,
        title: str = "",
        elements: dict[str, list[FakeElement]] | None = None,
        hidden_polls: dict[str, int] | None = None,
    ) -> None:
        # Every navigation gets its own copy so concurrent sessions never share state.
        template = FakePage(title=title, elements=dict(elements or {}), hidden_polls=dict(hidden_polls or {}))
        self.pages[url] = lambda: copy.deepcopy(template)

    def install_fixture_page(self, *, title: str = FIXTURE_TITLE, hidden_polls: int = 2) -> None:
        def _increment(page: FakePage) -> None:
            counter = page.elements["#counter"][0]
            counter.text = str(int(counter.text) + 1)

        self.add_page(
            FIXTURE_URL,
            title=title,
            elements={
                "#counter": [FakeElement(text="0")],
                "#increment": [FakeElement(text="+1", on_click=_increment)],
                "#echo": [FakeElement()],
            },
            hidden_polls={"#counter": hidden_polls},
        )

    @property
    def opened(self) -> list[str]:
        return list(self.sessions)

    def _ref(self, element: FakeElement) -> dict[str, str]:
        eid = self._element_refs.get(id(element))
        if eid is None:
            eid = f"elem-{next(self._element_ids)}"
            self._element_refs[id(element)] = eid
            self._elements[eid] = element
        return {ELEMENT_KEY: eid}

    @staticmethod
    def _ok(value: Any = None) -> httpx.Response:
        return httpx.Response(200, json={"value": value})

    @staticmethod
    def _error(status: int, error: str, message: str = "") -> httpx.Response:
        return httpx.Response(status, json={"value": {"error": error, "message": message}})

    def _find(self, page: FakePage | None, selector: str) -> list[FakeElement]:
        self.find_calls[selector] += 1
        if page is None:
            return []
        if page.hidden_polls.get(selector, 0) > 0:
            page.hidden_polls[selector] -= 1
            return []
        return list(page.elements.get(selector, []))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        parts = request.url.path.strip("/").split("/")
        parts = parts[parts.index("session") :]
        body = json.loads(request.content.decode("utf-8")) if request.content else {}

        if parts == ["session"] and request.method == "POST":
            self.new_session_payloads.append(body)
            if self.new_session_delay:
                await asyncio.sleep(self.new_session_delay)
            if self.reject_new_session:
                return self._error(500, "session not created", self.reject_new_session)
            session_id = f"sess-{next(self._session_ids)}"
            self.sessions[session_id] = None
            caps = body.get("capabilities", {}).get("alwaysMatch", {})
            return self._ok({"sessionId": session_id, "capabilities": caps})

        session_id = parts[1]
        if session_id not in self.sessions or session_id in self.closed:
            return self._error(404, "invalid session id", session_id)
        page = self.sessions[session_id]
        rest = parts[2:]

        if not rest and request.method == "DELETE":
            self.closed.append(session_id)
            if self.fail_delete:
                return self._error(500, "unknown error", "delete exploded")
            return self._ok()

        if rest == ["url"] and request.method == "POST":
            url = body["url"]
            if url not in self.pages:
                return self._error(500, "unknown error", f"cannot reach {url}")
            self.sessions[session_id] = self.pages[url]()
            return self._ok()

        if rest == ["title"]:
            return self._ok(page.title if page else "")

        if rest == ["cookie"]:
            if self.fail_cookies:
                return self._error(500, "unable to set cookie", "no document")
            cookie = body["cookie"]
            self.cookies[session_id].append((cookie["name"], cookie["value"]))
            return self._ok()

        if rest in (["element"], ["elements"]):
            found = self._find(page, body["value"])
            if rest == ["elements"]:
                return self._ok([self._ref(e) for e in found])
            if not found:
                return self._error(404, "no such element", body["value"])
            return self._ok(self._ref(found[0]))

        if rest[0] == "element" and len(rest) >= 3:
            element = self._elements[rest[1]]
            command = rest[2]
            if command == "text":
                return self._ok(element.text)
            if command == "attribute":
                return self._ok(element.attributes.get(rest[3]))
            if command == "property":
                return self._ok(element.value if rest[3] == "value" else element.attributes.get(rest[3]))
            if command == "click":
                if element.on_click:
                    element.on_click(page)
                return self._ok()
            if command == "value":
                text = body["text"]
                if Keys.ENTER in text:
                    if element.on_enter:
                        element.on_enter(page)
                    text = text.replace(Keys.ENTER, "")
                element.value += text
                return self._ok()

        return self._error(404, "unknown command", request.url.path)


@pytest.fixture(autouse=True)
def captured_logs():
    with capture_logs() as logs:
        yield logs


@pytest.fixture
def fake_grid() -> FakeGrid:
    return FakeGrid()


@pytest.fixture
def make_config() -> Callable[..., RunConfig]:
    def _make(**overrides: Any) -> RunConfig:
        data: dict[str, Any] = {
            "endpoint": ENDPOINT,
            "session_count": 1,
            "stagger_increment": 0.0,
            "poll_interval": 0.01,
            "poll_timeout": 0.5,
            "per_session_timeout": 5.0,
            "teardown_timeout": 1.0,
            "scenario": "fixture",
        }
        data.update(overrides)
        return RunConfig(**data)

    return _make
