"""Scripted interaction state machine driven against one remote session."""

from __future__ import annotations

import asyncio
import time
from enum import IntEnum
from typing import Any, Awaitable, Callable, Optional, Protocol

import structlog

from .webdriver import By, NoSuchElementError, RemoteElement, RemoteSession


logger = structlog.get_logger(__name__)


MESSAGE_COOKIE = "webgrid:message"
STATUS_COOKIE = "webgrid:metadata.session:status"

ElementPredicate = Callable[[RemoteElement], Awaitable[bool]]


class StepFailure(Exception):
    """A scripted step did not hold; terminal for the interaction."""


class InteractionState(IntEnum):
    OPENED = 0
    NAVIGATED = 1
    LOCATED_PRIMARY_ELEMENT = 2
    ASSERTED_INITIAL_STATE = 3
    MUTATED_STATE = 4
    ASSERTED_FINAL_STATE = 5
    REPORTED_SUCCESS = 6
    REPORTED_FAILURE = 7

    @property
    def terminal(self) -> bool:
        return self >= InteractionState.REPORTED_SUCCESS


class Scenario(Protocol):
    name: str

    async def run(self, interaction: "ScriptedInteraction") -> None: ...


class Telemetry:
    """Best-effort progress/status signals sent to the grid as cookies."""

    def __init__(self, session: RemoteSession):
        self.session = session

    async def _set(self, name: str, value: str) -> None:
        try:
            await self.session.add_cookie(name, value)
        except Exception as exc:
            logger.warning(
                "Telemetry cookie not set",
                session_id=self.session.session_id,
                cookie=name,
                error=f"{type(exc).__name__}: {exc}",
            )

    async def message(self, text: str) -> None:
        await self._set(MESSAGE_COOKIE, text)

    async def status(self, value: str) -> None:
        await self._set(STATUS_COOKIE, value)


async def poll_elements(
    session: RemoteSession,
    by: By,
    *,
    interval: float,
    timeout: float,
    predicate: Optional[ElementPredicate] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RemoteElement:
    """
    Retry ``find_elements`` every ``interval`` seconds until a match shows up.

    Attempts happen at offsets 0, interval, 2*interval, ... strictly below
    ``timeout``. Matches are scanned in document order; the first one accepted by
    ``predicate`` (or simply the first one) wins.
    """
    started = clock()
    attempts = 0
    while True:
        attempts += 1
        for element in await session.find_elements(by):
            if predicate is None or await predicate(element):
                return element
        if clock() - started + interval >= timeout:
            raise StepFailure(f"element not found: {by} (polled {attempts}x over {timeout:g}s)")
        await sleep(interval)


class ScriptedInteraction:
    """Runs one scenario against an open session and tracks its state."""

    def __init__(
        self,
        session: RemoteSession,
        *,
        poll_interval: float = 0.5,
        poll_timeout: float = 20.0,
        status_timeout: float = 30.0,
        telemetry: Optional[Telemetry] = None,
    ):
        self.session = session
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.status_timeout = status_timeout
        self.telemetry = telemetry or Telemetry(session)
        self.state = InteractionState.OPENED
        self.history: list[InteractionState] = [InteractionState.OPENED]

    async def advance(self, state: InteractionState, message: Optional[str] = None) -> None:
        if self.state.terminal:
            raise RuntimeError(f"interaction already finished in {self.state.name}")
        if state < self.state:
            raise RuntimeError(f"cannot move back from {self.state.name} to {state.name}")
        self.state = state
        if not self.history or self.history[-1] != state:
            self.history.append(state)
        logger.debug("Interaction state", session_id=self.session.session_id, state=state.name)
        if message:
            await self.telemetry.message(message)

    async def navigate(self, url: str, message: Optional[str] = None) -> None:
        await self.session.get(url)
        await self.advance(InteractionState.NAVIGATED, message)

    async def locate(self, by: By) -> RemoteElement:
        try:
            return await self.session.find_element(by)
        except NoSuchElementError as exc:
            raise StepFailure(f"element not found: {by}") from exc

    async def locate_polled(self, by: By, *, predicate: Optional[ElementPredicate] = None) -> RemoteElement:
        return await poll_elements(
            self.session,
            by,
            interval=self.poll_interval,
            timeout=self.poll_timeout,
            predicate=predicate,
        )

    async def type_text(self, element: RemoteElement, text: str, message: Optional[str] = None) -> None:
        await element.send_keys(text)
        await self.advance(InteractionState.MUTATED_STATE, message)

    async def press(self, element: RemoteElement, key: str) -> None:
        await element.send_keys(key)
        await self.advance(InteractionState.MUTATED_STATE)

    async def click(self, element: RemoteElement, message: Optional[str] = None) -> None:
        await element.click()
        await self.advance(InteractionState.MUTATED_STATE, message)

    @staticmethod
    def assert_equal(what: str, expected: Any, actual: Any) -> None:
        if expected != actual:
            raise StepFailure(f"{what} mismatch: expected {expected!r}, got {actual!r}")

    @staticmethod
    def assert_contains(what: str, needle: str, haystack: str) -> None:
        if needle not in (haystack or ""):
            raise StepFailure(f"{what} mismatch: expected {needle!r} in {haystack!r}")

    async def _finish(self, state: InteractionState, status: str) -> None:
        self.state = state
        self.history.append(state)
        await self.telemetry.status(status)

    async def run(self, scenario: Scenario) -> None:
        """Execute ``scenario``; the final status is reported on success and failure."""
        try:
            await scenario.run(self)
        except asyncio.CancelledError:
            # Cut short by the session timeout: the failure status still goes out, bounded.
            try:
                await asyncio.wait_for(
                    self._finish(InteractionState.REPORTED_FAILURE, "failure"), timeout=self.status_timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Final status not sent", session_id=self.session.session_id, timeout=self.status_timeout
                )
            raise
        except Exception:
            await self._finish(InteractionState.REPORTED_FAILURE, "failure")
            raise
        await self._finish(InteractionState.REPORTED_SUCCESS, "success")
