"""Session driver: one remote browser session from open to close."""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from .capabilities import build_capabilities
from .config import RunConfig
from .interaction import Scenario, ScriptedInteraction
from .scenarios import get_scenario
from .webdriver import RemoteSession, WebDriverClient


logger = structlog.get_logger(__name__)


class SessionError(Exception):
    """A session could not be opened or its interaction failed."""

    def __init__(self, message: str, *, session_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id


def describe_error(exc: BaseException) -> str:
    msg = str(exc or "").strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


class SessionDriver:
    """Opens a session, runs the scenario against it and always closes it again."""

    def __init__(self, config: RunConfig, client: WebDriverClient, scenario: Optional[Scenario] = None):
        self.config = config
        self.client = client
        self.scenario = scenario or get_scenario(config.scenario)

    async def run(self, index: int) -> str:
        """Run one session and return its id; raises SessionError on failure."""
        log = logger.bind(index=index, browser=self.config.browser.value)

        # Capability problems are configuration errors and surface before any request.
        capabilities = build_capabilities(self.config)

        log.debug("Opening remote session", endpoint=self.config.endpoint)
        try:
            session = await self.client.new_session(capabilities, timeout=self.config.per_session_timeout)
        except Exception as exc:
            raise SessionError(f"could not open session: {describe_error(exc)}") from exc

        session_id = session.session_id
        log = log.bind(session_id=session_id)
        try:
            interaction = ScriptedInteraction(
                session,
                poll_interval=self.config.poll_interval,
                poll_timeout=self.config.poll_timeout,
                status_timeout=self.config.teardown_timeout,
            )
            await interaction.run(self.scenario)
        except Exception as exc:
            log.info("Interaction failed", error=describe_error(exc))
            raise SessionError(f"{session_id} failed due to {describe_error(exc)}", session_id=session_id) from exc
        finally:
            await self._teardown(session, log)

        log.info("Interaction succeeded")
        return session_id

    async def _teardown(self, session: RemoteSession, log) -> None:
        try:
            await asyncio.wait_for(session.quit(), timeout=self.config.teardown_timeout)
        except Exception as exc:
            log.warning("Session teardown failed", error=describe_error(exc))
