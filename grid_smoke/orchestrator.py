"""Runs a batch of staggered, independently timed-out smoke sessions."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Awaitable, Callable, Optional

import httpx
import structlog

from .config import RunConfig
from .driver import SessionDriver, SessionError, describe_error
from .results import RunSummary, SessionOutcome, SessionTask, format_duration
from .scenarios import get_scenario
from .webdriver import WebDriverClient


logger = structlog.get_logger(__name__)


SessionRunner = Callable[[int], Awaitable[Optional[str]]]

USER_AGENT = "grid-smoke"


def stagger_schedule(count: int, increment: float) -> list[float]:
    return [index * increment for index in range(max(0, int(count)))]


async def _run_task(
    task: SessionTask,
    runner: SessionRunner,
    *,
    timeout: float,
    batch_start: float,
) -> SessionOutcome:
    loop = asyncio.get_running_loop()
    delay = batch_start + task.start_delay - loop.time()
    if delay > 0:
        await asyncio.sleep(delay)

    started = time.perf_counter()
    try:
        session_id = await asyncio.wait_for(runner(task.index), timeout=timeout)
    except asyncio.TimeoutError:
        outcome = SessionOutcome(
            index=task.index,
            ok=False,
            duration=time.perf_counter() - started,
            error=f"timed out after {format_duration(timeout)}",
        )
    except SessionError as exc:
        outcome = SessionOutcome(
            index=task.index,
            ok=False,
            duration=time.perf_counter() - started,
            error=str(exc),
            session_id=exc.session_id,
        )
    except Exception as exc:
        # Unexpected faults only fail this session, never the batch.
        logger.exception("Session crashed", index=task.index)
        outcome = SessionOutcome(
            index=task.index,
            ok=False,
            duration=time.perf_counter() - started,
            error=describe_error(exc),
        )
    else:
        outcome = SessionOutcome(
            index=task.index,
            ok=True,
            duration=time.perf_counter() - started,
            session_id=session_id,
        )
    return task.resolve(outcome)


async def run_batch(
    config: RunConfig,
    *,
    runner: Optional[SessionRunner] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> RunSummary:
    """Run ``config.session_count`` sessions concurrently and tally the outcomes.

    Progress lines are printed as each session resolves; the summary line is
    printed once every session has a terminal outcome.
    """
    print(f"Running {config.session_count} sessions against '{config.endpoint}'", flush=True)
    logger.info(
        "Starting batch",
        count=config.session_count,
        endpoint=config.endpoint,
        browser=config.browser.value,
        scenario=config.scenario,
        timeout=config.per_session_timeout,
    )

    tasks = [
        SessionTask(index=index, start_delay=delay)
        for index, delay in enumerate(stagger_schedule(config.session_count, config.stagger_increment))
    ]
    failed = 0

    async with contextlib.AsyncExitStack() as stack:
        if runner is None and tasks:
            if client is None:
                # No connection cap: the stagger is the only throttle.
                client = await stack.enter_async_context(
                    httpx.AsyncClient(
                        headers={"User-Agent": USER_AGENT},
                        timeout=httpx.Timeout(config.per_session_timeout),
                        limits=httpx.Limits(max_connections=None, max_keepalive_connections=None),
                    )
                )
            webdriver = WebDriverClient(client, config.endpoint)
            scenario = get_scenario(config.scenario)

            def runner(index: int) -> Awaitable[str]:
                return SessionDriver(config, webdriver, scenario).run(index)

        batch_start = asyncio.get_running_loop().time()
        futures = [
            asyncio.create_task(
                _run_task(task, runner, timeout=config.per_session_timeout, batch_start=batch_start)
            )
            for task in tasks
        ]

        for fut in asyncio.as_completed(futures):
            outcome = await fut
            print(outcome.report_line(), flush=True)
            if not outcome.ok:
                failed += 1
                logger.warning("Session failed", **outcome.to_dict())

    summary = RunSummary(
        total=len(tasks),
        failed=failed,
        outcomes=tuple(task.outcome for task in tasks if task.outcome is not None),
    )
    print(summary.report_line(), flush=True)
    logger.info("Batch finished", total=summary.total, failed=summary.failed, succeeded=summary.succeeded)
    return summary
