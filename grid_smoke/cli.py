"""Command line entry point: ``grid-smoke <endpoint> <count> [browser]``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional, Sequence

import structlog

from .config import ConfigError, load_config
from .orchestrator import run_batch


EXIT_CONFIG_ERROR = 2


def configure_logging(level: str = "INFO") -> None:
    # stdout carries the progress and summary lines, so logs go to stderr.
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _session_count(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"count must be a non-negative integer, got {raw!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"count must be a non-negative integer, got {raw!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="grid-smoke",
        description="Launch concurrent smoke-test sessions against a remote WebDriver grid.",
        epilog="Environment: TIMEOUT (seconds per session, default 600), SCENARIO, LOG_LEVEL, GRID_SMOKE_CONFIG.",
    )
    parser.add_argument("endpoint", help="WebDriver endpoint, e.g. http://grid:4444")
    parser.add_argument("count", type=_session_count, help="Number of sessions to launch")
    parser.add_argument("browser", nargs="?", default="firefox", help="firefox, chrome or safari (default: firefox)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.endpoint, args.count, args.browser, environ=os.environ)
    except ConfigError as exc:
        print(f"grid-smoke: configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_logging(config.log_level)
    summary = asyncio.run(run_batch(config))
    return summary.exit_code


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
