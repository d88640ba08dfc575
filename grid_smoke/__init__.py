"""Concurrent smoke-test runner for remote WebDriver grids."""

from .config import BrowserKind, ConfigError, RunConfig, load_config
from .orchestrator import run_batch
from .results import RunSummary, SessionOutcome

__all__ = ["BrowserKind", "ConfigError", "RunConfig", "RunSummary", "SessionOutcome", "load_config", "run_batch"]
