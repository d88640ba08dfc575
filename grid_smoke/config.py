"""Configuration management for the smoke-test runner."""

from __future__ import annotations

import os
from enum import Enum
from typing import Any, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


DEFAULT_TIMEOUT_SECONDS = 600
DEFAULT_CONFIG_PATH = "grid_smoke.yaml"


class ConfigError(ValueError):
    """Raised for invalid CLI, environment or file configuration."""


class BrowserKind(str, Enum):
    FIREFOX = "firefox"
    CHROME = "chrome"
    SAFARI = "safari"

    @classmethod
    def parse(cls, raw: str) -> "BrowserKind":
        value = str(raw or "").strip().lower()
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(kind.value for kind in cls)
            raise ConfigError(f"Unknown browser {raw!r} (expected one of: {allowed})") from None


class RunConfig(BaseModel):
    """Immutable settings for one batch of smoke sessions."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = Field(description="WebDriver endpoint of the remote grid")
    session_count: int = Field(ge=0, description="Number of sessions to launch")
    browser: BrowserKind = Field(default=BrowserKind.FIREFOX, description="Browser requested for every session")
    per_session_timeout: float = Field(
        default=float(DEFAULT_TIMEOUT_SECONDS), gt=0, description="Bound on one session, creation through teardown"
    )

    # Scheduling
    stagger_increment: float = Field(default=0.025, ge=0, description="Start offset added per session index")

    # Element polling
    poll_interval: float = Field(default=0.5, gt=0, description="Delay between polled find attempts")
    poll_timeout: float = Field(default=20.0, gt=0, description="Give up a polled find after this many seconds")

    teardown_timeout: float = Field(default=30.0, gt=0, description="Bound on the session close call")
    scenario: str = Field(default="search", description="Scripted scenario to run against every session")

    # Session metadata sent to the grid
    metadata: dict[str, Any] = Field(
        default_factory=lambda: {"name": "test-name", "build": "test-build"},
        description="Identification metadata attached to the capabilities",
    )
    metadata_required: bool = Field(default=False, description="Fail the session if metadata cannot be attached")

    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("endpoint")
    @classmethod
    def _endpoint_not_blank(cls, value: str) -> str:
        value = str(value or "").strip()
        if not value:
            raise ValueError("endpoint must not be empty")
        return value

    @field_validator("browser", mode="before")
    @classmethod
    def _parse_browser(cls, value: Any) -> BrowserKind:
        if isinstance(value, BrowserKind):
            return value
        return BrowserKind.parse(value)

    @field_validator("scenario")
    @classmethod
    def _known_scenario(cls, value: str) -> str:
        from .scenarios import SCENARIOS

        value = str(value or "").strip().lower()
        if value not in SCENARIOS:
            raise ValueError(f"unknown scenario {value!r} (expected one of: {', '.join(sorted(SCENARIOS))})")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return str(value or "INFO").strip().upper()


def _env_timeout(environ: Mapping[str, str]) -> Optional[float]:
    raw = environ.get("TIMEOUT")
    if raw is None:
        return None
    try:
        seconds = int(str(raw).strip())
    except ValueError:
        raise ConfigError(f"Failed to parse TIMEOUT={raw!r} as integer seconds") from None
    if seconds <= 0:
        raise ConfigError(f"TIMEOUT must be positive, got {seconds}")
    return float(seconds)


def _load_file(config_path: str) -> dict[str, Any]:
    if not os.path.exists(config_path):
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Could not read config file {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    # Positional CLI values are never taken from the file.
    for key in ("endpoint", "session_count", "browser"):
        data.pop(key, None)
    return data


def load_config(
    endpoint: str,
    session_count: int,
    browser: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[str] = None,
) -> RunConfig:
    """Build a RunConfig from the YAML file, environment overrides and CLI values.

    Precedence is file < environment < CLI. Any invalid value raises ConfigError.
    """
    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = env.get("GRID_SMOKE_CONFIG", DEFAULT_CONFIG_PATH)

    config_data = _load_file(config_path)

    env_overrides = {
        "per_session_timeout": _env_timeout(env),
        "scenario": env.get("SCENARIO"),
        "log_level": env.get("LOG_LEVEL"),
    }
    for key, value in env_overrides.items():
        if value is not None:
            config_data[key] = value

    config_data["endpoint"] = endpoint
    config_data["session_count"] = session_count
    config_data["browser"] = BrowserKind.parse(browser) if browser is not None else BrowserKind.FIREFOX

    try:
        config = RunConfig(**config_data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    if config.metadata_required:
        from .capabilities import encode_metadata

        # Required metadata that cannot be attached stops the run before any session opens.
        encode_metadata(dict(config.metadata))
    return config
