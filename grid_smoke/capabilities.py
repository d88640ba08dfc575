from __future__ import annotations

from typing import Any, Callable

import structlog

from .config import BrowserKind, ConfigError, RunConfig


logger = structlog.get_logger(__name__)


VENDOR_OPTIONS_KEY = "webgrid:options"


class CapabilitiesError(ConfigError):
    pass


def _firefox() -> dict[str, Any]:
    return {"browserName": "firefox", "moz:firefoxOptions": {}}


def _chrome() -> dict[str, Any]:
    return {"browserName": "chrome", "goog:chromeOptions": {}}


def _safari() -> dict[str, Any]:
    return {"browserName": "safari"}


_BUILDERS: dict[BrowserKind, Callable[[], dict[str, Any]]] = {
    BrowserKind.FIREFOX: _firefox,
    BrowserKind.CHROME: _chrome,
    BrowserKind.SAFARI: _safari,
}


def encode_metadata(metadata: dict[str, Any]) -> dict[str, str]:
    out: dict[str, str] = {}
    for key, value in metadata.items():
        if not isinstance(key, str) or not key.strip():
            raise CapabilitiesError(f"metadata key must be a non-empty string, got {key!r}")
        if isinstance(value, (dict, list, tuple, set)) or value is None:
            raise CapabilitiesError(f"metadata value for {key!r} must be a scalar, got {type(value).__name__}")
        out[key] = str(value)
    return out


def build_capabilities(config: RunConfig) -> dict[str, Any]:
    """Capabilities payload for POST /session, built without any network call.

    Implicit waits are disabled up front so element polling is always explicit.
    Metadata that cannot be attached is dropped with a warning unless
    ``config.metadata_required`` is set, in which case CapabilitiesError is raised.
    """
    caps = _BUILDERS[config.browser]()
    caps["timeouts"] = {"implicit": 0}

    try:
        metadata = encode_metadata(dict(config.metadata))
    except CapabilitiesError as exc:
        if config.metadata_required:
            raise
        logger.warning("Dropping session metadata", error=str(exc))
        metadata = None

    if metadata:
        caps[VENDOR_OPTIONS_KEY] = {"metadata": metadata}

    return {
        "capabilities": {"alwaysMatch": caps, "firstMatch": [{}]},
        "desiredCapabilities": dict(caps),
    }
