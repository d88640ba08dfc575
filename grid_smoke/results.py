"""Per-session outcomes and the run-level summary."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


def format_duration(seconds: float) -> str:
    """Human readable duration, e.g. ``1m 2s 30ms``."""
    micros = max(0, int(round(float(seconds) * 1_000_000)))
    if micros == 0:
        return "0s"
    hours, rem = divmod(micros, 3_600_000_000)
    minutes, rem = divmod(rem, 60_000_000)
    secs, rem = divmod(rem, 1_000_000)
    millis, micros = divmod(rem, 1_000)
    parts = []
    for value, unit in ((hours, "h"), (minutes, "m"), (secs, "s"), (millis, "ms"), (micros, "us")):
        if value:
            parts.append(f"{value}{unit}")
    return " ".join(parts)


@dataclass(frozen=True)
class SessionOutcome:
    index: int
    ok: bool
    duration: float
    error: Optional[str] = None
    session_id: Optional[str] = None

    def report_line(self) -> str:
        if self.ok:
            return f"Session #{self.index} finished in {format_duration(self.duration)}."
        return f"Session #{self.index} failed: {self.error}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "ok": self.ok,
            "duration": round(self.duration, 3),
            "error": self.error,
            "session_id": self.session_id,
        }


@dataclass
class SessionTask:
    index: int
    start_delay: float
    outcome: Optional[SessionOutcome] = None

    @property
    def pending(self) -> bool:
        return self.outcome is None

    def resolve(self, outcome: SessionOutcome) -> SessionOutcome:
        if self.outcome is not None:
            raise RuntimeError(f"session task #{self.index} already resolved")
        self.outcome = outcome
        return outcome


@dataclass(frozen=True)
class RunSummary:
    total: int
    failed: int
    outcomes: tuple[SessionOutcome, ...] = field(default=())

    @property
    def succeeded(self) -> int:
        return self.total - self.failed

    @property
    def exit_code(self) -> int:
        return 1 if self.failed > 0 else 0

    def report_line(self) -> str:
        return f"All sessions finished. {self.succeeded} / {self.total} succeeded."

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "failed": self.failed,
            "succeeded": self.succeeded,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
