# accountdash/policy/schema.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

GatingMode = Literal["advisory", "enforced"]
GATING_MODES = ("advisory", "enforced")


@dataclass(frozen=True)
class WaitHours:
    """단계별 최소 대기시간 (hours)."""
    create_account: float
    first_listing: float
    seller_account: float
    check_account: float

    def for_step(self, step: str) -> float:
        return float(getattr(self, step))


@dataclass(frozen=True)
class PresenterPolicy:
    tick_interval_ms: int = 1000
    notice_timeout_seconds: float = 5.0
    reload_delay_seconds: float = 1.5


@dataclass(frozen=True)
class WorkflowPolicy:
    wait_hours: WaitHours
    gating: GatingMode = "advisory"
    presenter: PresenterPolicy = PresenterPolicy()
    display_timezone: str = "Africa/Casablanca"

    @property
    def enforce_gating(self) -> bool:
        return self.gating == "enforced"
