# accountdash/policy/guardrails.py
from __future__ import annotations

from accountdash.policy.schema import GATING_MODES, WorkflowPolicy


class PolicyValidationError(ValueError):
    pass


def validate_policy(policy: WorkflowPolicy) -> None:
    w = policy.wait_hours

    # --- wait hours ---
    for name, v in [
        ("create_account", w.create_account),
        ("first_listing", w.first_listing),
        ("seller_account", w.seller_account),
        ("check_account", w.check_account),
    ]:
        # 0h는 허용(게이트 없음), 한 달 넘는 대기는 운영상 말이 안 됨
        if v < 0 or v > 24 * 30:
            raise PolicyValidationError(f"wait_hours.{name} must be 0~720, got={v}")

    if policy.gating not in GATING_MODES:
        raise PolicyValidationError(f"workflow.gating must be one of {GATING_MODES}, got={policy.gating!r}")

    # --- presenter ---
    p = policy.presenter
    if p.tick_interval_ms < 100 or p.tick_interval_ms > 60_000:
        raise PolicyValidationError(f"presenter.tick_interval_ms must be 100~60000, got={p.tick_interval_ms}")
    if p.notice_timeout_seconds < 0:
        raise PolicyValidationError(f"presenter.notice_timeout_seconds must be >= 0, got={p.notice_timeout_seconds}")
    if p.reload_delay_seconds < 0:
        raise PolicyValidationError(f"presenter.reload_delay_seconds must be >= 0, got={p.reload_delay_seconds}")
