# accountdash/policy/loader.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from accountdash.policy.guardrails import validate_policy
from accountdash.policy.schema import PresenterPolicy, WaitHours, WorkflowPolicy

logger = logging.getLogger(__name__)


def _deep_get(d: dict, key: str) -> Any:
    if key not in d:
        raise KeyError(f"Missing key: {key}")
    return d[key]


def _check_account_hours(wait_raw: dict) -> float:
    """
    check_account 대기시간은 분 단위로 적는 경우가 많아서 둘 다 받는다.
      - check_account: 0.0833 (hours)
      - check_account_minutes: 5
    """
    if wait_raw.get("check_account_minutes") is not None:
        return float(wait_raw["check_account_minutes"]) / 60.0
    return float(_deep_get(wait_raw, "check_account"))


def load_policy_yaml(path: str | None = None) -> WorkflowPolicy:
    """
    Loads the workflow policy from YAML.
    - default: accountdash/policy/defaults.yaml
    - override path by env WORKFLOW_POLICY_PATH or param
    """
    if path is None:
        path = os.environ.get("WORKFLOW_POLICY_PATH")

    if path is None:
        base = Path(__file__).resolve().parent
        path = str(base / "defaults.yaml")

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Workflow policy YAML not found: {p}")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}

    wait_raw = _deep_get(raw, "wait_hours")
    workflow_raw = raw.get("workflow") or {}
    presenter_raw = raw.get("presenter") or {}
    display_raw = raw.get("display") or {}

    policy = WorkflowPolicy(
        wait_hours=WaitHours(
            create_account=float(_deep_get(wait_raw, "create_account")),
            first_listing=float(_deep_get(wait_raw, "first_listing")),
            seller_account=float(_deep_get(wait_raw, "seller_account")),
            check_account=_check_account_hours(wait_raw),
        ),
        gating=str(workflow_raw.get("gating") or "advisory").strip().lower(),  # type: ignore[arg-type]
        presenter=PresenterPolicy(
            tick_interval_ms=int(presenter_raw.get("tick_interval_ms", 1000)),
            notice_timeout_seconds=float(presenter_raw.get("notice_timeout_seconds", 5)),
            reload_delay_seconds=float(presenter_raw.get("reload_delay_seconds", 1.5)),
        ),
        display_timezone=str(display_raw.get("timezone") or "Africa/Casablanca"),
    )

    validate_policy(policy)
    logger.debug("workflow policy loaded from %s (gating=%s)", p, policy.gating)
    return policy
