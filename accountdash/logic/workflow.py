# accountdash/logic/workflow.py
"""
가입 워크플로 상태기계 (4단계).

  1) create_account   NotStarted → InProgress → Completed
  2) first_listing    (1단계 완료 후 진행 가능)
  3) seller_account   (2단계 완료 후 진행 가능)
  4) check_account    Pending → Active | Suspended (재전환 가능, 종료 잠금 없음)

- N단계 권장 완료시각 = (N-1)단계 완료시각 + N단계 대기시간
  (1단계 기준은 계정 생성시각)
- 권장시각 전에 완료하는 것은 허용하되 early 로 표시한다.
- 단계 순서 검사는 정책(workflow.gating)에 따라:
    advisory : UI 안내만 (저장소는 어떤 순서든 기록)
    enforced : 선행 단계 미완료면 PreconditionFailed
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from accountdash import schemas
from accountdash.core import time_gate as G
from accountdash.core import time_policy as T
from accountdash.logic import progress_store
from accountdash.logic.errors import InvalidStatus, PreconditionFailed, ProgressError, StoreResult
from accountdash.policy.runtime import get_policy
from accountdash.policy.schema import WorkflowPolicy

logger = logging.getLogger(__name__)

STEPS = ("create_account", "first_listing", "seller_account", "check_account")

PRIOR_STEP = {
    "first_listing": "create_account",
    "seller_account": "first_listing",
    "check_account": "seller_account",
}


class StepState(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class Action(str, enum.Enum):
    COMPLETE_CREATE_ACCOUNT = "complete_create_account"
    COMPLETE_FIRST_LISTING = "complete_first_listing"
    COMPLETE_SELLER_ACCOUNT = "complete_seller_account"
    MARK_ACTIVE = "mark_active"
    MARK_SUSPENDED = "mark_suspended"


# 액션 → (단계, completed, status)
_ACTION_UPDATES = {
    Action.COMPLETE_CREATE_ACCOUNT: ("create_account", True, None),
    Action.COMPLETE_FIRST_LISTING: ("first_listing", True, None),
    Action.COMPLETE_SELLER_ACCOUNT: ("seller_account", True, None),
    Action.MARK_ACTIVE: ("check_account", None, "active"),
    Action.MARK_SUSPENDED: ("check_account", None, "suspended"),
}

_ACTION_LABELS = {
    Action.COMPLETE_CREATE_ACCOUNT: "Mark as Complete",
    Action.COMPLETE_FIRST_LISTING: "Mark as Complete",
    Action.COMPLETE_SELLER_ACCOUNT: "Mark as Complete",
    Action.MARK_ACTIVE: "Mark as Active",
    Action.MARK_SUSPENDED: "Mark as Suspended",
}


@dataclass(frozen=True)
class ActionAvailability:
    action: Action
    actionable: bool
    early: bool

    @property
    def label(self) -> str:
        base = _ACTION_LABELS[self.action]
        return f"{base} (early)" if self.early else base


@dataclass
class TransitionOutcome:
    """
    상태 전이 결과 (태그드).
    - 성공이면 record 에 새로 읽은 ProgressOut
    - reload_after_seconds: 계정 상태 배지 등 의존 화면 새로고침 권장 지연
    """
    success: bool
    record: Optional[schemas.ProgressOut] = None
    error: Optional[str] = None
    code: Optional[str] = None
    early: bool = False
    reload_after_seconds: Optional[float] = None

    @classmethod
    def from_failure(cls, result: StoreResult) -> "TransitionOutcome":
        return cls(success=False, error=result.error, code=result.code)

    @classmethod
    def from_error(cls, exc: ProgressError) -> "TransitionOutcome":
        return cls(success=False, error=str(exc), code=exc.code)


# ---------------------------------------------------------------------
# 레코드 읽기 헬퍼 (ORM 행 / ProgressOut 둘 다 허용)
# ---------------------------------------------------------------------
def _completed(record: Any, step: str) -> bool:
    return bool(getattr(record, f"{step}_completed", False))


def step_date(record: Any, step: str) -> Optional[datetime]:
    return T.as_utc(getattr(record, f"{step}_date", None))


def check_status(record: Any) -> str:
    status = getattr(record, "check_account_status", "pending")
    return getattr(status, "value", status) or "pending"


# ---------------------------------------------------------------------
# 상태 계산
# ---------------------------------------------------------------------
def step_states(record: Any) -> Dict[str, StepState]:
    states: Dict[str, StepState] = {}
    for step in STEPS[:3]:
        prior = PRIOR_STEP.get(step)
        if _completed(record, step):
            states[step] = StepState.COMPLETED
        elif prior is None or _completed(record, prior):
            states[step] = StepState.IN_PROGRESS
        else:
            states[step] = StepState.NOT_STARTED
    states["check_account"] = StepState(check_status(record))
    return states


def own_gates(record: Any, policy: WorkflowPolicy, now: Optional[datetime] = None) -> Dict[str, Optional[int]]:
    """단계 자신의 날짜 + 단계 대기시간 기준 남은 시간(ms). 날짜가 없으면 None."""
    return {
        step: G.remaining_time_ms(step_date(record, step), policy.wait_hours.for_step(step), now=now)
        for step in STEPS
    }


def own_percentages(record: Any, policy: WorkflowPolicy, now: Optional[datetime] = None) -> Dict[str, int]:
    return {
        step: G.waiting_percentage(step_date(record, step), policy.wait_hours.for_step(step), now=now)
        for step in STEPS
    }


def recommended_times(
    record: Any,
    policy: WorkflowPolicy,
    now: Optional[datetime] = None,
) -> Dict[str, Optional[G.RecommendedCompletion]]:
    """2~4단계 권장 완료 정보 (직전 단계 완료시각 기준)."""
    return {
        step: G.recommended_completion(step_date(record, prior), policy.wait_hours.for_step(step), now=now)
        for step, prior in PRIOR_STEP.items()
    }


def _is_actionable(record: Any, action: Action) -> bool:
    if action == Action.COMPLETE_CREATE_ACCOUNT:
        return not _completed(record, "create_account")
    if action == Action.COMPLETE_FIRST_LISTING:
        return _completed(record, "create_account") and not _completed(record, "first_listing")
    if action == Action.COMPLETE_SELLER_ACCOUNT:
        return _completed(record, "first_listing") and not _completed(record, "seller_account")
    # 4단계 버튼은 pending 일 때만 노출
    return _completed(record, "seller_account") and check_status(record) == "pending"


def _is_early(record: Any, step: str, policy: WorkflowPolicy, now: Optional[datetime]) -> bool:
    prior = PRIOR_STEP.get(step)
    if prior is None:
        remaining = G.remaining_time_ms(step_date(record, step), policy.wait_hours.for_step(step), now=now)
        return bool(remaining)
    rec = G.recommended_completion(step_date(record, prior), policy.wait_hours.for_step(step), now=now)
    return rec is not None and rec.remaining_ms > 0


def available_actions(
    record: Any,
    policy: WorkflowPolicy,
    now: Optional[datetime] = None,
) -> List[ActionAvailability]:
    out: List[ActionAvailability] = []
    for action in Action:
        step = _ACTION_UPDATES[action][0]
        out.append(
            ActionAvailability(
                action=action,
                actionable=_is_actionable(record, action),
                early=_is_early(record, step, policy, now),
            )
        )
    return out


def check_preconditions(
    record: Any,
    step: str,
    *,
    completed: Optional[bool] = None,
    status: Optional[str] = None,
) -> None:
    """
    enforced 모드용 선행조건 검사.
    - 완료 해제(completed=False)와 pending 되돌리기는 항상 허용
    - 4단계 active ↔ suspended 재전환은 허용 (3단계 완료만 요구)
    """
    if step == "check_account":
        if status in ("active", "suspended") and not _completed(record, "seller_account"):
            raise PreconditionFailed(f"mark account {status}", "seller account step is not completed")
        return

    prior = PRIOR_STEP.get(step)
    if completed and prior is not None and not _completed(record, prior):
        raise PreconditionFailed(
            f"complete {step.replace('_', ' ')}",
            f"{prior.replace('_', ' ')} step is not completed",
        )


# ---------------------------------------------------------------------
# 전이 (저장소 쓰기 + 재조회)
# ---------------------------------------------------------------------
def _refresh(db: Session, account_id: str) -> StoreResult:
    return progress_store.get_or_create(db, account_id)


def apply_step_update(
    db: Session,
    account_id: str,
    step: str,
    *,
    completed: Optional[bool] = True,
    status: Optional[str] = None,
    policy: Optional[WorkflowPolicy] = None,
    now: Optional[datetime] = None,
) -> TransitionOutcome:
    if step not in STEPS:
        raise ValueError(f"unknown step: {step}")
    policy = policy or get_policy()

    if step == "check_account" and status not in progress_store.ALLOWED_STATUSES:
        return TransitionOutcome.from_error(InvalidStatus(status, progress_store.ALLOWED_STATUSES))

    current = _refresh(db, account_id)
    if not current.success:
        return TransitionOutcome.from_failure(current)

    if policy.enforce_gating:
        try:
            check_preconditions(current.record, step, completed=completed, status=status)
        except PreconditionFailed as exc:
            logger.info("account %s: %s", account_id, exc)
            return TransitionOutcome.from_error(exc)

    if step == "check_account":
        moves_forward = status in ("active", "suspended")
    else:
        moves_forward = bool(completed)
    early = moves_forward and _is_early(current.record, step, policy, now)

    if step == "check_account":
        written = progress_store.set_check_account_status(db, account_id, status)
    else:
        written = progress_store.STEP_SETTERS[step](db, account_id, bool(completed))
    if not written.success:
        return TransitionOutcome.from_failure(written)

    refreshed = _refresh(db, account_id)
    if not refreshed.success:
        return TransitionOutcome.from_failure(refreshed)

    if early:
        logger.info("account %s: %s done before its recommended time (early)", account_id, step)

    reload_after = None
    if step == "check_account" and status in ("active", "suspended"):
        reload_after = policy.presenter.reload_delay_seconds

    return TransitionOutcome(
        success=True,
        record=schemas.ProgressOut.model_validate(refreshed.record),
        early=early,
        reload_after_seconds=reload_after,
    )


def apply_action(
    db: Session,
    account_id: str,
    action: Action,
    *,
    policy: Optional[WorkflowPolicy] = None,
    now: Optional[datetime] = None,
) -> TransitionOutcome:
    step, completed, status = _ACTION_UPDATES[Action(action)]
    return apply_step_update(
        db, account_id, step,
        completed=completed, status=status,
        policy=policy, now=now,
    )
