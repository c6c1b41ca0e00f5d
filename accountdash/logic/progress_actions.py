# accountdash/logic/progress_actions.py
# 외부 호출용 진행상태 작업 (조회 1 + 단계 갱신 4)
# - 성공: 새로 읽은 ProgressOut / 실패: error 메시지 (TransitionOutcome)
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.orm import Session

from accountdash import schemas
from accountdash.logic import progress_store
from accountdash.logic.workflow import Action, TransitionOutcome, apply_action, apply_step_update
from accountdash.policy.schema import WorkflowPolicy


def get_progress(db: Session, account_id: str) -> TransitionOutcome:
    result = progress_store.get_or_create(db, account_id)
    if not result.success:
        return TransitionOutcome.from_failure(result)
    return TransitionOutcome(success=True, record=schemas.ProgressOut.model_validate(result.record))


def update_create_account(
    db: Session, account_id: str, completed: bool, *, policy: Optional[WorkflowPolicy] = None
) -> TransitionOutcome:
    return apply_step_update(db, account_id, "create_account", completed=completed, policy=policy)


def update_first_listing(
    db: Session, account_id: str, completed: bool, *, policy: Optional[WorkflowPolicy] = None
) -> TransitionOutcome:
    return apply_step_update(db, account_id, "first_listing", completed=completed, policy=policy)


def update_seller_account(
    db: Session, account_id: str, completed: bool, *, policy: Optional[WorkflowPolicy] = None
) -> TransitionOutcome:
    return apply_step_update(db, account_id, "seller_account", completed=completed, policy=policy)


def update_check_account(
    db: Session, account_id: str, status: Optional[str], *, policy: Optional[WorkflowPolicy] = None
) -> TransitionOutcome:
    return apply_step_update(db, account_id, "check_account", completed=None, status=status, policy=policy)


# ---------------------------------------------------------------------
# 세션 팩토리 버전 (countdown presenter 가 워커 스레드에서 호출)
# ---------------------------------------------------------------------
def fetch_with_session(session_factory: Callable[[], Session], account_id: str) -> TransitionOutcome:
    db = session_factory()
    try:
        return get_progress(db, account_id)
    finally:
        db.close()


def act_with_session(
    session_factory: Callable[[], Session],
    account_id: str,
    action: Action,
    policy: Optional[WorkflowPolicy] = None,
) -> TransitionOutcome:
    db = session_factory()
    try:
        return apply_action(db, account_id, action, policy=policy)
    finally:
        db.close()
