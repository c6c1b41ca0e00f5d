# accountdash/logic/progress_store.py
"""
진행상태 저장소 (progress_signup 테이블).

- get_or_create: 없으면 '생성 정책'(initial_progress_for)으로 행을 만든 뒤 반환
- set_*_step: 단계 완료 플래그 + 날짜 변경 (게이트 검사 없음)
- set_check_account_status: 상태 변경 + Account.suspended 동기화 (한 트랜잭션)

모든 공개 함수는 예외를 밖으로 던지지 않고 StoreResult 를 돌려준다.
setter 는 행을 돌려주지 않는다. 최신 값은 get_or_create 로 다시 읽는다.
"""
from __future__ import annotations

import functools
import logging
from typing import Callable, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from accountdash import crud, models
from accountdash.core import time_policy as T
from accountdash.logic.errors import (
    InvalidStatus,
    NotFoundError,
    PartialUpdateFailure,
    ProgressError,
    StoreResult,
    StoreUnavailable,
)
from accountdash.models import CheckAccountStatus, ProgressSignup

logger = logging.getLogger(__name__)

ALLOWED_STATUSES: tuple[str, ...] = tuple(s.value for s in CheckAccountStatus)

# 단계 키 → 컬럼 prefix (1~3단계)
STEP_COLUMNS = {
    "create_account": "create_account",
    "first_listing": "first_listing",
    "seller_account": "seller_account",
}


# ---------------------------------------------------------------------
# 생성 정책: 계정이 존재한다는 것만으로 1단계는 완료
# ---------------------------------------------------------------------
def initial_progress_for(account: models.Account) -> ProgressSignup:
    return ProgressSignup(
        account_id=account.order_id,
        create_account_completed=True,
        create_account_date=T.as_utc(account.created_at),
        first_listing_completed=False,
        first_listing_date=None,
        seller_account_completed=False,
        seller_account_date=None,
        check_account_status=CheckAccountStatus.PENDING,
        check_account_date=None,
        updated_at=T.now_utc(),
    )


# ---------------------------------------------------------------------
# 저장소 경계: 예외 → StoreResult
# ---------------------------------------------------------------------
def _store_boundary(fn: Callable[..., StoreResult]) -> Callable[..., StoreResult]:
    @functools.wraps(fn)
    def wrapper(db: Session, account_id: str, *args, **kwargs) -> StoreResult:
        try:
            return fn(db, account_id, *args, **kwargs)
        except ProgressError as exc:
            logger.warning("%s(%s) failed: %s", fn.__name__, account_id, exc)
            return StoreResult.fail(exc)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("%s(%s) store error", fn.__name__, account_id)
            return StoreResult.fail(StoreUnavailable(f"Progress store unavailable: {exc.__class__.__name__}"))

    return wrapper


def _load_or_create(db: Session, account_id: str) -> ProgressSignup:
    row = db.get(ProgressSignup, account_id)
    if row is not None:
        return row

    account = crud.get_account_by_id(db, account_id)
    if account is None:
        raise NotFoundError(account_id)

    db.add(initial_progress_for(account))
    try:
        db.commit()
    except IntegrityError:
        # 다른 요청이 먼저 만들었음 → 그 행을 그대로 사용
        db.rollback()
        row = db.get(ProgressSignup, account_id)
        if row is None:
            raise
        return row

    row = db.get(ProgressSignup, account_id)
    logger.info("progress record created for account %s", account_id)
    return row


def _coerce_status(status: Union[str, CheckAccountStatus, None]) -> CheckAccountStatus:
    if isinstance(status, CheckAccountStatus):
        return status
    if isinstance(status, str) and status in ALLOWED_STATUSES:
        return CheckAccountStatus(status)
    raise InvalidStatus(status, ALLOWED_STATUSES)


def _set_step(db: Session, account_id: str, step: str, completed: bool) -> None:
    prefix = STEP_COLUMNS[step]
    row = _load_or_create(db, account_id)
    now = T.now_utc()

    setattr(row, f"{prefix}_completed", bool(completed))
    setattr(row, f"{prefix}_date", now if completed else None)
    row.updated_at = now
    db.add(row)
    db.commit()
    logger.info("account %s step %s completed=%s", account_id, step, bool(completed))


# ---------------------------------------------------------------------
# 공개 API
# ---------------------------------------------------------------------
@_store_boundary
def get_or_create(db: Session, account_id: str) -> StoreResult:
    return StoreResult.ok(_load_or_create(db, account_id))


@_store_boundary
def set_create_account_step(db: Session, account_id: str, completed: bool) -> StoreResult:
    _set_step(db, account_id, "create_account", completed)
    return StoreResult.ok()


@_store_boundary
def set_first_listing_step(db: Session, account_id: str, completed: bool) -> StoreResult:
    _set_step(db, account_id, "first_listing", completed)
    return StoreResult.ok()


@_store_boundary
def set_seller_account_step(db: Session, account_id: str, completed: bool) -> StoreResult:
    _set_step(db, account_id, "seller_account", completed)
    return StoreResult.ok()


@_store_boundary
def set_check_account_status(
    db: Session,
    account_id: str,
    status: Union[str, CheckAccountStatus, None],
) -> StoreResult:
    new_status = _coerce_status(status)
    row = _load_or_create(db, account_id)
    now = T.now_utc()

    # active/suspended 는 Account.suspended 와 같이 커밋되어야 한다
    flag_staged = False
    if new_status in (CheckAccountStatus.ACTIVE, CheckAccountStatus.SUSPENDED):
        try:
            found = crud.set_account_suspended(
                db, account_id, new_status == CheckAccountStatus.SUSPENDED, commit=False
            )
        except SQLAlchemyError as exc:
            db.rollback()
            raise PartialUpdateFailure(
                f"Could not update suspended flag for account {account_id}; status left unchanged"
            ) from exc
        if not found:
            db.rollback()
            raise PartialUpdateFailure(
                f"Account {account_id} vanished before its suspended flag could be updated"
            )
        flag_staged = True

    row.check_account_status = new_status
    row.check_account_date = now
    row.updated_at = now
    db.add(row)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        if flag_staged:
            raise PartialUpdateFailure(
                f"Progress write failed for account {account_id}; suspended flag rolled back"
            ) from exc
        raise

    logger.info("account %s check_account_status=%s", account_id, new_status.value)
    return StoreResult.ok()


# 1~3단계 setter 를 단계 키로 찾기 위한 테이블
STEP_SETTERS = {
    "create_account": set_create_account_step,
    "first_listing": set_first_listing_step,
    "seller_account": set_seller_account_step,
}
