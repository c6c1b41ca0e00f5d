# accountdash/crud.py
# Account 협력자 (조회 / suspended 플래그 변경)
# - 계정 CRUD 화면/검증은 이 서비스 범위 밖. 진행상태 코어가 부르는 최소 함수만 둔다.
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from accountdash import models
from accountdash.core import time_policy as T

logger = logging.getLogger(__name__)


def get_account_by_id(db: Session, account_id: str) -> Optional[models.Account]:
    return db.get(models.Account, account_id)


def set_account_suspended(
    db: Session,
    account_id: str,
    suspended: bool,
    *,
    commit: bool = True,
) -> bool:
    """
    계정 suspended 플래그 변경. 계정이 없으면 False.
    commit=False 면 같은 트랜잭션 안에서 다른 쓰기와 묶어서 커밋하도록 flush만 한다.
    """
    account = get_account_by_id(db, account_id)
    if account is None:
        return False

    account.suspended = bool(suspended)
    db.add(account)
    if commit:
        db.commit()
    else:
        db.flush()
    logger.info("account %s suspended=%s", account_id, account.suspended)
    return True


def create_account(
    db: Session,
    *,
    order_id: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email: Optional[str] = None,
    country: Optional[str] = None,
    user_id: Optional[str] = None,
    suspended: bool = False,
    created_at: Optional[datetime] = None,
    seed_progress: bool = False,
) -> models.Account:
    """
    계정 1건 생성. seed_progress=True 면 진행상태 행도 바로 만든다
    (1단계 완료 상태, 기준시각 = created_at).
    """
    account = models.Account(
        order_id=order_id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        country=country,
        user_id=user_id,
        suspended=suspended,
        created_at=T.ensure_aware_utc(created_at) if created_at else T.now_utc(),
    )
    db.add(account)
    db.commit()
    db.refresh(account)

    if seed_progress:
        from accountdash.logic import progress_store

        result = progress_store.get_or_create(db, order_id)
        if not result.success:
            # 계정 생성은 유지, 진행상태는 다음 조회 때 다시 만들어진다
            logger.warning("progress seed failed for %s: %s", order_id, result.error)

    return account
