# accountdash/routers/admin_dashboard.py
from collections import Counter

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from accountdash import models, schemas
from accountdash.core import time_policy as T
from accountdash.database import get_db
from accountdash.logic import workflow

router = APIRouter(prefix="/admin/dashboard", tags=["admin", "dashboard"])


def current_stage(record) -> str:
    """가장 앞의 미완료 단계. 3단계까지 끝났으면 check_account:<status>."""
    states = workflow.step_states(record)
    for step in workflow.STEPS[:3]:
        if states[step] != workflow.StepState.COMPLETED:
            return step
    return f"check_account:{states['check_account'].value}"


@router.get("/progress", response_model=schemas.ProgressSummaryOut)
def get_progress_summary(db: Session = Depends(get_db)):
    total_accounts = db.query(models.Account).count()
    suspended_accounts = db.query(models.Account).filter(models.Account.suspended.is_(True)).count()

    rows = db.query(models.ProgressSignup).all()
    stages = Counter(current_stage(r) for r in rows)

    return {
        "meta": {"timestamp": T.now_utc().isoformat()},
        "total_accounts": total_accounts,
        "tracked_accounts": len(rows),
        "stages": dict(stages),
        "accounts": {
            "active": total_accounts - suspended_accounts,
            "suspended": suspended_accounts,
        },
    }
