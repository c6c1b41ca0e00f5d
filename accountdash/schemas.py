# accountdash/schemas.py
# ===== Progress / Countdown Schemas =====
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from accountdash.core import time_policy as T


# ─────────────────────────────────────────────────────────
# 공통 ORM 베이스
# ─────────────────────────────────────────────────────────
class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------- Progress ----------------
class ProgressOut(ORMModel):
    account_id: str

    create_account_completed: bool = False
    create_account_date: Optional[datetime] = None

    first_listing_completed: bool = False
    first_listing_date: Optional[datetime] = None

    seller_account_completed: bool = False
    seller_account_date: Optional[datetime] = None

    check_account_status: Literal["pending", "active", "suspended"] = "pending"
    check_account_date: Optional[datetime] = None

    updated_at: Optional[datetime] = None

    @field_validator("check_account_status", mode="before")
    @classmethod
    def _status_value(cls, v):
        # ORM 에서는 CheckAccountStatus enum 으로 들어온다
        return getattr(v, "value", v)

    @field_validator(
        "create_account_date",
        "first_listing_date",
        "seller_account_date",
        "check_account_date",
        "updated_at",
    )
    @classmethod
    def _aware_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # SQLite 는 tzinfo 를 버리므로 UTC 로 다시 붙인다
        return T.as_utc(v)


class StepUpdateIn(BaseModel):
    completed: bool = True


class CheckAccountIn(BaseModel):
    status: Optional[str] = None


class ProgressUpdateIn(BaseModel):
    """PUT /progress/{account_id} 본문 (step 으로 분기)."""
    step: Optional[str] = None
    completed: bool = True
    status: Optional[str] = None


class ProgressUpdateOut(BaseModel):
    message: str
    progress: ProgressOut


class ErrorOut(BaseModel):
    error: str


# ---------------- Countdown view ----------------
class RecommendedOut(BaseModel):
    target_date: datetime
    target_display: str
    remaining_ms: int
    remaining_label: str
    percentage: int


class ActionOut(BaseModel):
    action: str
    actionable: bool
    early: bool
    label: str


class CountdownViewOut(BaseModel):
    account_id: str
    computed_at: datetime
    gating: str
    step_states: Dict[str, str]
    remaining_ms: Dict[str, Optional[int]]
    remaining_labels: Dict[str, str]
    percentages: Dict[str, int]
    recommended: Dict[str, Optional[RecommendedOut]]
    actions: List[ActionOut]
    notice: Optional[str] = None
    error: Optional[str] = None


# ---------------- Admin dashboard ----------------
class ProgressSummaryOut(BaseModel):
    meta: Dict[str, str]
    total_accounts: int
    tracked_accounts: int
    stages: Dict[str, int]
    accounts: Dict[str, int]
