# accountdash/models.py
# 계정(Account) + 가입 진행상태(ProgressSignup) 모델
from sqlalchemy import (
    Column, String, DateTime, Boolean, ForeignKey, Index,
    Enum as SAEnum,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from .database import Base
import enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -------------------------------------------------------
# 🧑 Account (외부 협력 엔티티: 조회 + suspended 플래그만 사용)
# -------------------------------------------------------
class Account(Base):
    __tablename__ = "accounts"

    order_id = Column(String(32), primary_key=True)  # OrderIdAccount
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    country = Column(String(100), nullable=True)
    user_id = Column(String(100), nullable=True)
    suspended = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    progress = relationship("ProgressSignup", back_populates="account", uselist=False)

    def __repr__(self):
        return f"<Account(order_id='{self.order_id}', suspended={self.suspended})>"


# -------------------------------------------------------
# 🧭 ProgressSignup (계정당 1행, 4단계 워크플로)
# -------------------------------------------------------
class CheckAccountStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class ProgressSignup(Base):
    __tablename__ = "progress_signup"

    account_id = Column(
        String(32),
        ForeignKey("accounts.order_id"),
        primary_key=True,
    )

    # 1단계: 계정 생성
    create_account_completed = Column(Boolean, default=False, nullable=False)
    create_account_date = Column(DateTime(timezone=True), nullable=True)

    # 2단계: 첫 리스팅
    first_listing_completed = Column(Boolean, default=False, nullable=False)
    first_listing_date = Column(DateTime(timezone=True), nullable=True)

    # 3단계: 셀러 계정
    seller_account_completed = Column(Boolean, default=False, nullable=False)
    seller_account_date = Column(DateTime(timezone=True), nullable=True)

    # 4단계: 계정 확인 (pending → active | suspended)
    check_account_status = Column(
        SAEnum(
            CheckAccountStatus,
            name="checkaccountstatus",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=CheckAccountStatus.PENDING,
        nullable=False,
    )
    check_account_date = Column(DateTime(timezone=True), nullable=True)

    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    account = relationship("Account", back_populates="progress")

    def __repr__(self):
        return (
            f"<ProgressSignup(account_id='{self.account_id}', "
            f"status='{getattr(self.check_account_status, 'value', self.check_account_status)}')>"
        )


Index("ix_progress_signup_status", ProgressSignup.check_account_status)
