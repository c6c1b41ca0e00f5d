# accountdash/logic/errors.py
# 진행상태 코어 에러 타입 + 태그드 결과
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class ProgressError(Exception):
    code = "progress_error"


class NotFoundError(ProgressError):
    code = "not_found"

    def __init__(self, account_id: str):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class InvalidStatus(ProgressError):
    code = "invalid_status"

    def __init__(self, status: Any, allowed: tuple[str, ...]):
        super().__init__(f"Invalid status: {status}. Must be one of: {', '.join(allowed)}")
        self.status = status
        self.allowed = allowed


class StoreUnavailable(ProgressError):
    code = "store_unavailable"


class PartialUpdateFailure(ProgressError):
    code = "partial_update_failure"


class PreconditionFailed(ProgressError):
    code = "precondition_failed"

    def __init__(self, action: str, reason: str):
        super().__init__(f"Cannot {action}: {reason}")
        self.action = action
        self.reason = reason


@dataclass
class StoreResult:
    """
    저장소 경계 밖으로 예외를 던지지 않고 돌려주는 결과.
    - success=False 면 error(메시지) + code(에러 종류)
    - get_or_create 만 record 를 채운다 (setter 는 항상 None)
    """
    success: bool
    error: Optional[str] = None
    code: Optional[str] = None
    record: Any = None

    @classmethod
    def ok(cls, record: Any = None) -> "StoreResult":
        return cls(success=True, record=record)

    @classmethod
    def fail(cls, exc: ProgressError) -> "StoreResult":
        return cls(success=False, error=str(exc), code=exc.code)
