# accountdash/core/time_policy.py
# 시간 정책 공용 헬퍼
# - 모든 비즈니스 로직은 now_utc() 하나만 사용 (테스트에서 고정 가능)
# - 모든 반환값은 timezone-aware UTC(datetime)

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

UTC = timezone.utc

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE


def get_tz(key: str, fallback_offset_hours: int = 0):
    """
    IANA 시간대(key)를 우선 시도하고, 실패 시 UTC 오프셋 기반 타임존으로 폴백.
    """
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError):
        # tzdata 가 없는 환경
        pass
    return timezone(timedelta(hours=fallback_offset_hours))


# -------------------------------------------------------
# 🔹 현재 시각 (테스트 오버라이드 지원)
# -------------------------------------------------------
_TEST_NOW_UTC: Optional[datetime] = None


def set_now_utc_for_testing(dt: Optional[datetime]) -> None:
    """
    dt가 None이면 오버라이드 해제. dt가 naive면 UTC로 간주.
    """
    global _TEST_NOW_UTC
    if dt is None:
        _TEST_NOW_UTC = None
    else:
        _TEST_NOW_UTC = ensure_aware_utc(dt)


def now_utc() -> datetime:
    if _TEST_NOW_UTC is not None:
        return _TEST_NOW_UTC
    return datetime.now(UTC)


def ensure_aware_utc(dt: datetime) -> datetime:
    """naive면 UTC로 붙여서 반환, aware면 UTC로 변환."""
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    DB에서 나온 datetime 을 안전하게 UTC aware 로 바꿔주는 헬퍼.
    SQLite는 tzinfo를 버리므로 naive 값은 UTC로 가정한다.
    """
    if dt is None:
        return None
    return ensure_aware_utc(dt)


def hours_to_ms(hours: float) -> int:
    return int(round(hours * MS_PER_HOUR))


__all__ = [
    "UTC",
    "MS_PER_SECOND", "MS_PER_MINUTE", "MS_PER_HOUR",
    "get_tz",
    "set_now_utc_for_testing", "now_utc",
    "ensure_aware_utc", "as_utc", "hours_to_ms",
]
