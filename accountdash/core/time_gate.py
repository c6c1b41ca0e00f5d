# accountdash/core/time_gate.py
"""
대기시간 게이트 계산기 (순수 함수).

- 저장된 타임스탬프 1개 + 대기시간 상수만으로 남은 시간/진행률을 계산한다.
- 네트워크/DB 접근 없음. 매초 다시 호출해도 안전.
- now 는 주입 가능 (기본값: time_policy.now_utc()).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from accountdash.core import time_policy as T


@dataclass(frozen=True)
class RecommendedCompletion:
    """직전 단계 완료시각 + 이번 단계 대기시간 기준의 권장 완료 정보."""
    target_date: datetime
    remaining_ms: int
    percentage: int


def _now(now: Optional[datetime]) -> datetime:
    return T.ensure_aware_utc(now) if now is not None else T.now_utc()


def _elapsed_ms(start: datetime, now: datetime) -> int:
    return (now - start) // timedelta(milliseconds=1)


def target_time(start: datetime, wait_hours: float) -> datetime:
    return T.ensure_aware_utc(start) + timedelta(milliseconds=T.hours_to_ms(wait_hours))


def remaining_time_ms(
    start: Optional[datetime],
    wait_hours: float,
    now: Optional[datetime] = None,
) -> Optional[int]:
    """시작시각이 없으면 None, 있으면 max(0, 목표시각 - now) (ms)."""
    if start is None:
        return None
    start = T.ensure_aware_utc(start)
    current = _now(now)
    remaining = T.hours_to_ms(wait_hours) - _elapsed_ms(start, current)
    return remaining if remaining > 0 else 0


def waiting_percentage(
    start: Optional[datetime],
    wait_hours: float,
    now: Optional[datetime] = None,
) -> int:
    """경과 비율(0~100). 시작시각이 없으면 0, 목표시각 지났으면 100."""
    if start is None:
        return 0
    start = T.ensure_aware_utc(start)
    current = _now(now)
    required_ms = T.hours_to_ms(wait_hours)
    elapsed_ms = _elapsed_ms(start, current)

    if elapsed_ms >= required_ms:
        return 100
    if required_ms <= 0:
        return 0

    percentage = (elapsed_ms * 100) // required_ms
    return min(max(percentage, 0), 100)


def format_remaining(remaining_ms: Optional[int]) -> str:
    if not remaining_ms or remaining_ms <= 0:
        return "Ready"

    remaining_ms = int(remaining_ms)
    hours = remaining_ms // T.MS_PER_HOUR
    minutes = (remaining_ms % T.MS_PER_HOUR) // T.MS_PER_MINUTE
    seconds = (remaining_ms % T.MS_PER_MINUTE) // T.MS_PER_SECOND

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s remaining"
    if minutes > 0:
        return f"{minutes}m {seconds}s remaining"
    return f"{seconds}s remaining"


def recommended_completion(
    prior_date: Optional[datetime],
    wait_hours: float,
    now: Optional[datetime] = None,
) -> Optional[RecommendedCompletion]:
    """
    N단계 권장 완료시각 = (N-1)단계 완료시각 + N단계 대기시간.
    직전 단계가 아직 없으면 None.
    """
    if prior_date is None:
        return None
    current = _now(now)
    return RecommendedCompletion(
        target_date=target_time(prior_date, wait_hours),
        remaining_ms=remaining_time_ms(prior_date, wait_hours, now=current) or 0,
        percentage=waiting_percentage(prior_date, wait_hours, now=current),
    )


def format_timestamp(dt: Optional[datetime], tz_name: str = "Africa/Casablanca") -> str:
    """대시보드 표시용 24시간제 날짜 (dd/mm/YYYY, HH:MM:SS)."""
    if dt is None:
        return "-"
    local = T.ensure_aware_utc(dt).astimezone(T.get_tz(tz_name, 1))
    return local.strftime("%d/%m/%Y, %H:%M:%S")
