# accountdash/logic/countdown.py
"""
실시간 카운트다운 프레젠터.

- 시작(또는 계정 전환) 시 1회 조회 → SnapshotCell 에 보관
- 이후 tick_interval_ms(기본 1초)마다 셀의 값만으로 남은시간/진행률 재계산 (재조회 없음)
- 어떤 게이트든 >0 → 0 으로 바뀌면 1회 알림 (다음 조회 전까지 재알림 없음)
- 사용자 액션은 busy 플래그로 직렬화, 버튼 규칙(actionable)에 맞지 않으면 거절
- 성공 시 새 레코드로 셀 교체, 쓰기와 겹친 조회 결과는 버린다
- stop()/switch_account() 에서 tick, 알림 해제, 새로고침 타이머를 모두 취소
"""
from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from accountdash import schemas
from accountdash.core import time_gate as G
from accountdash.core import time_policy as T
from accountdash.logic import progress_actions, workflow
from accountdash.logic.workflow import Action, TransitionOutcome
from accountdash.policy.runtime import get_policy
from accountdash.policy.schema import WorkflowPolicy

logger = logging.getLogger(__name__)

WAIT_COMPLETE_NOTICE = "A waiting period has completed!"

SUCCESS_MESSAGES = {
    Action.COMPLETE_CREATE_ACCOUNT: "Successfully marked Create Account as completed",
    Action.COMPLETE_FIRST_LISTING: "Successfully marked First Listing as completed",
    Action.COMPLETE_SELLER_ACCOUNT: "Successfully marked Seller Account as completed",
    Action.MARK_ACTIVE: "Successfully marked account as Active",
    Action.MARK_SUSPENDED: "Successfully marked account as Suspended",
}

STEP_ACTIONS = {
    "create_account": Action.COMPLETE_CREATE_ACCOUNT,
    "first_listing": Action.COMPLETE_FIRST_LISTING,
    "seller_account": Action.COMPLETE_SELLER_ACCOUNT,
}

Fetcher = Callable[[str], TransitionOutcome]
Actor = Callable[[str, Action], TransitionOutcome]


class SnapshotCell:
    """프레젠터가 소유하는 '마지막으로 조회한 레코드' 보관 셀."""

    def __init__(self, value: Optional[schemas.ProgressOut] = None):
        self._value = value

    def get(self) -> Optional[schemas.ProgressOut]:
        return self._value

    def set(self, value: Optional[schemas.ProgressOut]) -> None:
        self._value = value

    def clear(self) -> None:
        self._value = None


def build_view(
    record: Any,
    policy: WorkflowPolicy,
    now: Optional[datetime] = None,
    *,
    notice: Optional[str] = None,
    error: Optional[str] = None,
) -> schemas.CountdownViewOut:
    """레코드 1개 + 정책 + now 로 카운트다운 화면 값을 만든다 (순수 계산)."""
    now = T.ensure_aware_utc(now) if now is not None else T.now_utc()

    remaining = workflow.own_gates(record, policy, now=now)
    recommended: Dict[str, Optional[schemas.RecommendedOut]] = {}
    for step, rec in workflow.recommended_times(record, policy, now=now).items():
        if rec is None:
            recommended[step] = None
            continue
        recommended[step] = schemas.RecommendedOut(
            target_date=rec.target_date,
            target_display=G.format_timestamp(rec.target_date, policy.display_timezone),
            remaining_ms=rec.remaining_ms,
            remaining_label=G.format_remaining(rec.remaining_ms),
            percentage=rec.percentage,
        )

    return schemas.CountdownViewOut(
        account_id=str(getattr(record, "account_id")),
        computed_at=now,
        gating=policy.gating,
        step_states={k: v.value for k, v in workflow.step_states(record).items()},
        remaining_ms=remaining,
        remaining_labels={k: G.format_remaining(v) for k, v in remaining.items()},
        percentages=workflow.own_percentages(record, policy, now=now),
        recommended=recommended,
        actions=[
            schemas.ActionOut(action=a.action.value, actionable=a.actionable, early=a.early, label=a.label)
            for a in workflow.available_actions(record, policy, now=now)
        ],
        notice=notice,
        error=error,
    )


def _gate_values(view: schemas.CountdownViewOut) -> Dict[str, Optional[int]]:
    values: Dict[str, Optional[int]] = dict(view.remaining_ms)
    for step, rec in view.recommended.items():
        values[f"recommended.{step}"] = rec.remaining_ms if rec is not None else None
    return values


class CountdownPresenter:
    def __init__(
        self,
        account_id: str,
        *,
        fetch: Fetcher,
        act: Actor,
        policy: Optional[WorkflowPolicy] = None,
        on_render: Optional[Callable[[schemas.CountdownViewOut], None]] = None,
        on_reload: Optional[Callable[[str], None]] = None,
    ):
        self.account_id = account_id
        self.policy = policy or get_policy()
        self.cell = SnapshotCell()

        self._fetch = fetch
        self._act = act
        self._on_render = on_render
        self._on_reload = on_reload

        self._tick_task: Optional[asyncio.Task] = None
        self._notice_task: Optional[asyncio.Task] = None
        self._reload_task: Optional[asyncio.Task] = None

        self._last_remaining: Dict[str, Optional[int]] = {}
        self._notified = False

        self.busy = False
        self._write_seq = 0
        self.notice: Optional[str] = None
        self.error: Optional[str] = None
        self.last_view: Optional[schemas.CountdownViewOut] = None

    @classmethod
    def for_sessions(
        cls,
        account_id: str,
        session_factory: Callable[[], Session],
        **kwargs,
    ) -> "CountdownPresenter":
        policy = kwargs.get("policy")
        return cls(
            account_id,
            fetch=functools.partial(progress_actions.fetch_with_session, session_factory),
            act=lambda acc, action: progress_actions.act_with_session(session_factory, acc, action, policy),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    async def start(self) -> None:
        if self.running:
            return
        await self.refresh()
        self._tick_task = asyncio.create_task(self._run())
        logger.debug("countdown started for %s", self.account_id)

    async def stop(self) -> None:
        tasks = [t for t in (self._tick_task, self._notice_task, self._reload_task) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tick_task = self._notice_task = self._reload_task = None
        logger.debug("countdown stopped for %s", self.account_id)

    async def switch_account(self, account_id: str) -> None:
        await self.stop()
        self.account_id = account_id
        self.cell.clear()
        self._last_remaining = {}
        self._notified = False
        self.notice = None
        self.error = None
        self.last_view = None
        await self.start()

    async def __aenter__(self) -> "CountdownPresenter":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    async def _run(self) -> None:
        interval = self.policy.presenter.tick_interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            self.tick()

    # ------------------------------------------------------------------
    # tick (셀만 읽는 순수 계산)
    # ------------------------------------------------------------------
    def tick(self, now: Optional[datetime] = None) -> Optional[schemas.CountdownViewOut]:
        record = self.cell.get()
        if record is None:
            return None

        view = build_view(record, self.policy, now, notice=self.notice, error=self.error)
        current = _gate_values(view)

        finished = [
            key for key, value in current.items()
            if value == 0 and (self._last_remaining.get(key) or 0) > 0
        ]
        self._last_remaining = current

        if finished and not self._notified:
            self._notified = True
            logger.info("account %s: waiting period completed (%s)", self.account_id, ", ".join(finished))
            self._set_notice(WAIT_COMPLETE_NOTICE)
            view = view.model_copy(update={"notice": self.notice})

        self.last_view = view
        if self._on_render is not None:
            self._on_render(view)
        return view

    # ------------------------------------------------------------------
    # fetch / actions
    # ------------------------------------------------------------------
    def _accept(self, record: schemas.ProgressOut) -> None:
        self.cell.set(record)
        self._last_remaining = {}
        self._notified = False
        self.tick()

    async def refresh(self) -> bool:
        if self.busy:
            # 진행 중인 액션이 끝나면 그 결과로 셀이 바뀐다
            return False
        seq = self._write_seq
        outcome = await asyncio.to_thread(self._fetch, self.account_id)
        if self.busy or seq != self._write_seq:
            # 조회 도중 쓰기가 시작됨: 쓰기 이전 값일 수 있으므로 버린다
            logger.debug("account %s: discarding fetch that overlapped a write", self.account_id)
            return False
        if not outcome.success:
            self.error = f"Error fetching progress data: {outcome.error}"
            logger.warning("account %s: %s", self.account_id, self.error)
            self.tick()
            return False
        self.error = None
        self._accept(outcome.record)
        return True

    def is_actionable(self, action: Action) -> bool:
        """화면의 버튼 규칙과 같다. 4단계는 pending 일 때만 (재전환은 HTTP 로)."""
        record = self.cell.get()
        if record is None:
            return False
        return any(
            a.action == action and a.actionable
            for a in workflow.available_actions(record, self.policy)
        )

    async def perform(self, action: Action) -> TransitionOutcome:
        if self.busy:
            return TransitionOutcome(success=False, error="Another update is still in progress", code="busy")

        action = Action(action)
        if not self.is_actionable(action):
            message = f"{action.value} is not available in the current state"
            self.error = f"Error updating progress: {message}"
            logger.info("account %s: rejected %s (not actionable)", self.account_id, action.value)
            self.tick()
            return TransitionOutcome(success=False, error=message, code="not_actionable")

        self.busy = True
        self._write_seq += 1
        self.error = None
        self._set_notice(None)
        try:
            outcome = await asyncio.to_thread(self._act, self.account_id, action)
        finally:
            self.busy = False

        if not outcome.success:
            # 셀은 그대로 둔다 (성공한 것처럼 보이지 않게)
            self.error = f"Error updating progress: {outcome.error}"
            logger.warning("account %s: %s", self.account_id, self.error)
            self.tick()
            return outcome

        self._set_notice(SUCCESS_MESSAGES[action])
        self._accept(outcome.record)
        if outcome.reload_after_seconds is not None:
            self._schedule_reload(outcome.reload_after_seconds)
        return outcome

    async def complete_step(self, step: str) -> TransitionOutcome:
        return await self.perform(STEP_ACTIONS[step])

    async def mark_active(self) -> TransitionOutcome:
        return await self.perform(Action.MARK_ACTIVE)

    async def mark_suspended(self) -> TransitionOutcome:
        return await self.perform(Action.MARK_SUSPENDED)

    # ------------------------------------------------------------------
    # timers
    # ------------------------------------------------------------------
    def _set_notice(self, message: Optional[str]) -> None:
        if self._notice_task is not None:
            self._notice_task.cancel()
            self._notice_task = None
        self.notice = message

        timeout = self.policy.presenter.notice_timeout_seconds
        if message is None or timeout <= 0:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # 루프 밖(동기 tick 호출)에서는 자동 해제 타이머 없이 유지
            return
        self._notice_task = asyncio.create_task(self._clear_notice_later(timeout))

    async def _clear_notice_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self.notice = None
        self._notice_task = None

    def _schedule_reload(self, delay: float) -> None:
        if self._reload_task is not None:
            self._reload_task.cancel()
        self._reload_task = asyncio.create_task(self._reload_later(delay))

    async def _reload_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.refresh()
        self._reload_task = None
        if self._on_reload is not None:
            self._on_reload(self.account_id)
