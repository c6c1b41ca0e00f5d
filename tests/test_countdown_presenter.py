# tests/test_countdown_presenter.py
import asyncio
import threading
from datetime import timedelta

from accountdash.logic.countdown import (
    SUCCESS_MESSAGES,
    WAIT_COMPLETE_NOTICE,
    CountdownPresenter,
    build_view,
)
from accountdash.logic.workflow import Action, TransitionOutcome
from accountdash.schemas import ProgressOut

from conftest import NOW, make_policy


def _record(account_id="AB12C", **kw):
    base = dict(account_id=account_id, create_account_completed=True, create_account_date=NOW)
    base.update(kw)
    return ProgressOut(**base)


def _awaiting_check(**kw):
    """3단계까지 끝나고 pending 인 레코드."""
    return _record(
        first_listing_completed=True, first_listing_date=NOW,
        seller_account_completed=True, seller_account_date=NOW,
        **kw,
    )


class FakeBackend:
    """fetch/act 호출 기록용 가짜 저장소."""

    def __init__(self, record=None, act_outcome=None):
        self.record = record
        self.act_outcome = act_outcome
        self.fetched = []
        self.acted = []

    def fetch(self, account_id):
        self.fetched.append(account_id)
        if self.record is None:
            return TransitionOutcome(success=False, error=f"Account {account_id} not found", code="not_found")
        return TransitionOutcome(success=True, record=self.record.model_copy(update={"account_id": account_id}))

    def act(self, account_id, action):
        self.acted.append((account_id, action))
        return self.act_outcome


def _presenter(backend, renders=None, **presenter_policy):
    return CountdownPresenter(
        "AB12C",
        fetch=backend.fetch,
        act=backend.act,
        policy=make_policy(**presenter_policy),
        on_render=renders.append if renders is not None else None,
    )


# 1) 화면 값 계산
def test_build_view_values():
    view = build_view(_record(), make_policy(), NOW + timedelta(hours=1))

    assert view.account_id == "AB12C"
    assert view.step_states["first_listing"] == "in_progress"
    assert view.remaining_ms["create_account"] == 2 * 60 * 60 * 1000
    assert view.remaining_labels["create_account"] == "2h 0m 0s remaining"
    assert view.remaining_labels["first_listing"] == "Ready"
    assert view.percentages["create_account"] == 33
    rec = view.recommended["first_listing"]
    assert rec.target_display == "06/01/2025, 13:00:00"
    assert rec.remaining_label == "2h 0m 0s remaining"
    assert view.recommended["seller_account"] is None
    labels = {a.action: a.label for a in view.actions}
    assert labels["complete_first_listing"] == "Mark as Complete (early)"


# 2) tick: 셀만 읽고 알림은 1회
def test_tick_without_record_renders_nothing():
    renders = []
    p = _presenter(FakeBackend(), renders)
    assert p.tick(NOW) is None
    assert renders == []


def test_wait_complete_notice_fires_once_per_fetch():
    renders = []
    backend = FakeBackend()
    p = _presenter(backend, renders)
    p.cell.set(_record(first_listing_completed=True, first_listing_date=NOW + timedelta(hours=1)))

    p.tick(NOW + timedelta(hours=2))
    assert renders[-1].notice is None

    view = p.tick(NOW + timedelta(hours=3))
    assert view.notice == WAIT_COMPLETE_NOTICE
    assert view.remaining_ms["create_account"] == 0

    # 다른 게이트가 끝나도 같은 조회 주기에서는 다시 알리지 않는다
    p.notice = None
    view = p.tick(NOW + timedelta(hours=4))
    assert view.remaining_ms["first_listing"] == 0
    assert view.notice is None


def test_gate_already_done_at_fetch_does_not_notify():
    p = _presenter(FakeBackend())
    p.cell.set(_record())
    p.tick(NOW + timedelta(hours=5))
    view = p.tick(NOW + timedelta(hours=5, seconds=1))
    assert view.notice is None


# 3) 수명주기
def test_ticks_reuse_single_fetch():
    renders = []
    backend = FakeBackend(_record())
    p = _presenter(backend, renders, tick_interval_ms=100)

    async def main():
        async with p:
            assert p.running
            await asyncio.sleep(0.45)
        assert not p.running

    asyncio.run(main())
    assert backend.fetched == ["AB12C"]
    assert len(renders) >= 3


def test_switch_account_cancels_old_loop():
    renders = []
    backend = FakeBackend(_record())
    p = _presenter(backend, renders, tick_interval_ms=100)

    async def main():
        await p.start()
        first_task = p._tick_task
        await p.switch_account("ZZ99Y")
        assert first_task.cancelled()
        assert p.running
        assert p.cell.get().account_id == "ZZ99Y"
        await p.stop()

    asyncio.run(main())
    assert backend.fetched == ["AB12C", "ZZ99Y"]
    assert not p.running


def test_fetch_failure_sets_error():
    p = _presenter(FakeBackend(record=None))

    async def main():
        ok = await p.refresh()
        assert ok is False

    asyncio.run(main())
    assert p.cell.get() is None
    assert p.error == "Error fetching progress data: Account AB12C not found"


# 4) 액션
def test_failed_action_keeps_cell():
    original = _record()
    backend = FakeBackend(
        original,
        act_outcome=TransitionOutcome(success=False, error="Progress store unavailable", code="store_unavailable"),
    )
    p = _presenter(backend)

    async def main():
        await p.refresh()
        before = p.cell.get()
        outcome = await p.complete_step("first_listing")
        assert outcome.success is False
        assert p.cell.get() is before

    asyncio.run(main())
    assert p.error == "Error updating progress: Progress store unavailable"
    assert p.notice is None
    assert p.busy is False


def test_actions_are_serialized():
    release = threading.Event()
    updated = _record(first_listing_completed=True, first_listing_date=NOW)

    class SlowBackend(FakeBackend):
        def act(self, account_id, action):
            self.acted.append((account_id, action))
            release.wait(timeout=5)
            return TransitionOutcome(success=True, record=updated)

    backend = SlowBackend(_record())
    p = _presenter(backend)

    async def main():
        await p.refresh()
        first = asyncio.create_task(p.complete_step("first_listing"))
        while not p.busy:
            await asyncio.sleep(0.01)

        second = await p.complete_step("seller_account")
        assert second.success is False
        assert second.code == "busy"

        release.set()
        done = await first
        assert done.success is True
        await p.stop()

    asyncio.run(main())
    assert len(backend.acted) == 1
    assert p.cell.get().first_listing_completed is True


def test_mark_active_notice_and_reload():
    reloaded = []
    active = _record(
        seller_account_completed=True, seller_account_date=NOW,
        check_account_status="active", check_account_date=NOW,
    )
    backend = FakeBackend(
        _awaiting_check(),
        act_outcome=TransitionOutcome(success=True, record=active, reload_after_seconds=0.05),
    )
    p = CountdownPresenter(
        "AB12C",
        fetch=backend.fetch,
        act=backend.act,
        policy=make_policy(notice_timeout_seconds=0.2, reload_delay_seconds=0.05),
        on_reload=reloaded.append,
    )

    async def main():
        await p.refresh()
        outcome = await p.mark_active()
        assert outcome.success is True
        assert p.notice == SUCCESS_MESSAGES[Action.MARK_ACTIVE]
        assert p.cell.get().check_account_status == "active"

        await asyncio.sleep(0.1)
        assert reloaded == ["AB12C"]
        assert p.notice == SUCCESS_MESSAGES[Action.MARK_ACTIVE]

        await asyncio.sleep(0.2)
        assert p.notice is None
        await p.stop()

    asyncio.run(main())
    assert backend.acted == [("AB12C", Action.MARK_ACTIVE)]
    assert backend.fetched == ["AB12C", "AB12C"]


def test_stop_cancels_pending_reload():
    reloaded = []
    backend = FakeBackend(
        _awaiting_check(),
        act_outcome=TransitionOutcome(success=True, record=_awaiting_check(), reload_after_seconds=0.2),
    )
    p = CountdownPresenter("AB12C", fetch=backend.fetch, act=backend.act,
                           policy=make_policy(), on_reload=reloaded.append)

    async def main():
        await p.refresh()
        await p.mark_suspended()
        await p.stop()
        await asyncio.sleep(0.3)

    asyncio.run(main())
    assert reloaded == []
    assert backend.fetched == ["AB12C"]


def test_out_of_order_step_is_rejected():
    backend = FakeBackend(_record(), act_outcome=TransitionOutcome(success=True, record=_record()))
    p = _presenter(backend)

    async def main():
        await p.refresh()
        assert p.is_actionable(Action.COMPLETE_SELLER_ACCOUNT) is False
        outcome = await p.complete_step("seller_account")
        assert outcome.success is False
        assert outcome.code == "not_actionable"

    asyncio.run(main())
    assert backend.acted == []
    assert p.cell.get().seller_account_completed is False
    assert p.error == "Error updating progress: complete_seller_account is not available in the current state"


def test_final_status_buttons_only_while_pending():
    backend = FakeBackend(
        _awaiting_check(check_account_status="active", check_account_date=NOW),
        act_outcome=TransitionOutcome(success=True, record=_awaiting_check()),
    )
    p = _presenter(backend)

    async def main():
        await p.refresh()
        outcome = await p.mark_suspended()
        assert outcome.code == "not_actionable"

    asyncio.run(main())
    assert backend.acted == []


def test_action_without_loaded_record_is_rejected():
    backend = FakeBackend(None, act_outcome=TransitionOutcome(success=True, record=_record()))
    p = _presenter(backend)

    outcome = asyncio.run(p.complete_step("first_listing"))
    assert outcome.code == "not_actionable"
    assert backend.acted == []


def test_fetch_overlapping_an_action_is_discarded():
    fetch_started = threading.Event()
    release = threading.Event()
    stale = _record()
    updated = _record(first_listing_completed=True, first_listing_date=NOW)

    class SlowFetchBackend(FakeBackend):
        def fetch(self, account_id):
            self.fetched.append(account_id)
            if len(self.fetched) > 1:
                fetch_started.set()
                release.wait(timeout=5)
            return TransitionOutcome(success=True, record=stale)

    backend = SlowFetchBackend(stale, act_outcome=TransitionOutcome(success=True, record=updated))
    p = _presenter(backend)

    async def main():
        await p.refresh()
        pending = asyncio.create_task(p.refresh())
        await asyncio.to_thread(fetch_started.wait, 5)

        outcome = await p.complete_step("first_listing")
        assert outcome.success is True

        release.set()
        assert await pending is False
        await p.stop()

    asyncio.run(main())
    assert p.cell.get().first_listing_completed is True


def test_refresh_skipped_while_action_in_flight():
    backend = FakeBackend(_record())
    p = _presenter(backend)
    p.busy = True

    assert asyncio.run(p.refresh()) is False
    assert backend.fetched == []


# 5) 실제 DB 세션으로
def test_presenter_over_sessions(session_factory, account, advisory_policy):
    p = CountdownPresenter.for_sessions(account.order_id, session_factory, policy=advisory_policy)

    async def main():
        async with p:
            assert p.cell.get().create_account_completed is True
            outcome = await p.complete_step("first_listing")
            assert outcome.success is True
            assert outcome.early is True

    asyncio.run(main())
    assert p.cell.get().first_listing_completed is True
    assert p.notice == SUCCESS_MESSAGES[Action.COMPLETE_FIRST_LISTING]
