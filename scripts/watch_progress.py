# scripts/watch_progress.py
# -*- coding: utf-8 -*-
# 터미널에서 계정 1개의 가입 진행 카운트다운을 1초마다 출력
# 예) python scripts/watch_progress.py --account AB12C --seconds 30
#     python scripts/watch_progress.py --account AB12C --action complete_first_listing

import argparse
import asyncio
from typing import Optional

from accountdash.database import Base, SessionLocal, engine
from accountdash.logic.countdown import CountdownPresenter
from accountdash.logic.workflow import Action
from accountdash.schemas import CountdownViewOut


def _print_view(view: CountdownViewOut) -> None:
    print(f"--- {view.account_id} @ {view.computed_at.isoformat()} (gating={view.gating}) ---")
    for step, state in view.step_states.items():
        label = view.remaining_labels.get(step, "-")
        pct = view.percentages.get(step, 0)
        rec = view.recommended.get(step)
        rec_txt = f" | recommended {rec.target_display} ({rec.remaining_label})" if rec else ""
        print(f"  {step:<15} {state:<12} {pct:>3}%  {label}{rec_txt}")
    actionable = [a.label + f" [{a.action}]" for a in view.actions if a.actionable]
    if actionable:
        print("  actions: " + ", ".join(actionable))
    if view.notice:
        print(f"  ✅ {view.notice}")
    if view.error:
        print(f"  ❌ {view.error}")


async def _run(account_id: str, seconds: int, action: Optional[str]) -> int:
    presenter = CountdownPresenter.for_sessions(account_id, SessionLocal, on_render=_print_view)
    async with presenter:
        if presenter.cell.get() is None:
            return 1
        if action:
            outcome = await presenter.perform(Action(action))
            if not outcome.success:
                return 2
        await asyncio.sleep(seconds)
    return 0


def main() -> int:
    ap = argparse.ArgumentParser(description="Watch one account's signup progress countdown.")
    ap.add_argument("--account", required=True, help="OrderIdAccount")
    ap.add_argument("--seconds", type=int, default=10, help="How long to keep ticking.")
    ap.add_argument("--action", choices=[a.value for a in Action], default=None,
                    help="Optional workflow action to perform before watching.")
    args = ap.parse_args()

    Base.metadata.create_all(bind=engine)
    return asyncio.run(_run(args.account, args.seconds, args.action))


if __name__ == "__main__":
    raise SystemExit(main())
