# accountdash/routers/progress.py
from __future__ import annotations

import asyncio
from typing import Callable, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Response
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from accountdash import database, schemas
from accountdash.database import get_db
from accountdash.logic import progress_actions
from accountdash.logic.countdown import CountdownPresenter, build_view
from accountdash.logic.workflow import TransitionOutcome
from accountdash.policy.runtime import get_policy
from accountdash.policy.schema import WorkflowPolicy

router = APIRouter(
    prefix="/progress",
    tags=["🧭 Signup Progress (NO-AUTH)"],
    responses={
        400: {"model": schemas.ErrorOut},
        404: {"model": schemas.ErrorOut},
        409: {"model": schemas.ErrorOut},
        503: {"model": schemas.ErrorOut},
    },
)

# 에러 코드 → HTTP 상태
HTTP_STATUS_BY_CODE = {
    "not_found": 404,
    "invalid_status": 400,
    "precondition_failed": 409,
    "store_unavailable": 503,
    "partial_update_failure": 500,
}

STATUS_REQUIRED = "Status is required for checkAccount step"

# PUT 본문의 step 값 (대시보드는 camelCase 를 보낸다)
STEP_ALIASES = {
    "createAccount": "create_account",
    "firstListing": "first_listing",
    "sellerAccount": "seller_account",
    "checkAccount": "check_account",
    "create_account": "create_account",
    "first_listing": "first_listing",
    "seller_account": "seller_account",
    "check_account": "check_account",
}


def get_session_factory() -> Callable[[], Session]:
    """스트림용 presenter 가 워커 스레드에서 열 세션 팩토리 (테스트에서 override)."""
    return database.SessionLocal


def get_workflow_policy() -> WorkflowPolicy:
    return get_policy()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _failure(outcome: TransitionOutcome) -> JSONResponse:
    return _error(HTTP_STATUS_BY_CODE.get(outcome.code or "", 500), outcome.error or "Failed to update progress")


def _completed(body: Optional[schemas.StepUpdateIn]) -> bool:
    # 본문 없이 호출하면 '완료 처리'로 본다
    return True if body is None else body.completed


def _set_outcome_headers(response: Response, outcome: TransitionOutcome) -> None:
    response.headers["X-Early-Completion"] = "true" if outcome.early else "false"
    if outcome.reload_after_seconds is not None:
        response.headers["X-Reload-After"] = str(outcome.reload_after_seconds)


# ── Read ────────────────────────────────────────────────
@router.get("/{account_id}", response_model=schemas.ProgressOut)
def get_progress(account_id: str = Path(..., min_length=1), db: Session = Depends(get_db)):
    outcome = progress_actions.get_progress(db, account_id)
    if not outcome.success:
        return _failure(outcome)
    return outcome.record


@router.get("/{account_id}/countdown", response_model=schemas.CountdownViewOut)
def get_countdown(
    account_id: str = Path(..., min_length=1),
    db: Session = Depends(get_db),
    policy: WorkflowPolicy = Depends(get_workflow_policy),
):
    outcome = progress_actions.get_progress(db, account_id)
    if not outcome.success:
        return _failure(outcome)
    return build_view(outcome.record, policy)


@router.get("/{account_id}/stream")
async def stream_countdown(
    account_id: str = Path(..., min_length=1),
    ticks: Optional[int] = Query(None, ge=1, le=3600),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    policy: WorkflowPolicy = Depends(get_workflow_policy),
):
    """
    Server-Sent Events: presenter 세션 1개를 열고 매 tick 마다 CountdownView 를 보낸다.
    ticks 를 주면 그 횟수만큼 보내고 종료.
    """
    first = await asyncio.to_thread(progress_actions.fetch_with_session, session_factory, account_id)
    if not first.success:
        return _failure(first)

    queue: asyncio.Queue = asyncio.Queue()
    presenter = CountdownPresenter.for_sessions(
        account_id, session_factory, policy=policy, on_render=queue.put_nowait
    )

    async def events():
        sent = 0
        async with presenter:
            while ticks is None or sent < ticks:
                view = await queue.get()
                yield f"data: {view.model_dump_json()}\n\n"
                sent += 1

    return StreamingResponse(events(), media_type="text/event-stream")


# ── Update (step 분기) ─────────────────────────────────
@router.put("/{account_id}", response_model=schemas.ProgressUpdateOut)
def update_progress(
    response: Response,
    account_id: str = Path(..., min_length=1),
    body: schemas.ProgressUpdateIn = Body(...),
    db: Session = Depends(get_db),
    policy: WorkflowPolicy = Depends(get_workflow_policy),
):
    if not body.step:
        return _error(400, "Step is required")

    step = STEP_ALIASES.get(body.step)
    if step is None:
        return _error(400, f"Invalid step: {body.step}")

    if step == "check_account":
        if not body.status:
            return _error(400, STATUS_REQUIRED)
        outcome = progress_actions.update_check_account(db, account_id, body.status, policy=policy)
    elif step == "create_account":
        outcome = progress_actions.update_create_account(db, account_id, body.completed, policy=policy)
    elif step == "first_listing":
        outcome = progress_actions.update_first_listing(db, account_id, body.completed, policy=policy)
    else:
        outcome = progress_actions.update_seller_account(db, account_id, body.completed, policy=policy)

    if not outcome.success:
        return _failure(outcome)

    _set_outcome_headers(response, outcome)
    return schemas.ProgressUpdateOut(message="Progress updated successfully", progress=outcome.record)


# ── Update (단계별 엔드포인트) ─────────────────────────
@router.post("/{account_id}/create-account", response_model=schemas.ProgressOut)
def update_create_account(
    response: Response,
    account_id: str = Path(..., min_length=1),
    body: Optional[schemas.StepUpdateIn] = Body(None),
    db: Session = Depends(get_db),
    policy: WorkflowPolicy = Depends(get_workflow_policy),
):
    outcome = progress_actions.update_create_account(db, account_id, _completed(body), policy=policy)
    if not outcome.success:
        return _failure(outcome)
    _set_outcome_headers(response, outcome)
    return outcome.record


@router.post("/{account_id}/first-listing", response_model=schemas.ProgressOut)
def update_first_listing(
    response: Response,
    account_id: str = Path(..., min_length=1),
    body: Optional[schemas.StepUpdateIn] = Body(None),
    db: Session = Depends(get_db),
    policy: WorkflowPolicy = Depends(get_workflow_policy),
):
    outcome = progress_actions.update_first_listing(db, account_id, _completed(body), policy=policy)
    if not outcome.success:
        return _failure(outcome)
    _set_outcome_headers(response, outcome)
    return outcome.record


@router.post("/{account_id}/seller-account", response_model=schemas.ProgressOut)
def update_seller_account(
    response: Response,
    account_id: str = Path(..., min_length=1),
    body: Optional[schemas.StepUpdateIn] = Body(None),
    db: Session = Depends(get_db),
    policy: WorkflowPolicy = Depends(get_workflow_policy),
):
    outcome = progress_actions.update_seller_account(db, account_id, _completed(body), policy=policy)
    if not outcome.success:
        return _failure(outcome)
    _set_outcome_headers(response, outcome)
    return outcome.record


@router.post("/{account_id}/check-account", response_model=schemas.ProgressOut)
def update_check_account(
    response: Response,
    account_id: str = Path(..., min_length=1),
    body: Optional[schemas.CheckAccountIn] = Body(None),
    db: Session = Depends(get_db),
    policy: WorkflowPolicy = Depends(get_workflow_policy),
):
    if body is None or not body.status:
        return _error(400, STATUS_REQUIRED)

    outcome = progress_actions.update_check_account(db, account_id, body.status, policy=policy)
    if not outcome.success:
        return _failure(outcome)
    _set_outcome_headers(response, outcome)
    return outcome.record
