# tests/test_progress_api.py
import json

import pytest

from accountdash import crud
from accountdash.logic import progress_store
from accountdash.logic.errors import StoreResult, StoreUnavailable
from accountdash.main import app
from accountdash.routers import progress

from conftest import make_policy

BASE = "/progress/AB12C"


def test_health(client):
    assert client.get("/health").json() == {"ok": True}
    assert "running" in client.get("/").json()["message"]


def test_serve_runs_uvicorn(monkeypatch):
    import uvicorn

    from accountdash.main import serve

    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda target, **kw: calls.append((target, kw)))
    monkeypatch.setenv("ACCOUNTDASH_PORT", "9001")
    monkeypatch.delenv("ACCOUNTDASH_HOST", raising=False)
    monkeypatch.delenv("ACCOUNTDASH_LOG_LEVEL", raising=False)

    serve()

    assert calls == [("accountdash.main:app", {"host": "0.0.0.0", "port": 9001, "log_level": "info"})]


# 1) 조회
def test_get_creates_record_lazily(client, account):
    r = client.get(BASE)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["account_id"] == "AB12C"
    assert body["create_account_completed"] is True
    assert body["create_account_date"].startswith("2025-01-06T09:00:00")
    assert body["first_listing_completed"] is False
    assert body["check_account_status"] == "pending"


def test_get_unknown_account(client, fixed_now):
    r = client.get("/progress/NOPE")
    assert r.status_code == 404
    assert r.json() == {"error": "Account NOPE not found"}


def test_store_unavailable_maps_to_503(client, account, monkeypatch):
    monkeypatch.setattr(
        progress_store, "get_or_create",
        lambda db, account_id: StoreResult.fail(StoreUnavailable("Progress store unavailable: OperationalError")),
    )
    r = client.get(BASE)
    assert r.status_code == 503
    assert r.json()["error"].startswith("Progress store unavailable")


# 2) PUT (step 분기)
@pytest.mark.parametrize("body, message", [
    ({}, "Step is required"),
    ({"step": ""}, "Step is required"),
    ({"step": "launch"}, "Invalid step: launch"),
    ({"step": "checkAccount"}, "Status is required for checkAccount step"),
    ({"step": "checkAccount", "status": "bogus"},
     "Invalid status: bogus. Must be one of: pending, active, suspended"),
])
def test_put_validation_errors(client, account, body, message):
    r = client.put(BASE, json=body)
    assert r.status_code == 400
    assert r.json() == {"error": message}


@pytest.mark.parametrize("step", ["firstListing", "first_listing"])
def test_put_first_listing(client, account, step):
    r = client.put(BASE, json={"step": step, "completed": True})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["message"] == "Progress updated successfully"
    assert body["progress"]["first_listing_completed"] is True
    assert r.headers["X-Early-Completion"] == "true"
    assert "X-Reload-After" not in r.headers


def test_put_check_account_suspends_account(client, account, db):
    r = client.put(BASE, json={"step": "checkAccount", "status": "suspended"})
    assert r.status_code == 200, r.text
    assert r.json()["progress"]["check_account_status"] == "suspended"
    assert r.headers["X-Reload-After"] == "1.5"

    db.expire_all()
    assert crud.get_account_by_id(db, "AB12C").suspended is True


def test_put_uncomplete_step(client, account):
    client.put(BASE, json={"step": "sellerAccount"})
    r = client.put(BASE, json={"step": "sellerAccount", "completed": False})
    progress_body = r.json()["progress"]
    assert progress_body["seller_account_completed"] is False
    assert progress_body["seller_account_date"] is None


# 3) POST 단계별
def test_post_without_body_completes_step(client, account):
    r = client.post(f"{BASE}/first-listing")
    assert r.status_code == 200, r.text
    assert r.json()["first_listing_completed"] is True


def test_post_create_account_can_be_uncompleted(client, account):
    r = client.post(f"{BASE}/create-account", json={"completed": False})
    assert r.status_code == 200
    assert r.json()["create_account_completed"] is False
    assert r.json()["create_account_date"] is None


def test_post_check_account(client, account):
    client.post(f"{BASE}/seller-account")
    r = client.post(f"{BASE}/check-account", json={"status": "active"})
    assert r.status_code == 200
    assert r.json()["check_account_status"] == "active"
    assert r.headers["X-Early-Completion"] == "true"

    r = client.post(f"{BASE}/check-account", json={"status": "nope"})
    assert r.status_code == 400


@pytest.mark.parametrize("kwargs", [{"json": {}}, {"json": {"status": ""}}, {}])
def test_post_check_account_requires_status(client, account, kwargs):
    r = client.post(f"{BASE}/check-account", **kwargs)
    assert r.status_code == 400
    assert r.json() == {"error": "Status is required for checkAccount step"}


@pytest.mark.parametrize("path, body", [
    ("/check-account", {"status": 5}),
    ("/first-listing", {"completed": "maybe"}),
    ("", {"step": "firstListing", "completed": "maybe"}),
])
def test_malformed_body_returns_error_shape(client, account, path, body):
    method = client.put if path == "" else client.post
    r = method(f"{BASE}{path}", json=body)
    assert r.status_code == 400
    payload = r.json()
    assert set(payload) == {"error"}
    assert payload["error"].startswith("Invalid request")


def test_invalid_query_returns_error_shape(client, account):
    r = client.get(f"{BASE}/stream", params={"ticks": 0})
    assert r.status_code == 400
    assert "error" in r.json()


def test_enforced_gating_returns_409(client, account):
    app.dependency_overrides[progress.get_workflow_policy] = lambda: make_policy("enforced")

    r = client.post(f"{BASE}/seller-account")
    assert r.status_code == 409
    assert r.json() == {"error": "Cannot complete seller account: first listing step is not completed"}

    assert client.post(f"{BASE}/first-listing").status_code == 200
    assert client.post(f"{BASE}/seller-account").status_code == 200


# 4) 카운트다운
def test_countdown_view(client, account):
    r = client.get(f"{BASE}/countdown")
    assert r.status_code == 200, r.text
    view = r.json()
    assert view["gating"] == "advisory"
    assert view["step_states"]["first_listing"] == "in_progress"
    assert view["remaining_labels"]["create_account"] == "3h 0m 0s remaining"
    assert view["recommended"]["first_listing"]["target_display"] == "06/01/2025, 13:00:00"
    assert view["notice"] is None


def test_stream_sends_countdown_events(client, account):
    r = client.get(f"{BASE}/stream", params={"ticks": 1})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")

    events = [line for line in r.text.splitlines() if line.startswith("data: ")]
    assert len(events) == 1
    view = json.loads(events[0][len("data: "):])
    assert view["account_id"] == "AB12C"
    assert view["percentages"]["create_account"] == 0


def test_stream_unknown_account(client, fixed_now):
    r = client.get("/progress/NOPE/stream", params={"ticks": 1})
    assert r.status_code == 404


# 5) 관리자 대시보드
def test_admin_progress_summary(client, account, db):
    crud.create_account(db, order_id="CD34E", seed_progress=True)
    crud.create_account(db, order_id="NOPROG")
    client.post(f"{BASE}/first-listing")
    client.post(f"{BASE}/seller-account")
    client.post(f"{BASE}/check-account", json={"status": "suspended"})

    r = client.get("/admin/dashboard/progress")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["total_accounts"] == 3
    assert body["tracked_accounts"] == 2
    assert body["stages"] == {"first_listing": 1, "check_account:suspended": 1}
    assert body["accounts"] == {"active": 2, "suspended": 1}
