# tests/conftest.py
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from accountdash import crud, models  # noqa: F401
from accountdash.core import time_policy as T
from accountdash.database import Base, get_db
from accountdash.policy.schema import PresenterPolicy, WaitHours, WorkflowPolicy

# 월요일 09:00 UTC 고정
NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

DEFAULT_WAITS = WaitHours(create_account=3, first_listing=3, seller_account=2, check_account=5 / 60)


def make_policy(gating: str = "advisory", **presenter) -> WorkflowPolicy:
    return WorkflowPolicy(
        wait_hours=DEFAULT_WAITS,
        gating=gating,
        presenter=PresenterPolicy(**presenter) if presenter else PresenterPolicy(),
    )


@pytest.fixture
def engine():
    # 메모리 SQLite 를 여러 스레드(presenter 워커)에서 공유
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fixed_now():
    T.set_now_utc_for_testing(NOW)
    yield NOW
    T.set_now_utc_for_testing(None)


@pytest.fixture
def advisory_policy():
    return make_policy("advisory")


@pytest.fixture
def enforced_policy():
    return make_policy("enforced")


@pytest.fixture
def account(db, fixed_now):
    """방금 생성된 계정 1개 (created_at = NOW)."""
    return crud.create_account(
        db,
        order_id="AB12C",
        first_name="Sara",
        last_name="Benali",
        email="sara41@example.com",
        country="Morocco",
        created_at=fixed_now,
    )


@pytest.fixture
def client(session_factory, advisory_policy):
    from accountdash.main import app
    from accountdash.routers import progress

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[progress.get_session_factory] = lambda: session_factory
    app.dependency_overrides[progress.get_workflow_policy] = lambda: advisory_policy
    # lifespan(실DB create_all)은 돌리지 않는다
    yield TestClient(app)
    app.dependency_overrides.clear()
