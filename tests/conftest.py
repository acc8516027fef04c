"""
Shared pytest fixtures.

Uses a file-backed SQLite database rebuilt for every test, so unlock keys
and lifecycle sweeps never leak between tests. The clock is pinned; tests
move it with clock.advance(...).
"""
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import defer.models  # noqa: F401
from defer.core.clock import FixedClock
from defer.db.base import Base, get_db, make_engine
from defer.dependencies import get_clock, get_notification_center, get_side_effects
from defer.main import app
from defer.services.intent_repository import IntentRepository
from defer.services.notification_planner import InMemoryNotificationCenter
from defer.services.outbox import AnalyticsBuffer, OutboxStore, SideEffectDispatcher

SQLITE_URL = "sqlite:///./test_defer.db"

engine = make_engine(SQLITE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Tuesday, 10 March 2026, 12:00 UTC
T0 = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def fresh_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def clock():
    return FixedClock(T0)


@pytest.fixture()
def side_effects():
    # Not started: flush() handles queued messages inline.
    return SideEffectDispatcher(OutboxStore(), AnalyticsBuffer())


@pytest.fixture()
def repo(db, clock, side_effects):
    return IntentRepository(db, clock, side_effects)


@pytest.fixture()
def center():
    return InMemoryNotificationCenter()


@pytest.fixture()
def client(clock, side_effects, center):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_side_effects] = lambda: side_effects
    app.dependency_overrides[get_notification_center] = lambda: center
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
