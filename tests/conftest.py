"""Shared fixtures: in-memory database, users, fixed clock, API client."""
from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

from tasktrack_core import identity, models, security, transitions
from tasktrack_core.api.main import create_app
from tasktrack_core.clock import FixedClock
from tasktrack_core.config import Settings
from tasktrack_core.models import Base, UserRole, UserStatus
from tasktrack_core.security import create_access_token

NOW = datetime(2026, 3, 10, 9, 30)
TODAY = date(2026, 3, 10)
PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    monkeypatch.setattr(security, "PBKDF2_ITERATIONS", 1_000)


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret="test-secret",
        cors_origins=["http://testserver"],
        log_level="WARNING",
    )


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def app(settings, clock):
    app = create_app(settings, clock=clock)
    Base.metadata.create_all(app.state.engine)
    yield app
    app.state.engine.dispose()


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    yield session
    session.close()


def make_user(db, username, role=UserRole.EMPLOYEE, status=UserStatus.ACTIVE):
    return identity.create_user(
        db,
        full_name=username.replace("_", " ").title(),
        username=username,
        email=f"{username}@example.com",
        password=PASSWORD,
        role=role,
        status=status,
    )


@pytest.fixture
def admin(db):
    return make_user(db, "alice_admin", role=UserRole.ADMIN)


@pytest.fixture
def manager(db):
    return make_user(db, "mark_manager", role=UserRole.MANAGER)


@pytest.fixture
def employee_a(db):
    return make_user(db, "emma_a")


@pytest.fixture
def employee_b(db):
    return make_user(db, "ben_b")


@pytest.fixture
def suspended_user(db):
    return make_user(db, "sam_suspended", status=UserStatus.SUSPENDED)


@pytest.fixture
def make_task(db, clock):
    """Create a task through the transition engine."""

    def _make_task(actor, assignee, title="Ship release", **fields):
        data = {"title": title, "assigned_to": assignee.id, **fields}
        return transitions.create_task(db, data, actor, clock=clock)

    return _make_task


def history_rows(db, task_id, field=None):
    query = db.query(models.TaskHistory).filter(models.TaskHistory.task_id == task_id)
    if field:
        query = query.filter(models.TaskHistory.field_changed == field)
    return query.order_by(models.TaskHistory.id).all()


def notifications_for(db, user_id):
    return (
        db.query(models.Notification)
        .filter(models.Notification.recipient_id == user_id)
        .order_by(models.Notification.id)
        .all()
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(settings):
    def _auth_headers(user):
        token = create_access_token(settings, user.id, user.username, user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
