from __future__ import annotations

import os
import tempfile
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

# Settings are read at import time; configure before importing the app
os.environ.setdefault("ENV", "local")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret_32_chars_minimum")
os.environ.setdefault("JWT_REFRESH_SECRET", "test_jwt_refresh_secret_32_chars")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")
os.environ.setdefault("REPORT_THRESHOLD", "3")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="eventhub-uploads-"))
os.environ.pop("EMAIL_USER", None)
os.environ.pop("EMAIL_PASS", None)

from eventhub.auth.password import hash_password  # noqa: E402
from eventhub.core.timeutils import utcnow  # noqa: E402
from eventhub.db import SessionLocal, engine  # noqa: E402
from eventhub.main import app  # noqa: E402
from eventhub.models import Base, Event, EventParticipant, User, UserRole  # noqa: E402
from eventhub.models.event import EventCategory, EventStatus  # noqa: E402
from tests.helpers import PASSWORD  # noqa: E402

_PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def clean_db():
    # Ensure a clean slate for each test
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    app.state.relay.clear()
    yield


@pytest.fixture
def make_user(db_session):
    def _make(
        email: str,
        name: str = "Test User",
        role: UserRole = UserRole.USER,
        is_blocked: bool = False,
    ) -> User:
        user = User(
            email=email,
            name=name,
            password_hash=_PASSWORD_HASH,
            role=role,
            is_blocked=is_blocked,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_event(db_session):
    def _make(
        creator: User,
        title: str = "Jazz in the park",
        status: EventStatus = EventStatus.APPROVED,
        capacity: int = 10,
        starts_in: timedelta = timedelta(days=3),
        allow_chat: bool = True,
        city: str = "Milano",
        category: EventCategory = EventCategory.CONCERT,
    ) -> Event:
        starts_at = utcnow() + starts_in
        event = Event(
            title=title,
            description="An evening of live music for everyone.",
            category=category,
            location_address="Via Roma 1",
            location_city=city,
            starts_at=starts_at,
            ends_at=starts_at + timedelta(hours=3),
            capacity=capacity,
            created_by_id=creator.id,
            status=status,
            allow_chat=allow_chat,
        )
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)
        return event

    return _make


@pytest.fixture
def add_participant(db_session):
    def _add(event: Event, user: User) -> EventParticipant:
        row = EventParticipant(event_id=event.id, user_id=user.id)
        db_session.add(row)
        db_session.commit()
        db_session.refresh(row)
        return row

    return _add
