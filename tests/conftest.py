import os
from datetime import datetime, time
from typing import Generator
from zoneinfo import ZoneInfo

# must be set before app.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GUARDIAN_ENABLED"] = "false"
os.environ["EXAM_TIMEZONE"] = "Asia/Kolkata"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_clock, get_db
from app.core.clock import FrozenClock
from app.core.security import create_access_token
from app.crud import user as crud_user
from app.db import Base, Course, RecurringWindow, Submission
from app.main import app

IST = ZoneInfo("Asia/Kolkata")

# 11:30 in Asia/Kolkata
NOW = datetime(2026, 3, 10, 6, 0, 0)

COURSE_ID = "python-basics"
LEVEL = 1


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def tz() -> ZoneInfo:
    return IST


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: str = "student", is_blocked: bool = None, email: str = None, full_name: str = None):
        counter["n"] += 1
        n = counter["n"]
        return crud_user.create_user(
            db,
            email=email or f"{role}{n}@example.com",
            password="secret123",
            full_name=full_name or f"{role.title()} {n}",
            role=role,
            roll_no=f"R{n:03d}" if role == "student" else None,
            is_blocked=is_blocked,
        )

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", email="admin@example.com", full_name="Admin")


@pytest.fixture
def student(make_user):
    return make_user(role="student", email="student@example.com", full_name="Student One")


@pytest.fixture
def course(db):
    course = Course(
        id=COURSE_ID,
        title="Python Basics",
        restrictions='{"timeLimit": 90}',
        level_settings='{"1": {"timeLimit": 45}}',
    )
    db.add(course)
    db.commit()
    return course


@pytest.fixture
def make_window(db):
    def _make(start: time, end: time, is_active: bool = True) -> RecurringWindow:
        window = RecurringWindow(start_time=start, end_time=end, is_active=is_active)
        db.add(window)
        db.commit()
        db.refresh(window)
        return window

    return _make


@pytest.fixture
def make_submission(db):
    counter = {"n": 0}

    def _make(passed=None, status=None, user_id=None, submitted_at=None) -> Submission:
        counter["n"] += 1
        submission = Submission(
            id=f"sub-{counter['n']}",
            user_id=user_id,
            challenge_id=f"challenge-{counter['n']}",
            passed=passed,
            status=status,
            submitted_at=submitted_at or NOW,
        )
        db.add(submission)
        db.commit()
        return submission

    return _make


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user.email})}"}


@pytest.fixture
def client(session_factory, clock) -> Generator[TestClient, None, None]:
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()
