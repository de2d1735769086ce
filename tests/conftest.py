"""Pytest fixtures for scheduling tests."""

import logging
import os
from datetime import datetime, timezone

# Must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("REDIS_HOST", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.domain.scheduling.locks import HostLockManager
from app.domain.scheduling.router import get_scheduling_service, public_booking_limit
from app.domain.scheduling.service import SchedulingService
from app.main import app
from app.models import AvailabilityWindow, MeetingType, User

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Monday 2026-10-19, 08:00 UTC
NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def engine():
    """In-memory SQLite shared by every connection of one test."""
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
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def host(db_session):
    user = User(workspace_id=1, email="host@example.com", full_name="Hana Host", timezone="UTC")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def meeting_type(db_session, host):
    """30-minute public intro call, 1 hour notice, no buffers."""
    meeting_type = MeetingType(
        workspace_id=host.workspace_id,
        host_id=host.id,
        name="Intro Call",
        slug="intro-call",
        duration_minutes=30,
        buffer_before_minutes=0,
        buffer_after_minutes=0,
        location_type="zoom",
        is_active=True,
        is_public=True,
        max_booking_days=60,
        min_notice_hours=1,
    )
    db_session.add(meeting_type)
    db_session.commit()
    db_session.refresh(meeting_type)
    return meeting_type


@pytest.fixture
def monday_window(db_session, host):
    """Monday 09:00-17:00 UTC."""
    window = AvailabilityWindow(
        workspace_id=host.workspace_id,
        host_id=host.id,
        day_of_week=1,
        start_time="09:00",
        end_time="17:00",
        timezone="UTC",
        is_active=True,
    )
    db_session.add(window)
    db_session.commit()
    db_session.refresh(window)
    return window


@pytest.fixture
def lock_manager():
    return HostLockManager(redis_client=None, wait=2)


@pytest.fixture
def service(db_session, clock, lock_manager):
    return SchedulingService(db_session, clock=clock, lock_manager=lock_manager)


@pytest.fixture
def client(db_session, service):
    """TestClient bound to the test session; lifespan is not run."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduling_service] = lambda: service
    app.dependency_overrides[public_booking_limit] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
