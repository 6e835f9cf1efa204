# backend/tests/conftest.py
"""
Pytest configuration for the Mentorline scheduling core.

Every test gets a fresh in-memory SQLite database, a frozen clock and
in-memory collaborators, so deadlines are crossed by advancing the clock and
no network is touched.
"""

import os

# Set testing mode BEFORE any mentorline imports
os.environ["is_testing"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["VIDEO_PROVIDER"] = "fake"
os.environ["NOTIFICATION_PROVIDER"] = "console"
os.environ["SCHEDULING_LOCK_BACKEND"] = "local"

# Never send real email from tests
import unittest.mock

global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

from datetime import time
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from mentorline import models  # noqa: F401
from mentorline.core.clock import FrozenClock
from mentorline.core.config import settings
from mentorline.database import Base
from mentorline.integrations.daily_client import FakeVideoRoomProvider
from mentorline.services.availability_service import AvailabilityService
from mentorline.services.booking_service import BookingService
from mentorline.services.group_session_service import GroupSessionService
from mentorline.services.notification_service import NotificationService
from mentorline.services.reminder_service import ReminderService
from mentorline.services.slot_resolver import SlotResolver
from mentorline.services.video_room_service import VideoRoomService

from testkit import MENTOR_ID, TEST_NOW, RecordingNotificationProvider

settings.is_testing = True


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine) -> Session:
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(TEST_NOW)


@pytest.fixture
def video_provider() -> FakeVideoRoomProvider:
    return FakeVideoRoomProvider()


@pytest.fixture
def video_service(video_provider) -> VideoRoomService:
    return VideoRoomService(provider=video_provider)


@pytest.fixture
def notifications() -> RecordingNotificationProvider:
    return RecordingNotificationProvider()


@pytest.fixture
def notification_service(notifications) -> NotificationService:
    return NotificationService(provider=notifications)


@pytest.fixture
def availability_service(db, clock) -> AvailabilityService:
    return AvailabilityService(db, clock)


@pytest.fixture
def slot_resolver(db, clock) -> SlotResolver:
    return SlotResolver(db, clock)


@pytest.fixture
def booking_service(db, clock, video_service, notification_service) -> BookingService:
    return BookingService(
        db, clock, video_service=video_service, notification_service=notification_service
    )


@pytest.fixture
def group_session_service(
    db, clock, video_service, notification_service
) -> GroupSessionService:
    return GroupSessionService(
        db, clock, video_service=video_service, notification_service=notification_service
    )


@pytest.fixture
def reminder_service(db, clock, notification_service) -> ReminderService:
    return ReminderService(db, clock, notification_service)


@pytest.fixture
def monday_availability(availability_service):
    """Monday 09:00-12:00 America/New_York for MENTOR_ID."""

    def _add(mentor_id: str = MENTOR_ID, timezone_name: Optional[str] = "America/New_York"):
        return availability_service.add_slot(
            mentor_id, 1, time(9, 0), time(12, 0), timezone=timezone_name
        )

    return _add


@pytest.fixture
def client(db, clock, video_service, notification_service):
    """Create a test client bound to the test database, clock and collaborators."""
    from fastapi.testclient import TestClient

    from mentorline.api.dependencies.database import get_db
    from mentorline.api.dependencies.services import (
        get_clock,
        get_notification_service,
        get_video_room_service,
    )
    from mentorline.main import app

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_video_room_service] = lambda: video_service
    app.dependency_overrides[get_notification_service] = lambda: notification_service

    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()
