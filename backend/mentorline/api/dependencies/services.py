"""
Service dependencies for FastAPI routes.

Each request gets services bound to its own database session. The video
and notification collaborators are process-wide singletons; tests replace
any of these through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from ...core.clock import Clock, system_clock
from ...services.availability_service import AvailabilityService
from ...services.booking_service import BookingService
from ...services.group_session_service import GroupSessionService
from ...services.notification_service import NotificationService
from ...services.slot_resolver import SlotResolver
from ...services.video_room_service import VideoRoomService
from .database import get_db


def get_clock() -> Clock:
    return system_clock


@lru_cache(maxsize=1)
def get_video_room_service() -> VideoRoomService:
    return VideoRoomService()


@lru_cache(maxsize=1)
def get_notification_service() -> NotificationService:
    return NotificationService()


def get_availability_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> AvailabilityService:
    return AvailabilityService(db, clock)


def get_slot_resolver(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SlotResolver:
    return SlotResolver(db, clock)


def get_booking_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    video_service: VideoRoomService = Depends(get_video_room_service),
    notification_service: NotificationService = Depends(get_notification_service),
) -> BookingService:
    """
    Get booking service instance with all dependencies.

    Args:
        db: Database session
        clock: Time source
        video_service: Video room provisioning
        notification_service: Notification fan-out

    Returns:
        BookingService instance
    """
    return BookingService(
        db,
        clock,
        video_service=video_service,
        notification_service=notification_service,
    )


def get_group_session_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    video_service: VideoRoomService = Depends(get_video_room_service),
    notification_service: NotificationService = Depends(get_notification_service),
) -> GroupSessionService:
    return GroupSessionService(
        db,
        clock,
        video_service=video_service,
        notification_service=notification_service,
    )
