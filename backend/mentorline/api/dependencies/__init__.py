"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .database import get_db
from .services import (
    get_availability_service,
    get_booking_service,
    get_clock,
    get_group_session_service,
    get_notification_service,
    get_slot_resolver,
    get_video_room_service,
)

__all__ = [
    # Database
    "get_db",
    # Services
    "get_clock",
    "get_video_room_service",
    "get_notification_service",
    "get_availability_service",
    "get_slot_resolver",
    "get_booking_service",
    "get_group_session_service",
]
