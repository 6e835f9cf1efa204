# backend/mentorline/repositories/factory.py
"""
Repository Factory for Mentorline

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository, BlockedDateRepository
    from .call_repository import CallRepository
    from .group_session_repository import (
        GroupSessionParticipantRepository,
        GroupSessionRepository,
    )
    from .reminder_repository import ReminderRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for recurring availability slots."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_blocked_date_repository(db: Session) -> "BlockedDateRepository":
        """Create repository for blocked dates."""
        from .availability_repository import BlockedDateRepository

        return BlockedDateRepository(db)

    @staticmethod
    def create_call_repository(db: Session) -> "CallRepository":
        """Create repository for one-on-one calls."""
        from ..core.config import settings
        from .call_repository import CallRepository

        return CallRepository(db, max_call_minutes=max(settings.call_durations))

    @staticmethod
    def create_group_session_repository(db: Session) -> "GroupSessionRepository":
        """Create repository for group sessions."""
        from .group_session_repository import GroupSessionRepository

        return GroupSessionRepository(db)

    @staticmethod
    def create_group_session_participant_repository(
        db: Session,
    ) -> "GroupSessionParticipantRepository":
        """Create repository for group session participants."""
        from .group_session_repository import GroupSessionParticipantRepository

        return GroupSessionParticipantRepository(db)

    @staticmethod
    def create_reminder_repository(db: Session) -> "ReminderRepository":
        """Create repository for reminder jobs."""
        from .reminder_repository import ReminderRepository

        return ReminderRepository(db)
