"""
Repository layer for Mentorline.

Repositories own all queries; services own transactions.
"""

from .availability_repository import AvailabilityRepository, BlockedDateRepository
from .base_repository import BaseRepository
from .call_repository import CallRepository
from .factory import RepositoryFactory
from .group_session_repository import GroupSessionParticipantRepository, GroupSessionRepository
from .reminder_repository import ReminderRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "BlockedDateRepository",
    "CallRepository",
    "GroupSessionParticipantRepository",
    "GroupSessionRepository",
    "ReminderRepository",
    "RepositoryFactory",
]
