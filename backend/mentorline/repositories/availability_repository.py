# backend/mentorline/repositories/availability_repository.py
"""
Availability Repository for Mentorline

Data access for recurring weekly slots and blocked dates.
"""

from datetime import date
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.availability import AvailabilitySlot, BlockedDate
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[AvailabilitySlot]):
    """Repository for AvailabilitySlot rows."""

    def __init__(self, db: Session):
        super().__init__(db, AvailabilitySlot)

    def get_slots_for_mentor(self, mentor_id: str) -> List[AvailabilitySlot]:
        """All slots of a mentor ordered by day, then start time."""
        query = (
            self._build_query()
            .filter(AvailabilitySlot.mentor_id == mentor_id)
            .order_by(AvailabilitySlot.day_of_week, AvailabilitySlot.start_time)
        )
        return self._execute_query(query)

    def get_slots_for_day(self, mentor_id: str, day_of_week: int) -> List[AvailabilitySlot]:
        query = (
            self._build_query()
            .filter(
                AvailabilitySlot.mentor_id == mentor_id,
                AvailabilitySlot.day_of_week == day_of_week,
            )
            .order_by(AvailabilitySlot.start_time)
        )
        return self._execute_query(query)

    def get_mentor_timezone(self, mentor_id: str) -> Optional[str]:
        """Timezone of the mentor's earliest-created slot, if any."""
        try:
            row = (
                self.db.query(AvailabilitySlot.timezone)
                .filter(AvailabilitySlot.mentor_id == mentor_id)
                .order_by(AvailabilitySlot.created_at, AvailabilitySlot.id)
                .first()
            )
            return row[0] if row else None
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading mentor timezone: {str(e)}")
            raise RepositoryException(f"Failed to load mentor timezone: {str(e)}")


class BlockedDateRepository(BaseRepository[BlockedDate]):
    """Repository for BlockedDate rows."""

    def __init__(self, db: Session):
        super().__init__(db, BlockedDate)

    def get_for_mentor(
        self, mentor_id: str, from_date: Optional[date] = None, to_date: Optional[date] = None
    ) -> List[BlockedDate]:
        query = self._build_query().filter(BlockedDate.mentor_id == mentor_id)
        if from_date is not None:
            query = query.filter(BlockedDate.date >= from_date)
        if to_date is not None:
            query = query.filter(BlockedDate.date <= to_date)
        return self._execute_query(query.order_by(BlockedDate.date))

    def get_blocked_dates(self, mentor_id: str, from_date: date, to_date: date) -> set[date]:
        """Blocked calendar dates of the mentor within ``[from_date, to_date]``."""
        return {row.date for row in self.get_for_mentor(mentor_id, from_date, to_date)}

    def exists_for_date(self, mentor_id: str, blocked: date) -> bool:
        return self.exists(mentor_id=mentor_id, date=blocked)
