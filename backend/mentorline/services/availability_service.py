# backend/mentorline/services/availability_service.py
"""
Availability Service for Mentorline

Manages a mentor's recurring weekly slots and blocked dates. Slots are never
edited in place: a change is a remove followed by an add. All writes for a
mentor run under the mentor's scheduling lock so the no-overlap check and the
insert cannot interleave with another writer.
"""

from datetime import date, time, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import (
    AlreadyBlockedException,
    AvailabilityOverlapException,
    InvalidRangeException,
    OutOfWindowException,
    RepositoryException,
    ValidationException,
)
from ..core.scheduling_lock import mentor_lock_key, scheduling_lock
from ..core.timezone_service import TimezoneService
from ..models.availability import AvailabilitySlot, BlockedDate
from ..repositories.base_repository import is_integrity_violation
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def _format_interval(start: time, end: time) -> str:
    return f"{start.strftime('%H:%M')}-{end.strftime('%H:%M')}"


class AvailabilityService(BaseService):
    """Recurring weekly availability and blocked dates of mentors."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_availability_repository(db)
        self.blocked_repository = RepositoryFactory.create_blocked_date_repository(db)

    # Slots

    @BaseService.measure_operation("add_slot")
    def add_slot(
        self,
        mentor_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        timezone: Optional[str] = None,
    ) -> AvailabilitySlot:
        """
        Add a recurring weekly window.

        Raises:
            ValidationException: day_of_week outside 0..6 or unknown timezone
            InvalidRangeException: start_time is not before end_time
            AvailabilityOverlapException: overlaps another slot on the same day
        """
        tz_name = timezone or settings.default_timezone
        if not 0 <= day_of_week <= 6:
            raise ValidationException(
                "day_of_week must be between 0 (Sunday) and 6 (Saturday)",
                details={"day_of_week": day_of_week},
            )
        if not TimezoneService.is_valid_timezone(tz_name):
            raise ValidationException(f"Unknown timezone: {tz_name}", details={"timezone": tz_name})

        start_time = start_time.replace(second=0, microsecond=0)
        end_time = end_time.replace(second=0, microsecond=0)
        if _minutes(start_time) >= _minutes(end_time):
            raise InvalidRangeException(
                start_time=start_time.isoformat(), end_time=end_time.isoformat()
            )

        self.log_operation(
            "add_slot",
            mentor_id=mentor_id,
            day_of_week=day_of_week,
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
        )

        with scheduling_lock(mentor_lock_key(mentor_id)):
            new_start, new_end = _minutes(start_time), _minutes(end_time)
            for existing in self.repository.get_slots_for_day(mentor_id, day_of_week):
                # Half-open intervals: touching edges are allowed
                if new_start < _minutes(existing.end_time) and _minutes(existing.start_time) < new_end:
                    raise AvailabilityOverlapException(
                        day_of_week=day_of_week,
                        new_range=_format_interval(start_time, end_time),
                        conflicting_range=_format_interval(existing.start_time, existing.end_time),
                    )

            with self.transaction():
                slot = self.repository.create(
                    mentor_id=mentor_id,
                    day_of_week=day_of_week,
                    start_time=start_time,
                    end_time=end_time,
                    timezone=tz_name,
                    created_at=self.now(),
                )
        return slot

    @BaseService.measure_operation("remove_slot")
    def remove_slot(self, slot_id: str) -> bool:
        """Delete a slot. Returns False when it did not exist."""
        slot = self.repository.get_by_id(slot_id)
        if slot is None:
            return False
        with scheduling_lock(mentor_lock_key(slot.mentor_id)):
            with self.transaction():
                deleted = self.repository.delete(slot_id)
        self.log_operation("remove_slot", slot_id=slot_id, deleted=deleted)
        return deleted

    def list_slots(self, mentor_id: str) -> List[AvailabilitySlot]:
        return self.repository.get_slots_for_mentor(mentor_id)

    # Blocked dates

    def mentor_timezone(self, mentor_id: str) -> str:
        """Timezone of the mentor's availability, or the configured default."""
        return self.repository.get_mentor_timezone(mentor_id) or settings.default_timezone

    def blocking_window(self, mentor_id: str) -> tuple[date, date]:
        """Inclusive range of dates the mentor may currently block."""
        today = TimezoneService.local_today(self.now(), self.mentor_timezone(mentor_id))
        return (
            today + timedelta(days=settings.blocked_date_min_days_ahead),
            today + timedelta(days=settings.blocked_date_horizon_days),
        )

    @BaseService.measure_operation("block_date")
    def block_date(
        self, mentor_id: str, blocked: date, reason: Optional[str] = None
    ) -> BlockedDate:
        """
        Block a whole calendar date (in the mentor's timezone).

        Raises:
            OutOfWindowException: date outside the allowed future window
            AlreadyBlockedException: the date is already blocked
        """
        earliest, latest = self.blocking_window(mentor_id)
        if not earliest <= blocked <= latest:
            raise OutOfWindowException(
                requested=blocked.isoformat(),
                earliest=earliest.isoformat(),
                latest=latest.isoformat(),
            )

        with scheduling_lock(mentor_lock_key(mentor_id)):
            if self.blocked_repository.exists_for_date(mentor_id, blocked):
                raise AlreadyBlockedException(blocked.isoformat())
            try:
                with self.transaction():
                    block = self.blocked_repository.create(
                        mentor_id=mentor_id,
                        date=blocked,
                        reason=reason,
                        created_at=self.now(),
                    )
            except RepositoryException as exc:
                if is_integrity_violation(exc):
                    raise AlreadyBlockedException(blocked.isoformat()) from exc
                raise

        self.log_operation("block_date", mentor_id=mentor_id, date=blocked.isoformat())
        return block

    @BaseService.measure_operation("unblock_date")
    def unblock_date(self, block_id: str) -> bool:
        """Delete a blocked date. Returns False when it did not exist."""
        block = self.blocked_repository.get_by_id(block_id)
        if block is None:
            return False
        with scheduling_lock(mentor_lock_key(block.mentor_id)):
            with self.transaction():
                deleted = self.blocked_repository.delete(block_id)
        self.log_operation("unblock_date", block_id=block_id, deleted=deleted)
        return deleted

    def list_blocked_dates(
        self, mentor_id: str, from_date: Optional[date] = None
    ) -> List[BlockedDate]:
        """Blocked dates from ``from_date`` (default: the mentor's today) onward."""
        if from_date is None:
            from_date = TimezoneService.local_today(self.now(), self.mentor_timezone(mentor_id))
        return self.blocked_repository.get_for_mentor(mentor_id, from_date=from_date)
