# backend/mentorline/services/slot_resolver.py
"""
Slot Resolver for Mentorline

Turns a mentor's recurring weekly slots into concrete bookable UTC start
instants for a date range:

1. every calendar day whose weekday matches a slot yields candidates stepped
   through the slot in local wall-clock minutes, each converted to UTC on its
   own so a DST gap drops only the starts that do not exist;
2. a candidate must fit entirely inside the slot;
3. dates the mentor blocked are dropped;
4. candidates overlapping an active (REQUESTED/CONFIRMED) call are dropped;
5. starts in the past are dropped.

Results are computed from storage on every call and never cached.
"""

from datetime import date, datetime, time, timedelta
import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import InvalidRangeException, ValidationException
from ..core.timezone_service import TimezoneService, ensure_utc, sunday_based_weekday
from ..models.availability import AvailabilitySlot
from ..models.call import Call
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


def overlaps(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open interval overlap: touching intervals do not overlap."""
    return start_a < end_b and start_b < end_a


def _daterange(from_date: date, to_date: date) -> Iterable[date]:
    current = from_date
    while current <= to_date:
        yield current
        current += timedelta(days=1)


class SlotResolver(BaseService):
    """Computes available call start times for a mentor."""

    def __init__(
        self, db: Session, clock: Optional[Clock] = None, step_minutes: Optional[int] = None
    ):
        super().__init__(db, clock)
        self.availability_repository = RepositoryFactory.create_availability_repository(db)
        self.blocked_repository = RepositoryFactory.create_blocked_date_repository(db)
        self.call_repository = RepositoryFactory.create_call_repository(db)
        self.step_minutes = step_minutes or settings.slot_step_minutes

    def _slot_candidates(
        self, slot: AvailabilitySlot, local_day: date, duration_minutes: int
    ) -> List[datetime]:
        start_min = slot.start_time.hour * 60 + slot.start_time.minute
        end_min = slot.end_time.hour * 60 + slot.end_time.minute
        window_end = TimezoneService.local_to_utc(local_day, slot.end_time, slot.timezone)

        candidates: List[datetime] = []
        minute = start_min
        while minute + duration_minutes <= end_min:
            local_start = time(minute // 60, minute % 60)
            utc_start = TimezoneService.local_to_utc(local_day, local_start, slot.timezone)
            minute += self.step_minutes
            if utc_start is None:
                continue
            # Elapsed time can be shorter than wall-clock time across a DST change
            if window_end is not None and utc_start + timedelta(minutes=duration_minutes) > window_end:
                continue
            candidates.append(utc_start)
        return candidates

    def candidate_starts(
        self, mentor_id: str, from_date: date, to_date: date, duration_minutes: int
    ) -> List[datetime]:
        """
        Starts offered by the mentor's availability, ignoring existing calls.

        Applies blocked dates and the "not in the past" rule.
        """
        if from_date > to_date:
            raise InvalidRangeException(
                "from_date must not be after to_date",
                from_date=from_date.isoformat(),
                to_date=to_date.isoformat(),
            )
        if duration_minutes <= 0:
            raise ValidationException(
                "duration_minutes must be positive", details={"duration_minutes": duration_minutes}
            )

        slots = self.availability_repository.get_slots_for_mentor(mentor_id)
        if not slots:
            return []
        blocked = self.blocked_repository.get_blocked_dates(mentor_id, from_date, to_date)
        now = self.now()

        starts: set[datetime] = set()
        for local_day in _daterange(from_date, to_date):
            if local_day in blocked:
                continue
            weekday = sunday_based_weekday(local_day)
            for slot in slots:
                if slot.day_of_week != weekday:
                    continue
                for candidate in self._slot_candidates(slot, local_day, duration_minutes):
                    if candidate >= now:
                        starts.add(candidate)
        return sorted(starts)

    def filter_booked(
        self, candidates: Sequence[datetime], duration_minutes: int, calls: Sequence[Call]
    ) -> List[datetime]:
        """Drop candidates overlapping any of ``calls``."""
        duration = timedelta(minutes=duration_minutes)
        return [
            start
            for start in candidates
            if not any(overlaps(start, start + duration, c.scheduled_at, c.ends_at) for c in calls)
        ]

    def active_calls_for(
        self, mentor_id: str, candidates: Sequence[datetime], duration_minutes: int
    ) -> List[Call]:
        if not candidates:
            return []
        return self.call_repository.get_active_calls_in_range(
            mentor_id, candidates[0], candidates[-1] + timedelta(minutes=duration_minutes)
        )

    @BaseService.measure_operation("list_available_starts")
    def list_available_starts(
        self, mentor_id: str, from_date: date, to_date: date, duration_minutes: int
    ) -> List[datetime]:
        """
        Bookable UTC start instants within the local dates ``[from_date, to_date]``.

        Raises:
            InvalidRangeException: from_date is after to_date
        """
        candidates = self.candidate_starts(mentor_id, from_date, to_date, duration_minutes)
        calls = self.active_calls_for(mentor_id, candidates, duration_minutes)
        return self.filter_booked(candidates, duration_minutes, calls)

    @staticmethod
    def days_around(instant: datetime) -> tuple[date, date]:
        """
        Local dates that could hold a start at ``instant``.

        Slots can carry different timezones, so the UTC date is widened by a
        day on each side.
        """
        utc_day = ensure_utc(instant).date()
        return utc_day - timedelta(days=1), utc_day + timedelta(days=1)
