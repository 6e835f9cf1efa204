# backend/mentorline/repositories/call_repository.py
"""
Call Repository for Mentorline

Queries for one-on-one calls: overlap lookups for the slot resolver and the
booking critical section, per-user listings, and sweep candidates.
"""

from datetime import datetime, timedelta
import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models.call import ACTIVE_CALL_STATUSES, Call, CallStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CallRepository(BaseRepository[Call]):
    """Repository for Call rows."""

    def __init__(self, db: Session, max_call_minutes: int = 24 * 60):
        super().__init__(db, Call)
        self._max_call_minutes = max_call_minutes

    def get_active_calls_in_range(
        self, mentor_id: str, range_start: datetime, range_end: datetime
    ) -> List[Call]:
        """
        REQUESTED/CONFIRMED calls of the mentor overlapping ``[range_start, range_end)``.

        The SQL filter is widened by the longest permitted duration so only the
        start column is needed; the exact overlap test runs in Python.
        """
        lower = range_start - timedelta(minutes=self._max_call_minutes)
        query = self._build_query().filter(
            Call.mentor_id == mentor_id,
            Call.status.in_(ACTIVE_CALL_STATUSES),
            Call.scheduled_at < range_end,
            Call.scheduled_at > lower,
        )
        calls = self._execute_query(query.order_by(Call.scheduled_at))
        return [c for c in calls if c.scheduled_at < range_end and range_start < c.ends_at]

    def list_for_user(self, user_id: str, status: Optional[str] = None) -> List[Call]:
        """Calls where the user is mentor or consumer, newest start first."""
        query = self._build_query().filter(
            or_(Call.mentor_id == user_id, Call.consumer_id == user_id)
        )
        if status:
            query = query.filter(Call.status == status)
        return self._execute_query(query.order_by(Call.scheduled_at.desc()))

    def get_confirmed_started_before(self, cutoff: datetime, limit: int) -> List[Call]:
        """CONFIRMED calls starting before ``cutoff`` (completion candidates)."""
        query = (
            self._build_query()
            .filter(Call.status == CallStatus.CONFIRMED.value, Call.scheduled_at < cutoff)
            .order_by(Call.scheduled_at)
            .limit(limit)
        )
        return self._execute_query(query)

    def get_stale_requested(
        self, created_before: datetime, starts_before: datetime, limit: int
    ) -> List[Call]:
        """REQUESTED calls created before ``created_before`` or starting before ``starts_before``."""
        query = (
            self._build_query()
            .filter(
                Call.status == CallStatus.REQUESTED.value,
                or_(Call.created_at < created_before, Call.scheduled_at <= starts_before),
            )
            .order_by(Call.created_at)
            .limit(limit)
        )
        return self._execute_query(query)

    def get_confirmed_without_room(self, now: datetime, limit: int) -> List[Call]:
        """Upcoming or running CONFIRMED calls that still lack a video room."""
        query = (
            self._build_query()
            .filter(
                Call.status == CallStatus.CONFIRMED.value,
                Call.video_room_url.is_(None),
                Call.scheduled_at > now - timedelta(minutes=self._max_call_minutes),
            )
            .order_by(Call.scheduled_at)
            .limit(limit)
        )
        return [c for c in self._execute_query(query) if c.ends_at > now]
