# backend/mentorline/models/availability.py
"""
Availability models for Mentorline.

A mentor's availability is a set of recurring weekly windows expressed in
the mentor's local wall-clock time, minus whole calendar dates the mentor
has blocked off.

Classes:
    AvailabilitySlot: Recurring weekly window (never edited in place)
    BlockedDate: A date on which no starts are offered
"""

import logging

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    Index,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
import ulid

from ..database import Base
from .types import UTCDateTime, utc_now

logger = logging.getLogger(__name__)


class AvailabilitySlot(Base):
    """Recurring weekly availability window for a mentor."""

    __tablename__ = "availability_slots"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    mentor_id = Column(String(64), nullable=False, index=True)
    # Sunday=0 .. Saturday=6
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_availability_slots_range"),
        CheckConstraint(
            "day_of_week >= 0 AND day_of_week <= 6", name="ck_availability_slots_day_of_week"
        ),
        Index("idx_availability_slots_mentor_day", "mentor_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return (
            f"<AvailabilitySlot {self.mentor_id} day={self.day_of_week} "
            f"{self.start_time}-{self.end_time} {self.timezone}>"
        )


class BlockedDate(Base):
    """Mentor vacation / unavailable day."""

    __tablename__ = "blocked_dates"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    mentor_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    reason = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("mentor_id", "date", name="uq_blocked_dates_mentor_date"),
    )

    def __repr__(self) -> str:
        return f"<BlockedDate {self.date} - {self.reason or 'No reason'}>"
