# backend/mentorline/models/reminder.py
"""
Reminder job persistence.

One row per (subject, kind). The unique constraint makes scheduling
idempotent; ``fired_at`` is stamped only once every recipient was notified.
"""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Column, Index, Integer, String, Text, UniqueConstraint
import ulid

from ..database import Base
from .types import UTCDateTime, utc_now


class ReminderSubjectType(str, Enum):
    CALL = "CALL"
    GROUP_SESSION = "GROUP_SESSION"


class ReminderKind(str, Enum):
    DAY_BEFORE = "DAY_BEFORE"
    HOUR_BEFORE = "HOUR_BEFORE"


class ReminderJob(Base):
    """Pending or delivered reminder for a call or group session."""

    __tablename__ = "reminder_jobs"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    subject_id = Column(String(26), nullable=False, index=True)
    subject_type = Column(String(20), nullable=False)
    kind = Column(String(20), nullable=False)
    due_at = Column(UTCDateTime, nullable=False)
    fired_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("subject_id", "kind", name="uq_reminder_jobs_subject_kind"),
        Index("idx_reminder_jobs_due", "due_at", "fired_at", "cancelled_at"),
    )

    @property
    def is_pending(self) -> bool:
        return self.fired_at is None and self.cancelled_at is None

    def mark_failed(self, error: str) -> None:
        """Record a failed delivery attempt; the job stays pending."""
        self.attempt_count = (self.attempt_count or 0) + 1
        self.last_error = error[:1000]

    def __repr__(self) -> str:
        return f"<ReminderJob {self.kind} for {self.subject_type} {self.subject_id} at {self.due_at}>"
