# backend/mentorline/models/call.py
"""
One-on-one call model for Mentorline.

A call is requested by a consumer for a start offered by the mentor's
availability, confirmed once the payment collaborator has captured funds,
and later completed or cancelled. REQUESTED and CONFIRMED calls hold their
window; the partial unique index below is the storage-level guard against
two active calls at the same start.
"""

from datetime import datetime, timedelta
from enum import Enum
import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
import ulid

from ..database import Base
from .types import UTCDateTime, utc_now

logger = logging.getLogger(__name__)


class CallStatus(str, Enum):
    """Call lifecycle statuses."""

    REQUESTED = "REQUESTED"  # Awaiting payment capture / mentor
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ACTIVE_CALL_STATUSES = (CallStatus.REQUESTED.value, CallStatus.CONFIRMED.value)
TERMINAL_CALL_STATUSES = (CallStatus.COMPLETED.value, CallStatus.CANCELLED.value)


class CancelledBy(str, Enum):
    """Party responsible for a cancellation."""

    MENTOR = "MENTOR"
    CONSUMER = "CONSUMER"
    SYSTEM = "SYSTEM"


class CallCancellationReason(str, Enum):
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


_ACTIVE_PREDICATE = "status IN ('REQUESTED', 'CONFIRMED')"


class Call(Base):
    """A one-on-one call between a mentor and a consumer."""

    __tablename__ = "calls"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    mentor_id = Column(String(64), nullable=False, index=True)
    consumer_id = Column(String(64), nullable=False, index=True)
    scheduled_at = Column(UTCDateTime, nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=CallStatus.REQUESTED.value, index=True)

    price = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    mentor_payout = Column(Numeric(10, 2), nullable=False)
    questions_in_advance = Column(Text, nullable=True)

    video_room_url = Column(String(500), nullable=True)
    refund_eligible = Column(Boolean, nullable=True)
    cancelled_by = Column(String(20), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
    confirmed_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('REQUESTED', 'CONFIRMED', 'COMPLETED', 'CANCELLED')",
            name="ck_calls_status",
        ),
        CheckConstraint("duration_minutes > 0", name="ck_calls_duration_positive"),
        Index(
            "uq_calls_mentor_active_start",
            "mentor_id",
            "scheduled_at",
            unique=True,
            postgresql_where=text(_ACTIVE_PREDICATE),
            sqlite_where=text(_ACTIVE_PREDICATE),
        ),
        Index("idx_calls_status_scheduled_at", "status", "scheduled_at"),
    )

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_CALL_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Call {self.id}: mentor={self.mentor_id}, consumer={self.consumer_id}, "
            f"at={self.scheduled_at}, {self.duration_minutes}m, status={self.status}>"
        )
