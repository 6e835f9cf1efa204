# backend/mentorline/models/group_session.py
"""
Group session models for Mentorline.

A group session is explicitly scheduled by a mentor (it is not drawn from
recurring availability), has a bounded number of seats, and only goes ahead
once ``min_attendees`` consumers have joined before the quorum deadline.
"""

from datetime import datetime, timedelta
from enum import Enum
import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.config import settings
from ..database import Base
from .types import UTCDateTime, utc_now

logger = logging.getLogger(__name__)


class GroupSessionStatus(str, Enum):
    """Group session lifecycle statuses."""

    SCHEDULED = "SCHEDULED"  # Open, quorum not yet reached
    CONFIRMED = "CONFIRMED"  # Quorum reached
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class GroupSessionCancellationReason(str, Enum):
    MENTOR_CANCELLED = "MENTOR_CANCELLED"
    QUORUM_NOT_MET = "QUORUM_NOT_MET"


class GroupSession(Base):
    """A capacity-bounded, quorum-gated session with many consumers."""

    __tablename__ = "group_sessions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    mentor_id = Column(String(64), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    scheduled_at = Column(UTCDateTime, nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    max_capacity = Column(Integer, nullable=False)
    min_attendees = Column(Integer, nullable=False)
    price_per_person = Column(Numeric(10, 2), nullable=False)
    free_for_subscribers = Column(Boolean, nullable=False, default=False)
    status = Column(
        String(20), nullable=False, default=GroupSessionStatus.SCHEDULED.value, index=True
    )
    # Kept in step with participant rows inside the same transaction
    participant_count = Column(Integer, nullable=False, default=0)
    video_room_url = Column(String(500), nullable=True)
    cancellation_reason = Column(String(32), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
    confirmed_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)

    participants = relationship(
        "GroupSessionParticipant",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="GroupSessionParticipant.joined_at",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('SCHEDULED', 'CONFIRMED', 'COMPLETED', 'CANCELLED')",
            name="ck_group_sessions_status",
        ),
        CheckConstraint(
            "participant_count <= max_capacity", name="ck_group_sessions_capacity_bound"
        ),
        CheckConstraint("participant_count >= 0", name="ck_group_sessions_count_non_negative"),
        CheckConstraint(
            "min_attendees >= 1 AND min_attendees <= max_capacity",
            name="ck_group_sessions_quorum_bound",
        ),
        Index("idx_group_sessions_status_scheduled_at", "status", "scheduled_at"),
    )

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    @property
    def quorum_deadline(self) -> datetime:
        return self.scheduled_at - timedelta(hours=settings.group_quorum_window_hours)

    @property
    def seats_left(self) -> int:
        return max(self.max_capacity - (self.participant_count or 0), 0)

    def __repr__(self) -> str:
        return (
            f"<GroupSession {self.id}: mentor={self.mentor_id}, at={self.scheduled_at}, "
            f"{self.participant_count}/{self.max_capacity} (min {self.min_attendees}), "
            f"status={self.status}>"
        )


class GroupSessionParticipant(Base):
    """Seat held by a consumer in a group session."""

    __tablename__ = "group_session_participants"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    session_id = Column(
        String(26), ForeignKey("group_sessions.id", ondelete="CASCADE"), nullable=False
    )
    consumer_id = Column(String(64), nullable=False, index=True)
    joined_at = Column(UTCDateTime, nullable=False, default=utc_now)
    refund_eligible = Column(Boolean, nullable=False, default=False)

    session = relationship("GroupSession", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("session_id", "consumer_id", name="uq_group_session_participant"),
        Index("idx_group_session_participants_session", "session_id"),
    )

    def __repr__(self) -> str:
        return f"<GroupSessionParticipant {self.consumer_id} in {self.session_id}>"
