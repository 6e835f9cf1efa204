"""
Database models for Mentorline.

- Availability: recurring weekly slots and blocked dates
- Calls: one-on-one bookings
- Group sessions: quorum-gated multi-seat sessions and their participants
- Reminders: idempotent reminder jobs
"""

from .availability import AvailabilitySlot, BlockedDate
from .call import (
    ACTIVE_CALL_STATUSES,
    Call,
    CallCancellationReason,
    CallStatus,
    CancelledBy,
)
from .group_session import (
    GroupSession,
    GroupSessionCancellationReason,
    GroupSessionParticipant,
    GroupSessionStatus,
)
from .reminder import ReminderJob, ReminderKind, ReminderSubjectType

__all__ = [
    "ACTIVE_CALL_STATUSES",
    "AvailabilitySlot",
    "BlockedDate",
    "Call",
    "CallCancellationReason",
    "CallStatus",
    "CancelledBy",
    "GroupSession",
    "GroupSessionCancellationReason",
    "GroupSessionParticipant",
    "GroupSessionStatus",
    "ReminderJob",
    "ReminderKind",
    "ReminderSubjectType",
]
