"""Notification templates for scheduling events and reminders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..core.constants import BRAND_NAME


@dataclass(frozen=True)
class NotificationTemplate:
    type: str
    subject_template: str
    body_template: str

    def render(self, data: Mapping[str, Any]) -> tuple[str, str]:
        """Return ``(subject, body)`` with ``data`` substituted."""
        values = {"brand": BRAND_NAME, **data}
        return self.subject_template.format(**values), self.body_template.format(**values)


CALL_REQUESTED = NotificationTemplate(
    type="call_requested",
    subject_template="New call request for {starts_at}",
    body_template=(
        "A {duration_minutes}-minute call was requested for {starts_at} (UTC). "
        "Questions in advance: {questions}"
    ),
)

CALL_CONFIRMED = NotificationTemplate(
    type="call_confirmed",
    subject_template="Call confirmed for {starts_at}",
    body_template=(
        "Your {duration_minutes}-minute call on {starts_at} (UTC) is confirmed. "
        "Join here: {video_room_url}"
    ),
)

CALL_DECLINED = NotificationTemplate(
    type="call_declined",
    subject_template="Your call request for {starts_at} was declined",
    body_template="The mentor could not take the call on {starts_at} (UTC). Please pick another time.",
)

CALL_CANCELLED = NotificationTemplate(
    type="call_cancelled",
    subject_template="Call on {starts_at} cancelled",
    body_template=(
        "The call on {starts_at} (UTC) was cancelled by the {cancelled_by}. "
        "Refund eligible: {refund_label}."
    ),
)

SESSION_CONFIRMED = NotificationTemplate(
    type="group_session_confirmed",
    subject_template="Confirmed: {title}",
    body_template=(
        "{title} on {starts_at} (UTC) reached its minimum of {min_attendees} attendees "
        "and is going ahead. Join here: {video_room_url}"
    ),
)

SESSION_CANCELLED = NotificationTemplate(
    type="group_session_cancelled",
    subject_template="Cancelled: {title}",
    body_template=(
        "{title} on {starts_at} (UTC) has been cancelled ({reason_label}). "
        "You are eligible for a full refund."
    ),
)

REMINDER_DAY_BEFORE = NotificationTemplate(
    type="reminder_day_before",
    subject_template="Reminder: {title} tomorrow",
    body_template="{title} starts at {starts_at} (UTC). Join here: {video_room_url}",
)

REMINDER_HOUR_BEFORE = NotificationTemplate(
    type="reminder_hour_before",
    subject_template="Reminder: {title} in 1 hour",
    body_template="{title} starts in one hour. Join here: {video_room_url}",
)
