# backend/mentorline/services/notification_service.py
"""
Scheduling notifications.

Confirmation and cancellation notices are best effort: a failed send is
logged and never undoes the committed state change. Reminder sends go through
``send_reminder``, which raises so the dispatcher can retry the job.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Dict, Iterable, Optional

from ..core.timezone_service import ensure_utc
from ..models.call import Call
from ..models.group_session import GroupSession, GroupSessionCancellationReason
from . import notification_templates as templates
from .notification_provider import NotificationProvider, build_notification_provider
from .notification_templates import NotificationTemplate

logger = logging.getLogger(__name__)

_REASON_LABELS = {
    GroupSessionCancellationReason.MENTOR_CANCELLED.value: "cancelled by the mentor",
    GroupSessionCancellationReason.QUORUM_NOT_MET.value: "not enough attendees signed up",
}


def format_start(value: datetime) -> str:
    return ensure_utc(value).strftime("%Y-%m-%d %H:%M")


def call_payload(call: Call) -> Dict[str, Any]:
    return {
        "call_id": call.id,
        "title": f"{call.duration_minutes}-minute call",
        "starts_at": format_start(call.scheduled_at),
        "duration_minutes": call.duration_minutes,
        "video_room_url": call.video_room_url or "",
        "questions": call.questions_in_advance or "none",
    }


def session_payload(session: GroupSession) -> Dict[str, Any]:
    return {
        "session_id": session.id,
        "title": session.title,
        "starts_at": format_start(session.scheduled_at),
        "duration_minutes": session.duration_minutes,
        "min_attendees": session.min_attendees,
        "video_room_url": session.video_room_url or "",
    }


class NotificationService:
    """Fans scheduling events out to recipients through a provider."""

    def __init__(self, provider: Optional[NotificationProvider] = None) -> None:
        self.provider = provider or build_notification_provider()

    def _notify(
        self, recipients: Iterable[str], template: NotificationTemplate, data: Dict[str, Any]
    ) -> int:
        """Send to each recipient, logging failures. Returns the number delivered."""
        delivered = 0
        for recipient in recipients:
            try:
                self.provider.send(recipient, template, data)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "notification_send_failed",
                    extra={
                        "template": template.type,
                        "recipient": recipient,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
        return delivered

    # Calls

    def call_requested(self, call: Call) -> int:
        return self._notify([call.mentor_id], templates.CALL_REQUESTED, call_payload(call))

    def call_confirmed(self, call: Call) -> int:
        return self._notify(
            [call.consumer_id, call.mentor_id], templates.CALL_CONFIRMED, call_payload(call)
        )

    def call_declined(self, call: Call) -> int:
        return self._notify([call.consumer_id], templates.CALL_DECLINED, call_payload(call))

    def call_cancelled(self, call: Call) -> int:
        data = call_payload(call)
        data["cancelled_by"] = (call.cancelled_by or "system").lower()
        data["refund_label"] = "yes" if call.refund_eligible else "no"
        data["refund_eligible"] = bool(call.refund_eligible)
        return self._notify([call.consumer_id, call.mentor_id], templates.CALL_CANCELLED, data)

    # Group sessions

    def session_confirmed(self, session: GroupSession, participant_ids: Iterable[str]) -> int:
        recipients = [*participant_ids, session.mentor_id]
        return self._notify(recipients, templates.SESSION_CONFIRMED, session_payload(session))

    def session_cancelled(self, session: GroupSession, participant_ids: Iterable[str]) -> int:
        data = session_payload(session)
        data["reason"] = session.cancellation_reason
        data["reason_label"] = _REASON_LABELS.get(session.cancellation_reason or "", "cancelled")
        recipients = [*participant_ids, session.mentor_id]
        return self._notify(recipients, templates.SESSION_CANCELLED, data)

    # Reminders

    def send_reminder(
        self, recipient: str, template: NotificationTemplate, data: Dict[str, Any]
    ) -> None:
        """Send one reminder; provider errors propagate."""
        self.provider.send(recipient, template, data)
