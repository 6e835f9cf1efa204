# backend/mentorline/services/reminder_service.py
"""
Reminder Service for Mentorline

Schedules DAY_BEFORE and HOUR_BEFORE reminders when a call or group session
is confirmed and delivers them from a periodic dispatch.

Delivery is at-least-once: ``fired_at`` is stamped only after every recipient
was sent the reminder, so a partial failure leaves the job pending and the
next dispatch retries it (recipients that already received it may get it
again). Each job is claimed in one short transaction and stamped in another;
the messages go out in between, with no transaction or row lock open. One
job's failure never stops the rest of the batch.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..models.call import Call, CallStatus
from ..models.group_session import GroupSession, GroupSessionStatus
from ..models.reminder import ReminderJob, ReminderKind, ReminderSubjectType
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from . import notification_templates as templates
from .base import BaseService
from .notification_service import NotificationService, call_payload, session_payload

logger = logging.getLogger(__name__)

Subject = Union[Call, GroupSession]

_TEMPLATES = {
    ReminderKind.DAY_BEFORE.value: templates.REMINDER_DAY_BEFORE,
    ReminderKind.HOUR_BEFORE.value: templates.REMINDER_HOUR_BEFORE,
}


@dataclass
class DispatchResult:
    """Outcome counts of one dispatch run."""

    sent: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"sent": self.sent, "skipped": self.skipped, "failed": self.failed}


@dataclass
class _Delivery:
    job_id: str
    subject_id: str
    kind: str
    recipients: List[str]
    data: Dict[str, Any]


def reminder_offsets() -> List[Tuple[ReminderKind, timedelta]]:
    return [
        (ReminderKind.DAY_BEFORE, timedelta(hours=settings.reminder_day_before_hours)),
        (ReminderKind.HOUR_BEFORE, timedelta(minutes=settings.reminder_hour_before_minutes)),
    ]


class ReminderService(BaseService):
    """Idempotent reminder scheduling and delivery."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_reminder_repository(db)
        self.call_repository = RepositoryFactory.create_call_repository(db)
        self.session_repository = RepositoryFactory.create_group_session_repository(db)
        self.participant_repository = (
            RepositoryFactory.create_group_session_participant_repository(db)
        )
        self.notification_service = notification_service or NotificationService()

    # Scheduling (runs inside the caller's transaction)

    def _schedule(
        self, subject_id: str, subject_type: ReminderSubjectType, scheduled_at: datetime
    ) -> List[ReminderJob]:
        now = self.now()
        jobs: List[ReminderJob] = []
        for kind, offset in reminder_offsets():
            due_at = scheduled_at - offset
            if due_at <= now:
                continue
            jobs.append(
                self.repository.enqueue(
                    subject_id=subject_id,
                    subject_type=subject_type.value,
                    kind=kind.value,
                    due_at=due_at,
                    created_at=now,
                )
            )
        return jobs

    def schedule_for_call(self, call: Call) -> List[ReminderJob]:
        """Create the call's reminder jobs; existing jobs are left untouched."""
        return self._schedule(call.id, ReminderSubjectType.CALL, call.scheduled_at)

    def schedule_for_session(self, session: GroupSession) -> List[ReminderJob]:
        """Create the session's reminder jobs; existing jobs are left untouched."""
        return self._schedule(session.id, ReminderSubjectType.GROUP_SESSION, session.scheduled_at)

    def cancel_for_subject(self, subject_id: str) -> int:
        """Cancel every pending job of a call or session. Returns rows affected."""
        return self.repository.cancel_pending_for_subject(subject_id, self.now())

    def list_for_subject(self, subject_id: str) -> List[ReminderJob]:
        return self.repository.list_for_subject(subject_id)

    # Delivery

    def _load_subject(self, job: ReminderJob) -> Optional[Subject]:
        # Plain read: nothing may stay locked while reminders go out
        if job.subject_type == ReminderSubjectType.CALL.value:
            return self.call_repository.get_by_id(job.subject_id)
        return self.session_repository.get_by_id(job.subject_id)

    @staticmethod
    def _is_deliverable(subject: Optional[Subject], now: datetime) -> bool:
        if subject is None:
            return False
        confirmed = subject.status in (
            CallStatus.CONFIRMED.value,
            GroupSessionStatus.CONFIRMED.value,
        )
        return confirmed and subject.scheduled_at > now

    def _recipients_and_payload(self, subject: Subject) -> Tuple[List[str], Dict[str, Any]]:
        if isinstance(subject, Call):
            return [subject.consumer_id, subject.mentor_id], call_payload(subject)
        participants = self.participant_repository.list_for_session(subject.id)
        recipients = [p.consumer_id for p in participants] + [subject.mentor_id]
        return recipients, session_payload(subject)

    def _prepare(self, job_id: str, result: DispatchResult) -> Optional[_Delivery]:
        """Claim the job and capture what to send; the transaction ends here."""
        now = self.now()
        with self.transaction():
            job = self.repository.claim(job_id)
            if job is None:
                return None
            subject = self._load_subject(job)
            if not self._is_deliverable(subject, now):
                job.cancelled_at = now
                result.skipped += 1
                prometheus_metrics.record_reminder(job.kind, "skipped")
                return None
            recipients, data = self._recipients_and_payload(subject)
            return _Delivery(
                job_id=job.id,
                subject_id=job.subject_id,
                kind=job.kind,
                recipients=recipients,
                data=data,
            )

    def _send(self, delivery: _Delivery) -> None:
        template = _TEMPLATES[delivery.kind]
        for recipient in delivery.recipients:
            self.notification_service.send_reminder(recipient, template, delivery.data)

    def _record_failure(self, delivery: _Delivery, exc: Exception, result: DispatchResult) -> None:
        result.failed += 1
        prometheus_metrics.record_reminder(delivery.kind, "failed")
        with self.transaction():
            job = self.repository.claim(delivery.job_id)
            if job is not None:
                job.mark_failed(f"{type(exc).__name__}: {exc}")
        self.logger.warning(
            "reminder_delivery_failed",
            extra={
                "job_id": delivery.job_id,
                "subject_id": delivery.subject_id,
                "kind": delivery.kind,
                "attempt_count": job.attempt_count if job is not None else None,
                "error": str(exc),
            },
        )

    def _record_sent(self, delivery: _Delivery, result: DispatchResult) -> None:
        result.sent += 1
        prometheus_metrics.record_reminder(delivery.kind, "sent")
        now = self.now()
        with self.transaction():
            job = self.repository.claim(delivery.job_id)
            # None: cancelled or fired elsewhere while the messages went out
            if job is not None:
                job.fired_at = now
                job.attempt_count = (job.attempt_count or 0) + 1

    def _process_job(self, job_id: str, result: DispatchResult) -> None:
        delivery = self._prepare(job_id, result)
        if delivery is None:
            return
        try:
            self._send(delivery)
        except Exception as exc:
            self._record_failure(delivery, exc, result)
            return
        self._record_sent(delivery, result)

    @BaseService.measure_operation("dispatch_reminders")
    def dispatch(self, limit: Optional[int] = None) -> DispatchResult:
        """
        Deliver every due, unfired, uncancelled reminder.

        Jobs whose subject is no longer CONFIRMED, or has already started, are
        cancelled rather than sent.
        """
        result = DispatchResult()
        batch = limit or settings.reminder_dispatch_batch_size
        job_ids = self.repository.fetch_due_ids(self.now(), limit=batch)
        for job_id in job_ids:
            try:
                self._process_job(job_id, result)
            except Exception:
                result.failed += 1
                self.logger.exception("reminder_dispatch_error", extra={"job_id": job_id})
        if job_ids:
            self.log_operation("dispatch_reminders", **result.as_dict())
        return result
