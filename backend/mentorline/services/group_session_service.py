# backend/mentorline/services/group_session_service.py
"""
Group Session Service for Mentorline

Quorum-gated state machine for multi-seat sessions:

    SCHEDULED -> CONFIRMED -> COMPLETED
    SCHEDULED -> CANCELLED
    CONFIRMED -> CANCELLED

A session is confirmed by the join that brings ``participant_count`` to
exactly ``min_attendees``. If the quorum deadline passes first, the quorum
sweep cancels it and every participant becomes refund-eligible. Joins and
transitions of one session are serialized by the session's scheduling lock;
the video room is provisioned after the lock is released.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Iterator, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import (
    AlreadyJoinedException,
    BusinessRuleException,
    DomainException,
    HasParticipantsException,
    InvalidCapacityException,
    InvalidStateException,
    LeadTimeTooShortException,
    NotFoundException,
    RepositoryException,
    SessionFullException,
    ValidationException,
)
from ..core.scheduling_lock import scheduling_lock, session_lock_key
from ..core.timezone_service import TimezoneService, ensure_utc
from ..integrations.daily_client import DailyError
from ..models.group_session import (
    GroupSession,
    GroupSessionCancellationReason,
    GroupSessionParticipant,
    GroupSessionStatus,
)
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.base_repository import is_integrity_violation
from ..repositories.factory import RepositoryFactory
from .base import BaseService, SweepResult
from .notification_service import NotificationService
from .reminder_service import ReminderService
from .video_room_service import VideoRoomService, session_room_name

logger = logging.getLogger(__name__)

SWEEP_BATCH_SIZE = 500
DEFAULT_TITLE = "Group session"
_OPEN_STATUSES = (GroupSessionStatus.SCHEDULED.value, GroupSessionStatus.CONFIRMED.value)


@dataclass
class JoinResult:
    session: GroupSession
    participant: GroupSessionParticipant
    quorum_reached: bool


class GroupSessionService(BaseService):
    """Create, edit, join, cancel and sweep group sessions."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        video_service: Optional[VideoRoomService] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_group_session_repository(db)
        self.participant_repository = (
            RepositoryFactory.create_group_session_participant_repository(db)
        )
        self.video_service = video_service or VideoRoomService()
        self.notification_service = notification_service or NotificationService()
        self.reminder_service = ReminderService(db, self.clock, self.notification_service)

    # Validation helpers

    def _get_session_or_404(self, session_id: str, for_update: bool = False) -> GroupSession:
        session = self.repository.get_by_id(session_id, for_update=for_update)
        if session is None:
            raise NotFoundException("Group session not found", details={"session_id": session_id})
        return session

    @contextmanager
    def _locked_session(self, session_id: str) -> Iterator[GroupSession]:
        """Hold the session lock around a fresh row; a rejected change rolls back."""
        with scheduling_lock(session_lock_key(session_id)):
            session = self._get_session_or_404(session_id, for_update=True)
            try:
                yield session
            except DomainException:
                self.db.rollback()
                raise

    def _validate_lead_time(self, scheduled_at: datetime) -> None:
        required = settings.group_min_lead_time_hours
        if scheduled_at - self.now() < timedelta(hours=required):
            raise LeadTimeTooShortException(
                required_hours=required,
                provided_hours=TimezoneService.hours_between(self.now(), scheduled_at),
            )

    @staticmethod
    def _validate_duration(duration_minutes: int) -> None:
        if duration_minutes not in settings.group_session_durations:
            raise ValidationException(
                f"Invalid duration {duration_minutes}. "
                f"Available options: {settings.group_session_durations}",
                details={"duration_minutes": duration_minutes},
            )

    @staticmethod
    def _validate_capacity(max_capacity: int, min_attendees: int) -> None:
        lower, upper = settings.group_min_capacity, settings.group_max_capacity
        if not lower <= max_capacity <= upper:
            raise InvalidCapacityException(
                f"max_capacity must be between {lower} and {upper}",
                max_capacity=max_capacity,
                min_capacity_bound=lower,
                max_capacity_bound=upper,
            )
        if min_attendees < 1:
            raise InvalidCapacityException(
                "min_attendees must be at least 1", min_attendees=min_attendees
            )
        if min_attendees > max_capacity:
            raise InvalidCapacityException(
                "min_attendees cannot exceed max_capacity",
                min_attendees=min_attendees,
                max_capacity=max_capacity,
            )

    @staticmethod
    def _validate_price(price: Decimal) -> Decimal:
        value = Decimal(str(price)).quantize(Decimal("0.01"), ROUND_HALF_UP)
        lower = Decimal(str(settings.group_min_price))
        upper = Decimal(str(settings.group_max_price))
        if not lower <= value <= upper:
            raise ValidationException(
                f"price_per_person must be between {lower} and {upper}",
                details={"price_per_person": str(value)},
            )
        return value

    @staticmethod
    def _join_closes_at(session: GroupSession) -> datetime:
        """SCHEDULED sessions close at the quorum deadline, CONFIRMED ones at the start."""
        if session.status == GroupSessionStatus.SCHEDULED.value:
            return session.quorum_deadline
        return session.scheduled_at

    def _joinable_for_mentor(
        self, mentor_id: str, exclude_id: Optional[str] = None
    ) -> List[GroupSession]:
        now = self.now()
        return [
            s
            for s in self.repository.list_open_for_mentor(mentor_id, now, exclude_id=exclude_id)
            if now < self._join_closes_at(s)
        ]

    def _open_session_ids(self, session: GroupSession) -> List[str]:
        return [s.id for s in self._joinable_for_mentor(session.mentor_id, exclude_id=session.id)]

    # Operations

    @BaseService.measure_operation("create_group_session")
    def create(
        self,
        mentor_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        max_capacity: int,
        min_attendees: int,
        price_per_person: Decimal,
        title: str = DEFAULT_TITLE,
        description: Optional[str] = None,
        free_for_subscribers: bool = False,
    ) -> GroupSession:
        """
        Schedule a new session.

        Raises:
            LeadTimeTooShortException: closer than the minimum lead time
            InvalidCapacityException: capacity or quorum outside bounds
            ValidationException: duration or price not allowed
        """
        scheduled_at = ensure_utc(scheduled_at)
        self._validate_lead_time(scheduled_at)
        self._validate_capacity(max_capacity, min_attendees)
        self._validate_duration(duration_minutes)
        price = self._validate_price(price_per_person)

        with self.transaction():
            now = self.now()
            session = self.repository.create(
                mentor_id=mentor_id,
                title=title,
                description=description,
                scheduled_at=scheduled_at,
                duration_minutes=duration_minutes,
                max_capacity=max_capacity,
                min_attendees=min_attendees,
                price_per_person=price,
                free_for_subscribers=free_for_subscribers,
                status=GroupSessionStatus.SCHEDULED.value,
                participant_count=0,
                created_at=now,
                updated_at=now,
            )

        self.log_operation(
            "create_group_session",
            session_id=session.id,
            mentor_id=mentor_id,
            scheduled_at=scheduled_at.isoformat(),
            max_capacity=max_capacity,
            min_attendees=min_attendees,
        )
        return session

    @BaseService.measure_operation("edit_group_session")
    def edit(
        self,
        session_id: str,
        scheduled_at: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> GroupSession:
        """
        Edit a SCHEDULED session.

        Date and duration may only change while nobody has joined. The lead
        time is re-checked on every edit.

        Raises:
            InvalidStateException: the session is not SCHEDULED
            HasParticipantsException: date/duration change with participants
            LeadTimeTooShortException: the (new) start is too close
        """
        with self._locked_session(session_id) as session:
            if session.status != GroupSessionStatus.SCHEDULED.value:
                raise InvalidStateException("group session", session.status, "edit")

            new_start = ensure_utc(scheduled_at) if scheduled_at is not None else None
            changes_timing = (new_start is not None and new_start != session.scheduled_at) or (
                duration_minutes is not None and duration_minutes != session.duration_minutes
            )
            if changes_timing and session.participant_count > 0:
                raise HasParticipantsException(session.id, session.participant_count)
            if duration_minutes is not None:
                self._validate_duration(duration_minutes)
            self._validate_lead_time(new_start or session.scheduled_at)

            with self.transaction():
                if new_start is not None:
                    session.scheduled_at = new_start
                if duration_minutes is not None:
                    session.duration_minutes = duration_minutes
                if title is not None:
                    session.title = title
                if description is not None:
                    session.description = description
                session.updated_at = self.now()

        self.log_operation("edit_group_session", session_id=session_id, changes_timing=changes_timing)
        return session

    @BaseService.measure_operation("join_group_session")
    def join(self, session_id: str, consumer_id: str) -> JoinResult:
        """
        Take a seat in a SCHEDULED or CONFIRMED session.

        The join that brings a SCHEDULED session to exactly ``min_attendees``
        confirms it and schedules its reminders in the same transaction; the
        video room is provisioned right after. Seats above quorum stay open
        until the start.

        Raises:
            SessionFullException: no free seat (details list other open sessions)
            AlreadyJoinedException: the consumer already holds a seat
            InvalidStateException: the session is cancelled or completed
            BusinessRuleException: sign-ups have closed
        """
        now = self.now()
        with self._locked_session(session_id) as session:
            if session.participant_count >= session.max_capacity:
                raise SessionFullException(session.id, open_sessions=self._open_session_ids(session))
            if self.participant_repository.get_participant(session.id, consumer_id) is not None:
                raise AlreadyJoinedException(session.id, consumer_id)
            if session.status not in _OPEN_STATUSES:
                raise InvalidStateException("group session", session.status, "join")
            closes_at = self._join_closes_at(session)
            if now >= closes_at:
                raise BusinessRuleException(
                    "Sign-ups for this session have closed",
                    code="JOIN_WINDOW_CLOSED",
                    details={"session_id": session.id, "closes_at": closes_at.isoformat()},
                )
            was_scheduled = session.status == GroupSessionStatus.SCHEDULED.value

            try:
                with self.transaction():
                    participant = self.participant_repository.create(
                        session_id=session.id,
                        consumer_id=consumer_id,
                        joined_at=now,
                        refund_eligible=False,
                    )
                    session.participant_count += 1
                    session.updated_at = now
                    quorum_reached = (
                        was_scheduled and session.participant_count == session.min_attendees
                    )
                    if quorum_reached:
                        session.status = GroupSessionStatus.CONFIRMED.value
                        session.confirmed_at = now
                        self.reminder_service.schedule_for_session(session)
            except RepositoryException as exc:
                if is_integrity_violation(exc):
                    raise AlreadyJoinedException(session_id, consumer_id) from exc
                raise

        self.log_operation(
            "join_group_session",
            session_id=session_id,
            consumer_id=consumer_id,
            participant_count=session.participant_count,
            quorum_reached=quorum_reached,
        )

        if quorum_reached:
            self._attach_room(session)
            participant_ids = [
                p.consumer_id for p in self.participant_repository.list_for_session(session.id)
            ]
            self.notification_service.session_confirmed(session, participant_ids)
        return JoinResult(session=session, participant=participant, quorum_reached=quorum_reached)

    def _provision_room(self, session: GroupSession) -> str:
        return self.video_service.provision_session_room(
            session.id, session.max_capacity, session.ends_at
        )

    def _store_room(self, session_id: str, url: str) -> bool:
        """Store ``url`` unless the session left CONFIRMED or already has a room."""
        with scheduling_lock(session_lock_key(session_id)):
            with self.transaction():
                fresh = self._get_session_or_404(session_id, for_update=True)
                if fresh.status != GroupSessionStatus.CONFIRMED.value or fresh.video_room_url:
                    return False
                fresh.video_room_url = url
                fresh.updated_at = self.now()
        return True

    def _attach_room(self, session: GroupSession) -> bool:
        """Provision the room outside the lock, then store it if still needed."""
        try:
            url = self._provision_room(session)
        except DailyError as exc:
            self.logger.warning(
                "Video room provisioning failed; will retry from sweep",
                extra={"session_id": session.id, "error": exc.message},
            )
            return False
        return self._store_room(session.id, url)

    def _cancel_session(self, session: GroupSession, reason: GroupSessionCancellationReason) -> int:
        """Cancel inside the caller's transaction; every participant is refunded."""
        now = self.now()
        session.status = GroupSessionStatus.CANCELLED.value
        session.cancellation_reason = reason.value
        session.cancelled_at = now
        session.updated_at = now
        refunded = self.participant_repository.mark_all_refund_eligible(session.id)
        self.reminder_service.cancel_for_subject(session.id)
        return refunded

    def _after_cancel(self, session: GroupSession) -> None:
        if session.video_room_url:
            self.video_service.release_room(session_room_name(session.id))
        participant_ids = [
            p.consumer_id for p in self.participant_repository.list_for_session(session.id)
        ]
        self.notification_service.session_cancelled(session, participant_ids)

    @BaseService.measure_operation("cancel_group_session_by_mentor")
    def cancel_by_mentor(self, session_id: str) -> GroupSession:
        """
        Mentor cancels before the start; all participants are refund-eligible.

        Raises:
            InvalidStateException: terminal session, or the start has passed
        """
        with self._locked_session(session_id) as session:
            if session.status not in _OPEN_STATUSES:
                raise InvalidStateException("group session", session.status, "cancel")
            if self.now() >= session.scheduled_at:
                raise InvalidStateException("group session", "already started", "cancel")
            with self.transaction():
                refunded = self._cancel_session(
                    session, GroupSessionCancellationReason.MENTOR_CANCELLED
                )

        self.log_operation(
            "cancel_group_session_by_mentor", session_id=session_id, refunded=refunded
        )
        self._after_cancel(session)
        return session

    @BaseService.measure_operation("cancel_group_session_by_participant")
    def cancel_by_participant(self, session_id: str, consumer_id: str) -> GroupSession:
        """
        A participant gives up their seat before the session is confirmed.

        Raises:
            InvalidStateException: the session is not SCHEDULED
            NotFoundException: the consumer holds no seat
        """
        with self._locked_session(session_id) as session:
            if session.status != GroupSessionStatus.SCHEDULED.value:
                raise InvalidStateException("group session", session.status, "leave")
            participant = self.participant_repository.get_participant(session.id, consumer_id)
            if participant is None:
                raise NotFoundException(
                    "Participant not found",
                    details={"session_id": session_id, "consumer_id": consumer_id},
                )
            with self.transaction():
                self.participant_repository.delete(participant.id)
                session.participant_count -= 1
                session.updated_at = self.now()

        self.log_operation(
            "cancel_group_session_by_participant",
            session_id=session_id,
            consumer_id=consumer_id,
            participant_count=session.participant_count,
        )
        return session

    # Sweeps

    @BaseService.measure_operation("sweep_quorum_deadline")
    def sweep_quorum_deadline(self) -> SweepResult:
        """Cancel SCHEDULED sessions that missed quorum by their deadline."""
        result = SweepResult()
        now = self.now()
        window = timedelta(hours=settings.group_quorum_window_hours)
        for candidate in self.repository.get_quorum_candidates(now, window, SWEEP_BATCH_SIZE):
            session_id = candidate.id
            try:
                with scheduling_lock(session_lock_key(session_id)):
                    session = self._get_session_or_404(session_id, for_update=True)
                    if (
                        session.status != GroupSessionStatus.SCHEDULED.value
                        or now < session.quorum_deadline
                        or session.participant_count >= session.min_attendees
                    ):
                        self.db.rollback()
                        continue
                    with self.transaction():
                        self._cancel_session(session, GroupSessionCancellationReason.QUORUM_NOT_MET)
                result.processed += 1
            except Exception:
                result.failed += 1
                self.logger.exception("quorum_sweep_failed", extra={"session_id": session_id})
                continue
            self.logger.info(
                "Group session cancelled: quorum not met",
                extra={"session_id": session_id, "participant_count": session.participant_count},
            )
            self._after_cancel(session)
        prometheus_metrics.record_sweep("sweep_quorum_deadline", "cancelled", result.processed)
        prometheus_metrics.record_sweep("sweep_quorum_deadline", "failed", result.failed)
        return result

    @BaseService.measure_operation("complete_group_sessions")
    def mark_completed(self) -> SweepResult:
        """CONFIRMED sessions whose end has passed become COMPLETED."""
        result = SweepResult()
        now = self.now()
        for candidate in self.repository.get_confirmed_started_before(now, SWEEP_BATCH_SIZE):
            if not candidate.ends_at < now:
                continue
            session_id = candidate.id
            try:
                with scheduling_lock(session_lock_key(session_id)):
                    with self.transaction():
                        session = self._get_session_or_404(session_id, for_update=True)
                        if (
                            session.status != GroupSessionStatus.CONFIRMED.value
                            or not session.ends_at < now
                        ):
                            continue
                        session.status = GroupSessionStatus.COMPLETED.value
                        session.completed_at = now
                        session.updated_at = now
                result.processed += 1
            except Exception:
                result.failed += 1
                self.logger.exception(
                    "complete_group_session_failed", extra={"session_id": session_id}
                )
        prometheus_metrics.record_sweep("complete_group_sessions", "completed", result.processed)
        prometheus_metrics.record_sweep("complete_group_sessions", "failed", result.failed)
        return result

    @BaseService.measure_operation("provision_missing_session_rooms")
    def provision_missing_rooms(self) -> SweepResult:
        """Retry room provisioning for CONFIRMED sessions without one."""
        result = SweepResult()
        for session in self.repository.get_confirmed_without_room(self.now(), SWEEP_BATCH_SIZE):
            session_id = session.id
            try:
                stored = self._store_room(session_id, self._provision_room(session))
            except Exception:
                result.failed += 1
                self.logger.exception(
                    "provision_session_room_failed", extra={"session_id": session_id}
                )
                continue
            if stored:
                result.processed += 1
            else:
                result.skipped += 1
        prometheus_metrics.record_sweep("provision_session_rooms", "provisioned", result.processed)
        prometheus_metrics.record_sweep("provision_session_rooms", "failed", result.failed)
        return result

    # Reads

    def get_session(self, session_id: str) -> GroupSession:
        return self._get_session_or_404(session_id)

    def list_participants(self, session_id: str) -> List[GroupSessionParticipant]:
        self._get_session_or_404(session_id)
        return self.participant_repository.list_for_session(session_id)

    def list_open_sessions(self, mentor_id: str) -> List[GroupSession]:
        """Future sessions of the mentor that still take sign-ups."""
        return self._joinable_for_mentor(mentor_id)

    def list_sessions_for_mentor(
        self, mentor_id: str, status: Optional[str] = None
    ) -> List[GroupSession]:
        return self.repository.list_for_mentor(mentor_id, status)
