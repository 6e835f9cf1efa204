# backend/mentorline/services/booking_service.py
"""
Booking Service for Mentorline

State machine for one-on-one calls:

    REQUESTED -> CONFIRMED -> COMPLETED
    REQUESTED -> CANCELLED
    CONFIRMED -> CANCELLED

COMPLETED and CANCELLED are terminal. Every check-then-write runs under the
mentor's scheduling lock; video provisioning and notifications happen outside
it. The partial unique index on ``(mentor_id, scheduled_at)`` for active calls
is the storage-level backstop: an insert that loses the race surfaces as
SlotTaken.
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import (
    InvalidStateException,
    NotFoundException,
    RepositoryException,
    SlotTakenException,
    SlotUnavailableException,
    ValidationException,
)
from ..core.scheduling_lock import mentor_lock_key, scheduling_lock
from ..core.timezone_service import ensure_utc
from ..integrations.daily_client import DailyError
from ..models.call import (
    Call,
    CallCancellationReason,
    CallStatus,
    CancelledBy,
)
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.base_repository import is_integrity_violation
from ..repositories.factory import RepositoryFactory
from .base import BaseService, SweepResult
from .notification_service import NotificationService
from .refund_policy import RefundPolicy
from .reminder_service import ReminderService
from .slot_resolver import SlotResolver
from .video_room_service import VideoRoomService, call_room_name

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")
SWEEP_BATCH_SIZE = 500


def split_price(price: Decimal, fee_percent: float) -> tuple[Decimal, Decimal]:
    """Return ``(platform_fee, mentor_payout)`` for a call price."""
    fee = (price * Decimal(str(fee_percent)) / Decimal(100)).quantize(_CENTS, ROUND_HALF_UP)
    return fee, (price - fee).quantize(_CENTS, ROUND_HALF_UP)


def default_call_price(duration_minutes: int, hourly_rate: Optional[float] = None) -> Decimal:
    rate = Decimal(str(hourly_rate if hourly_rate is not None else settings.default_hourly_rate))
    return (rate * Decimal(duration_minutes) / Decimal(60)).quantize(_CENTS, ROUND_HALF_UP)


class BookingService(BaseService):
    """Request, confirm, decline, cancel and complete one-on-one calls."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        video_service: Optional[VideoRoomService] = None,
        notification_service: Optional[NotificationService] = None,
        refund_policy: Optional[RefundPolicy] = None,
    ):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_call_repository(db)
        self.slot_resolver = SlotResolver(db, self.clock)
        self.video_service = video_service or VideoRoomService()
        self.notification_service = notification_service or NotificationService()
        self.reminder_service = ReminderService(db, self.clock, self.notification_service)
        self.refund_policy = refund_policy or RefundPolicy()

    # Helpers

    def _get_call_or_404(self, call_id: str, for_update: bool = False) -> Call:
        call = self.repository.get_by_id(call_id, for_update=for_update)
        if call is None:
            raise NotFoundException("Call not found", details={"call_id": call_id})
        return call

    def _available_starts_details(
        self, mentor_id: str, scheduled_at: datetime, duration_minutes: int
    ) -> Dict[str, Any]:
        from_date, to_date = SlotResolver.days_around(scheduled_at)
        starts = self.slot_resolver.list_available_starts(
            mentor_id, from_date, to_date, duration_minutes
        )
        return {
            "mentor_id": mentor_id,
            "requested_start": scheduled_at.isoformat(),
            "duration_minutes": duration_minutes,
            "available_starts": [s.isoformat() for s in starts],
        }

    @staticmethod
    def _is_same_request(
        call: Call, consumer_id: str, scheduled_at: datetime, duration_minutes: int
    ) -> bool:
        return (
            call.consumer_id == consumer_id
            and call.scheduled_at == scheduled_at
            and call.duration_minutes == duration_minutes
            and call.is_active
        )

    # Operations

    @BaseService.measure_operation("request_call")
    def request(
        self,
        mentor_id: str,
        consumer_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        price: Optional[Decimal] = None,
        questions_in_advance: Optional[str] = None,
    ) -> Call:
        """
        Request a call at one of the mentor's currently available starts.

        Retrying an identical request returns the existing call.

        Raises:
            ValidationException: duration is not an offered call length
            SlotUnavailableException: the start is not offered by availability
            SlotTakenException: another active call holds the window
        """
        if duration_minutes not in settings.call_durations:
            raise ValidationException(
                f"Invalid duration {duration_minutes}. Available options: {settings.call_durations}",
                details={"duration_minutes": duration_minutes},
            )
        scheduled_at = ensure_utc(scheduled_at)
        call_price = (
            Decimal(str(price)).quantize(_CENTS, ROUND_HALF_UP)
            if price is not None
            else default_call_price(duration_minutes)
        )
        if call_price < 0:
            raise ValidationException("Price cannot be negative", details={"price": str(price)})
        platform_fee, mentor_payout = split_price(call_price, settings.platform_fee_percent)

        self.log_operation(
            "request_call",
            mentor_id=mentor_id,
            consumer_id=consumer_id,
            scheduled_at=scheduled_at.isoformat(),
            duration_minutes=duration_minutes,
        )

        with scheduling_lock(mentor_lock_key(mentor_id)):
            from_date, to_date = SlotResolver.days_around(scheduled_at)
            candidates = self.slot_resolver.candidate_starts(
                mentor_id, from_date, to_date, duration_minutes
            )
            if scheduled_at not in candidates:
                raise SlotUnavailableException(
                    details=self._available_starts_details(
                        mentor_id, scheduled_at, duration_minutes
                    )
                )

            conflicts = self.slot_resolver.active_calls_for(
                mentor_id, [scheduled_at], duration_minutes
            )
            for existing in conflicts:
                if self._is_same_request(existing, consumer_id, scheduled_at, duration_minutes):
                    self.logger.info(
                        "Duplicate call request returned existing call",
                        extra={"call_id": existing.id},
                    )
                    return existing
            if conflicts:
                raise SlotTakenException(
                    details=self._available_starts_details(
                        mentor_id, scheduled_at, duration_minutes
                    )
                )

            try:
                with self.transaction():
                    call = self.repository.create(
                        mentor_id=mentor_id,
                        consumer_id=consumer_id,
                        scheduled_at=scheduled_at,
                        duration_minutes=duration_minutes,
                        status=CallStatus.REQUESTED.value,
                        price=call_price,
                        platform_fee=platform_fee,
                        mentor_payout=mentor_payout,
                        questions_in_advance=questions_in_advance,
                        created_at=self.now(),
                        updated_at=self.now(),
                    )
            except RepositoryException as exc:
                if is_integrity_violation(exc):
                    raise SlotTakenException(
                        details=self._available_starts_details(
                            mentor_id, scheduled_at, duration_minutes
                        )
                    ) from exc
                raise

        self.notification_service.call_requested(call)
        return call

    @BaseService.measure_operation("confirm_call")
    def confirm(self, call_id: str) -> Call:
        """
        Confirm a REQUESTED call after payment capture.

        The video room is provisioned before the mentor lock is taken; if the
        call changed state meanwhile the room is released again. A provider
        failure does not block confirmation: the call is confirmed without a
        room and ``provision_missing_rooms`` retries later.

        Raises:
            NotFoundException: no such call
            InvalidStateException: the call is not REQUESTED
        """
        call = self._get_call_or_404(call_id)
        if call.status != CallStatus.REQUESTED.value:
            raise InvalidStateException("call", call.status, "confirm")

        video_room_url: Optional[str] = None
        try:
            video_room_url = self.video_service.provision_call_room(call.id, call.ends_at)
        except DailyError as exc:
            self.logger.warning(
                "Video room provisioning failed; confirming without a room",
                extra={"call_id": call.id, "error": exc.message},
            )

        rejected_status: Optional[str] = None
        orphaned = False
        with scheduling_lock(mentor_lock_key(call.mentor_id)):
            call = self._get_call_or_404(call_id, for_update=True)
            if call.status != CallStatus.REQUESTED.value:
                rejected_status = call.status
                # A concurrent confirm may already be using the same room
                orphaned = bool(video_room_url) and call.video_room_url != video_room_url
                self.db.rollback()
            else:
                with self.transaction():
                    now = self.now()
                    call.status = CallStatus.CONFIRMED.value
                    call.video_room_url = video_room_url
                    call.confirmed_at = now
                    call.updated_at = now
                    self.reminder_service.schedule_for_call(call)

        if rejected_status is not None:
            if orphaned:
                self.video_service.release_room(call_room_name(call_id))
            raise InvalidStateException("call", rejected_status, "confirm")

        self.log_operation("confirm_call", call_id=call.id, has_room=bool(video_room_url))
        self.notification_service.call_confirmed(call)
        return call

    @BaseService.measure_operation("decline_call")
    def decline(self, call_id: str) -> Call:
        """
        Mentor declines a REQUESTED call.

        Raises:
            InvalidStateException: the call is not REQUESTED
        """
        call = self._get_call_or_404(call_id)
        with scheduling_lock(mentor_lock_key(call.mentor_id)):
            call = self._get_call_or_404(call_id, for_update=True)
            if call.status != CallStatus.REQUESTED.value:
                current = call.status
                self.db.rollback()
                raise InvalidStateException("call", current, "decline")
            with self.transaction():
                self._mark_cancelled(
                    call, CancelledBy.MENTOR, CallCancellationReason.DECLINED.value, None
                )

        self.log_operation("decline_call", call_id=call.id)
        self.notification_service.call_declined(call)
        return call

    @BaseService.measure_operation("cancel_call")
    def cancel(
        self,
        call_id: str,
        by_party: Union[CancelledBy, str],
        reason: Optional[str] = None,
    ) -> Call:
        """
        Cancel a REQUESTED or CONFIRMED call and stamp refund eligibility.

        Raises:
            ValidationException: unknown cancelling party
            InvalidStateException: the call is already terminal
        """
        try:
            party = CancelledBy(by_party)
        except ValueError as exc:
            raise ValidationException(
                f"Unknown cancelling party: {by_party}", details={"by_party": str(by_party)}
            ) from exc

        call = self._get_call_or_404(call_id)
        with scheduling_lock(mentor_lock_key(call.mentor_id)):
            call = self._get_call_or_404(call_id, for_update=True)
            if not call.is_active:
                current = call.status
                self.db.rollback()
                raise InvalidStateException("call", current, "cancel")

            decision = self.refund_policy.evaluate(call.scheduled_at, self.now())
            with self.transaction():
                self._mark_cancelled(call, party, reason, decision.eligible)
                self.reminder_service.cancel_for_subject(call.id)

        self.log_operation(
            "cancel_call",
            call_id=call.id,
            by_party=party.value,
            refund_eligible=decision.eligible,
            policy_basis=decision.policy_basis,
            hours_before_start=decision.hours_before_start,
        )
        if call.video_room_url:
            self.video_service.release_room(call_room_name(call.id))
        self.notification_service.call_cancelled(call)
        return call

    def _mark_cancelled(
        self,
        call: Call,
        party: CancelledBy,
        reason: Optional[str],
        refund_eligible: Optional[bool],
    ) -> None:
        now = self.now()
        call.status = CallStatus.CANCELLED.value
        call.cancelled_by = party.value
        call.cancellation_reason = reason
        call.refund_eligible = refund_eligible
        call.cancelled_at = now
        call.updated_at = now

    # Sweeps

    @BaseService.measure_operation("complete_calls")
    def mark_completed(self) -> SweepResult:
        """CONFIRMED calls whose end has passed become COMPLETED."""
        result = SweepResult()
        now = self.now()
        for candidate in self.repository.get_confirmed_started_before(now, SWEEP_BATCH_SIZE):
            if not candidate.ends_at < now:
                continue
            call_id, mentor_id = candidate.id, candidate.mentor_id
            try:
                with scheduling_lock(mentor_lock_key(mentor_id)):
                    with self.transaction():
                        call = self._get_call_or_404(call_id, for_update=True)
                        if call.status != CallStatus.CONFIRMED.value or not call.ends_at < now:
                            continue
                        call.status = CallStatus.COMPLETED.value
                        call.completed_at = now
                        call.updated_at = now
                result.processed += 1
            except Exception:
                result.failed += 1
                self.logger.exception("complete_call_failed", extra={"call_id": call_id})
        prometheus_metrics.record_sweep("complete_calls", "completed", result.processed)
        prometheus_metrics.record_sweep("complete_calls", "failed", result.failed)
        return result

    @BaseService.measure_operation("expire_requested_calls")
    def expire_stale_requests(self) -> SweepResult:
        """
        Cancel REQUESTED calls that were never confirmed.

        A request expires once it is older than the configured expiry or its
        start time has arrived. Nothing was captured, so refund eligibility
        stays unset.
        """
        result = SweepResult()
        now = self.now()
        created_before = now - timedelta(minutes=settings.requested_call_expiry_minutes)
        stale = self.repository.get_stale_requested(created_before, now, SWEEP_BATCH_SIZE)
        for candidate in stale:
            call_id, mentor_id = candidate.id, candidate.mentor_id
            try:
                with scheduling_lock(mentor_lock_key(mentor_id)):
                    with self.transaction():
                        call = self._get_call_or_404(call_id, for_update=True)
                        if call.status != CallStatus.REQUESTED.value:
                            continue
                        self._mark_cancelled(
                            call, CancelledBy.SYSTEM, CallCancellationReason.EXPIRED.value, None
                        )
                result.processed += 1
            except Exception:
                result.failed += 1
                self.logger.exception("expire_call_failed", extra={"call_id": call_id})
        prometheus_metrics.record_sweep("expire_requested_calls", "expired", result.processed)
        prometheus_metrics.record_sweep("expire_requested_calls", "failed", result.failed)
        return result

    @BaseService.measure_operation("provision_missing_call_rooms")
    def provision_missing_rooms(self) -> SweepResult:
        """Retry room provisioning for upcoming CONFIRMED calls without one."""
        result = SweepResult()
        now = self.now()
        for call in self.repository.get_confirmed_without_room(now, SWEEP_BATCH_SIZE):
            call_id = call.id
            try:
                url = self.video_service.provision_call_room(call.id, call.ends_at)
                stored = self._store_room(call_id, call.mentor_id, url)
            except Exception:
                result.failed += 1
                self.logger.exception("provision_call_room_failed", extra={"call_id": call_id})
                continue
            if stored:
                result.processed += 1
            else:
                result.skipped += 1
        prometheus_metrics.record_sweep("provision_call_rooms", "provisioned", result.processed)
        prometheus_metrics.record_sweep("provision_call_rooms", "failed", result.failed)
        return result

    def _store_room(self, call_id: str, mentor_id: str, url: str) -> bool:
        """Store ``url`` unless the call left CONFIRMED or already has a room."""
        with scheduling_lock(mentor_lock_key(mentor_id)):
            with self.transaction():
                fresh = self._get_call_or_404(call_id, for_update=True)
                if fresh.status != CallStatus.CONFIRMED.value or fresh.video_room_url:
                    return False
                fresh.video_room_url = url
                fresh.updated_at = self.now()
        return True

    # Reads

    def get_call(self, call_id: str) -> Call:
        return self._get_call_or_404(call_id)

    def list_calls_for_user(self, user_id: str, status: Optional[str] = None) -> List[Call]:
        if status is not None and status not in {s.value for s in CallStatus}:
            raise ValidationException(f"Unknown call status: {status}", details={"status": status})
        return self.repository.list_for_user(user_id, status)
