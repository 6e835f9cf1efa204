# backend/mentorline/services/refund_policy.py
"""
Time-cutoff refund policy shared by call cancellation.

Eligibility depends only on how far ahead of the start the cancellation
happens: at or beyond the cutoff the consumer is refunded, inside it (or
after the start) they are not.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..core.config import settings
from ..core.timezone_service import TimezoneService, ensure_utc

POLICY_FULL_REFUND = "cancelled_before_cutoff"
POLICY_NO_REFUND = "cancelled_inside_cutoff"


def is_refund_eligible(scheduled_at: datetime, now: datetime, cutoff_hours: int = 24) -> bool:
    """
    True iff ``scheduled_at - now >= cutoff_hours``.

    Naive datetimes are treated as UTC. Always False once the start has passed.
    """
    start = ensure_utc(scheduled_at)
    current = ensure_utc(now)
    if current > start:
        return False
    return start - current >= timedelta(hours=cutoff_hours)


@dataclass(frozen=True)
class RefundDecision:
    eligible: bool
    policy_basis: str
    hours_before_start: float


class RefundPolicy:
    """Refund cutoff bound to the configured number of hours."""

    def __init__(self, cutoff_hours: Optional[int] = None):
        self.cutoff_hours = (
            cutoff_hours if cutoff_hours is not None else settings.refund_cutoff_hours
        )

    def is_eligible(self, scheduled_at: datetime, now: datetime) -> bool:
        return is_refund_eligible(scheduled_at, now, self.cutoff_hours)

    def evaluate(self, scheduled_at: datetime, now: datetime) -> RefundDecision:
        eligible = self.is_eligible(scheduled_at, now)
        return RefundDecision(
            eligible=eligible,
            policy_basis=POLICY_FULL_REFUND if eligible else POLICY_NO_REFUND,
            hours_before_start=round(TimezoneService.hours_between(now, scheduled_at), 2),
        )
