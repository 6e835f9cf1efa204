"""
Centralized timezone handling for Mentorline.

Rules:
- Availability is defined in the mentor's local wall-clock time
- All storage: UTC
- All comparisons: UTC
- Local times that do not exist (spring-forward gap) are skipped
- Ambiguous local times (fall-back overlap) resolve to the first occurrence
"""

from datetime import date, datetime, time, timezone
from typing import Optional

import pytz

DEFAULT_TIMEZONE = "America/New_York"


class TimezoneService:
    """Handles all timezone conversions consistently."""

    DEFAULT_TIMEZONE = DEFAULT_TIMEZONE

    @staticmethod
    def is_valid_timezone(tz_str: Optional[str]) -> bool:
        if not tz_str:
            return False
        try:
            pytz.timezone(tz_str)
        except pytz.UnknownTimeZoneError:
            return False
        return True

    @staticmethod
    def get_timezone(tz_str: Optional[str]) -> pytz.BaseTzInfo:
        """Get timezone object, with fallback to default."""
        try:
            return pytz.timezone(tz_str or TimezoneService.DEFAULT_TIMEZONE)
        except pytz.UnknownTimeZoneError:
            return pytz.timezone(TimezoneService.DEFAULT_TIMEZONE)

    @staticmethod
    def local_to_utc(local_date: date, local_time: time, timezone_str: str) -> Optional[datetime]:
        """
        Convert a local wall-clock date/time to an aware UTC instant.

        Uses the timezone rules valid on ``local_date`` (not today).

        Returns:
            The UTC instant, or None when the local time does not exist
            (DST spring-forward gap). For ambiguous times (DST fall-back) the
            earliest UTC instant is returned.
        """
        tz = TimezoneService.get_timezone(timezone_str)
        naive_dt = datetime.combine(
            local_date, local_time
        )  # utc-naive-ok: Intentionally naive for pytz.localize()

        try:
            # is_dst=None raises exception for ambiguous/nonexistent times
            local_dt = tz.localize(naive_dt, is_dst=None)
        except pytz.exceptions.AmbiguousTimeError:
            first = tz.localize(naive_dt, is_dst=True).astimezone(timezone.utc)
            second = tz.localize(naive_dt, is_dst=False).astimezone(timezone.utc)
            return min(first, second)
        except pytz.exceptions.NonExistentTimeError:
            return None

        return local_dt.astimezone(timezone.utc)

    @staticmethod
    def utc_to_local(utc_dt: datetime, timezone_str: str) -> datetime:
        """Convert UTC datetime to local timezone."""
        utc_dt = ensure_utc(utc_dt)
        tz = TimezoneService.get_timezone(timezone_str)
        return utc_dt.astimezone(tz)

    @staticmethod
    def local_today(now_utc: datetime, timezone_str: str) -> date:
        """Return the calendar date at ``now_utc`` in the given timezone."""
        return TimezoneService.utc_to_local(now_utc, timezone_str).date()

    @staticmethod
    def hours_between(start: datetime, end: datetime) -> float:
        """Hours from ``start`` until ``end`` (negative when end is earlier)."""
        return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600


def ensure_utc(dt: datetime) -> datetime:
    """
    Return ``dt`` as an aware UTC datetime.

    Naive values are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def sunday_based_weekday(value: date) -> int:
    """Day of week with Sunday=0 .. Saturday=6."""
    return (value.weekday() + 1) % 7
