# backend/mentorline/schemas/availability.py
"""
Availability schemas for Mentorline.

A slot is a recurring weekly window in the mentor's local time; a blocked
date removes one whole local calendar day.
"""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field

from ..core.constants import MAX_REASON_LENGTH
from ._strict_base import ORMResponseModel, StrictModel, StrictRequestModel


class AvailabilitySlotCreate(StrictRequestModel):
    """Schema for adding a recurring weekly window."""

    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday .. 6 = Saturday")
    start_time: time = Field(..., description="Local start time (HH:MM)")
    end_time: time = Field(..., description="Local end time (HH:MM)")
    timezone: Optional[str] = Field(
        None, description="IANA timezone of the window; defaults to the platform timezone"
    )


class AvailabilitySlotResponse(ORMResponseModel):
    id: str
    mentor_id: str
    day_of_week: int
    start_time: time
    end_time: time
    timezone: str
    created_at: datetime


class BlockedDateCreate(StrictRequestModel):
    """Schema for blocking a whole local date."""

    date: date
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class BlockedDateResponse(ORMResponseModel):
    id: str
    mentor_id: str
    date: date
    reason: Optional[str] = None
    created_at: datetime


class AvailableStartsResponse(StrictModel):
    """Bookable UTC start instants for a mentor and call length."""

    mentor_id: str
    from_date: date
    to_date: date
    duration_minutes: int
    starts: List[datetime]
