# backend/mentorline/schemas/call.py
"""Call schemas for Mentorline."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from ..core.constants import MAX_REASON_LENGTH
from ..models.call import CancelledBy
from ._strict_base import ORMResponseModel, StrictRequestModel


class CallCreate(StrictRequestModel):
    """Request a one-on-one call at an offered start."""

    mentor_id: str = Field(..., min_length=1, max_length=64)
    consumer_id: str = Field(..., min_length=1, max_length=64)
    scheduled_at: datetime = Field(..., description="UTC start instant")
    duration_minutes: int = Field(..., gt=0)
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    questions_in_advance: Optional[str] = Field(None, max_length=2000)


class CallCancel(StrictRequestModel):
    """Schema for cancelling a call."""

    by_party: CancelledBy
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None


class CallResponse(ORMResponseModel):
    id: str
    mentor_id: str
    consumer_id: str
    scheduled_at: datetime
    duration_minutes: int
    status: str
    price: Decimal
    platform_fee: Decimal
    mentor_payout: Decimal
    questions_in_advance: Optional[str] = None
    video_room_url: Optional[str] = None
    refund_eligible: Optional[bool] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
