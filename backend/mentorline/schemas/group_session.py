# backend/mentorline/schemas/group_session.py
"""Group session schemas for Mentorline."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, model_validator

from ..core.constants import MAX_TITLE_LENGTH
from ._strict_base import ORMResponseModel, StrictModel, StrictRequestModel


class GroupSessionCreate(StrictRequestModel):
    """
    Schedule a group session.

    Bounds on capacity, duration, price and lead time are enforced by the
    service so the API reports them with domain error codes.
    """

    mentor_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field("Group session", min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = None
    scheduled_at: datetime
    duration_minutes: int
    max_capacity: int
    min_attendees: int
    price_per_person: Decimal = Field(..., decimal_places=2)
    free_for_subscribers: bool = False


class GroupSessionUpdate(StrictRequestModel):
    title: Optional[str] = Field(None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    @model_validator(mode="after")
    def require_change(self) -> "GroupSessionUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class GroupSessionJoin(StrictRequestModel):
    consumer_id: str = Field(..., min_length=1, max_length=64)


class GroupSessionResponse(ORMResponseModel):
    id: str
    mentor_id: str
    title: str
    description: Optional[str] = None
    scheduled_at: datetime
    duration_minutes: int
    max_capacity: int
    min_attendees: int
    price_per_person: Decimal
    free_for_subscribers: bool
    status: str
    participant_count: int
    seats_left: int
    quorum_deadline: datetime
    video_room_url: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class ParticipantResponse(ORMResponseModel):
    id: str
    session_id: str
    consumer_id: str
    joined_at: datetime
    refund_eligible: bool


class JoinResponse(StrictModel):
    session: GroupSessionResponse
    participant: ParticipantResponse
    quorum_reached: bool
