# backend/mentorline/routes/v1/availability.py
"""
Availability routes - API v1

Recurring weekly windows, blocked dates and bookable starts of a mentor.
All business logic delegated to AvailabilityService and SlotResolver.

Endpoints:
    GET /mentors/{mentor_id}/availability - List weekly windows
    POST /mentors/{mentor_id}/availability - Add a weekly window
    DELETE /availability/{slot_id} - Remove a weekly window (idempotent)
    GET /mentors/{mentor_id}/blocked-dates - List upcoming blocked dates
    POST /mentors/{mentor_id}/blocked-dates - Block a date
    DELETE /blocked-dates/{block_id} - Unblock a date (idempotent)
    GET /mentors/{mentor_id}/available-starts - Bookable UTC start instants
"""

import asyncio
from datetime import date
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status

from ...api.dependencies import get_availability_service, get_slot_resolver
from ...core.config import settings
from ...core.constants import MAX_SLOT_QUERY_DAYS
from ...core.exceptions import DomainException, ValidationException
from ...schemas.availability import (
    AvailabilitySlotCreate,
    AvailabilitySlotResponse,
    AvailableStartsResponse,
    BlockedDateCreate,
    BlockedDateResponse,
)
from ...services.availability_service import AvailabilityService
from ...services.slot_resolver import SlotResolver

logger = logging.getLogger(__name__)

# V1 router - mounted under /api/v1 in main.py
router = APIRouter(tags=["availability-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/mentors/{mentor_id}/availability", response_model=List[AvailabilitySlotResponse])
async def list_availability(
    mentor_id: str,
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[AvailabilitySlotResponse]:
    slots = await asyncio.to_thread(availability_service.list_slots, mentor_id)
    return [AvailabilitySlotResponse.model_validate(slot) for slot in slots]


@router.post(
    "/mentors/{mentor_id}/availability",
    response_model=AvailabilitySlotResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Overlaps an existing window"}},
)
async def add_availability(
    mentor_id: str,
    payload: AvailabilitySlotCreate = Body(...),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilitySlotResponse:
    """Add a recurring weekly window in the mentor's local time."""
    try:
        slot = await asyncio.to_thread(
            availability_service.add_slot,
            mentor_id=mentor_id,
            day_of_week=payload.day_of_week,
            start_time=payload.start_time,
            end_time=payload.end_time,
            timezone=payload.timezone,
        )
        return AvailabilitySlotResponse.model_validate(slot)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete("/availability/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_availability(
    slot_id: str,
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> Response:
    try:
        await asyncio.to_thread(availability_service.remove_slot, slot_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/mentors/{mentor_id}/blocked-dates", response_model=List[BlockedDateResponse])
async def list_blocked_dates(
    mentor_id: str,
    from_date: Optional[date] = Query(None, description="Defaults to the mentor's today"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[BlockedDateResponse]:
    blocks = await asyncio.to_thread(
        availability_service.list_blocked_dates, mentor_id, from_date
    )
    return [BlockedDateResponse.model_validate(block) for block in blocks]


@router.post(
    "/mentors/{mentor_id}/blocked-dates",
    response_model=BlockedDateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Date already blocked"}},
)
async def block_date(
    mentor_id: str,
    payload: BlockedDateCreate = Body(...),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> BlockedDateResponse:
    try:
        block = await asyncio.to_thread(
            availability_service.block_date, mentor_id, payload.date, payload.reason
        )
        return BlockedDateResponse.model_validate(block)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete("/blocked-dates/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unblock_date(
    block_id: str,
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> Response:
    try:
        await asyncio.to_thread(availability_service.unblock_date, block_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/mentors/{mentor_id}/available-starts", response_model=AvailableStartsResponse)
async def list_available_starts(
    mentor_id: str,
    from_date: date = Query(..., description="First local date (inclusive)"),
    to_date: date = Query(..., description="Last local date (inclusive)"),
    duration_minutes: int = Query(settings.default_call_duration_minutes, gt=0),
    slot_resolver: SlotResolver = Depends(get_slot_resolver),
) -> AvailableStartsResponse:
    """Bookable UTC start instants; never offers a start in the past."""
    try:
        if (to_date - from_date).days > MAX_SLOT_QUERY_DAYS:
            raise ValidationException(
                f"Date range cannot exceed {MAX_SLOT_QUERY_DAYS} days",
                details={"from_date": from_date.isoformat(), "to_date": to_date.isoformat()},
            )
        starts = await asyncio.to_thread(
            slot_resolver.list_available_starts, mentor_id, from_date, to_date, duration_minutes
        )
        return AvailableStartsResponse(
            mentor_id=mentor_id,
            from_date=from_date,
            to_date=to_date,
            duration_minutes=duration_minutes,
            starts=starts,
        )
    except DomainException as e:
        handle_domain_exception(e)
