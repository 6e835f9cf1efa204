# backend/mentorline/routes/v1/calls.py
"""
Call routes - API v1

One-on-one call lifecycle. All business logic delegated to BookingService.

Endpoints:
    POST /calls - Request a call at an offered start
    GET /calls - List calls of a user (mentor or consumer)
    GET /calls/{call_id} - Call details
    POST /calls/{call_id}/confirm - Confirm after payment capture
    POST /calls/{call_id}/decline - Mentor declines a request
    POST /calls/{call_id}/cancel - Cancel with refund decision
"""

import asyncio
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.params import Path

from ...api.dependencies import get_booking_service
from ...core.exceptions import DomainException
from ...schemas.call import CallCancel, CallCreate, CallResponse
from ...services.booking_service import BookingService

logger = logging.getLogger(__name__)

# V1 router - mounted under /api/v1 in main.py
router = APIRouter(tags=["calls-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _call_id_path() -> Path:
    return Path(
        ...,
        description="Call ULID",
        pattern=ULID_PATH_PATTERN,
        examples=["01HF4G12ABCDEF3456789XYZAB"],
    )


@router.post(
    "/calls",
    response_model=CallResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Slot unavailable or already taken"}},
)
async def request_call(
    payload: CallCreate = Body(...),
    booking_service: BookingService = Depends(get_booking_service),
) -> CallResponse:
    """
    Request a call.

    A 409 response carries ``available_starts`` with the mentor's current
    bookable starts around the requested time.
    """
    try:
        call = await asyncio.to_thread(
            booking_service.request,
            mentor_id=payload.mentor_id,
            consumer_id=payload.consumer_id,
            scheduled_at=payload.scheduled_at,
            duration_minutes=payload.duration_minutes,
            price=payload.price,
            questions_in_advance=payload.questions_in_advance,
        )
        return CallResponse.model_validate(call)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/calls", response_model=List[CallResponse])
async def list_calls(
    user_id: str = Query(..., min_length=1, description="Mentor or consumer id"),
    call_status: Optional[str] = Query(None, alias="status"),
    booking_service: BookingService = Depends(get_booking_service),
) -> List[CallResponse]:
    try:
        calls = await asyncio.to_thread(
            booking_service.list_calls_for_user, user_id, call_status
        )
        return [CallResponse.model_validate(call) for call in calls]
    except DomainException as e:
        handle_domain_exception(e)


@router.get(
    "/calls/{call_id}",
    response_model=CallResponse,
    responses={404: {"description": "Call not found"}},
)
async def get_call(
    call_id: str = _call_id_path(),
    booking_service: BookingService = Depends(get_booking_service),
) -> CallResponse:
    try:
        call = await asyncio.to_thread(booking_service.get_call, call_id)
        return CallResponse.model_validate(call)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/calls/{call_id}/confirm", response_model=CallResponse)
async def confirm_call(
    call_id: str = _call_id_path(),
    booking_service: BookingService = Depends(get_booking_service),
) -> CallResponse:
    """Confirm a requested call; provisions the video room."""
    try:
        call = await asyncio.to_thread(booking_service.confirm, call_id)
        return CallResponse.model_validate(call)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/calls/{call_id}/decline", response_model=CallResponse)
async def decline_call(
    call_id: str = _call_id_path(),
    booking_service: BookingService = Depends(get_booking_service),
) -> CallResponse:
    try:
        call = await asyncio.to_thread(booking_service.decline, call_id)
        return CallResponse.model_validate(call)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/calls/{call_id}/cancel", response_model=CallResponse)
async def cancel_call(
    call_id: str = _call_id_path(),
    cancel_data: CallCancel = Body(...),
    booking_service: BookingService = Depends(get_booking_service),
) -> CallResponse:
    """Cancel a call; the response carries the stamped refund eligibility."""
    try:
        call = await asyncio.to_thread(
            booking_service.cancel, call_id, cancel_data.by_party, cancel_data.reason
        )
        return CallResponse.model_validate(call)
    except DomainException as e:
        handle_domain_exception(e)
