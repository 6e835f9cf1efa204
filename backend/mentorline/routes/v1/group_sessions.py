# backend/mentorline/routes/v1/group_sessions.py
"""
Group session routes - API v1

Quorum-gated multi-seat sessions. All business logic delegated to
GroupSessionService.

Endpoints:
    POST /group-sessions - Schedule a session
    GET /group-sessions/{session_id} - Session details
    PATCH /group-sessions/{session_id} - Edit a SCHEDULED session
    POST /group-sessions/{session_id}/join - Take a seat
    DELETE /group-sessions/{session_id}/participants/{consumer_id} - Give up a seat
    POST /group-sessions/{session_id}/cancel - Mentor cancels (everyone refunded)
    GET /group-sessions/{session_id}/participants - Seat holders
    GET /mentors/{mentor_id}/group-sessions - Sessions of a mentor
"""

import asyncio
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from fastapi.params import Path

from ...api.dependencies import get_group_session_service
from ...core.exceptions import DomainException
from ...schemas.group_session import (
    GroupSessionCreate,
    GroupSessionJoin,
    GroupSessionResponse,
    GroupSessionUpdate,
    JoinResponse,
    ParticipantResponse,
)
from ...services.group_session_service import GroupSessionService

logger = logging.getLogger(__name__)

# V1 router - mounted under /api/v1 in main.py
router = APIRouter(tags=["group-sessions-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _session_id_path() -> Path:
    return Path(
        ...,
        description="Group session ULID",
        pattern=ULID_PATH_PATTERN,
        examples=["01HF4G12ABCDEF3456789XYZAB"],
    )


@router.post(
    "/group-sessions",
    response_model=GroupSessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_group_session(
    payload: GroupSessionCreate = Body(...),
    group_session_service: GroupSessionService = Depends(get_group_session_service),
) -> GroupSessionResponse:
    try:
        session = await asyncio.to_thread(
            group_session_service.create,
            mentor_id=payload.mentor_id,
            scheduled_at=payload.scheduled_at,
            duration_minutes=payload.duration_minutes,
            max_capacity=payload.max_capacity,
            min_attendees=payload.min_attendees,
            price_per_person=payload.price_per_person,
            title=payload.title,
            description=payload.description,
            free_for_subscribers=payload.free_for_subscribers,
        )
        return GroupSessionResponse.model_validate(session)
    except DomainException as e:
        handle_domain_exception(e)


@router.get(
    "/group-sessions/{session_id}",
    response_model=GroupSessionResponse,
    responses={404: {"description": "Group session not found"}},
)
async def get_group_session(
    session_id: str = _session_id_path(),
    group_session_service: GroupSessionService = Depends(get_group_session_service),
) -> GroupSessionResponse:
    try:
        session = await asyncio.to_thread(group_session_service.get_session, session_id)
        return GroupSessionResponse.model_validate(session)
    except DomainException as e:
        handle_domain_exception(e)


@router.patch("/group-sessions/{session_id}", response_model=GroupSessionResponse)
async def edit_group_session(
    session_id: str = _session_id_path(),
    payload: GroupSessionUpdate = Body(...),
    group_session_service: GroupSessionService = Depends(get_group_session_service),
) -> GroupSessionResponse:
    """Date and duration can only change while nobody has joined."""
    try:
        session = await asyncio.to_thread(
            group_session_service.edit,
            session_id,
            scheduled_at=payload.scheduled_at,
            duration_minutes=payload.duration_minutes,
            title=payload.title,
            description=payload.description,
        )
        return GroupSessionResponse.model_validate(session)
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/group-sessions/{session_id}/join",
    response_model=JoinResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Session full or already joined"}},
)
async def join_group_session(
    session_id: str = _session_id_path(),
    payload: GroupSessionJoin = Body(...),
    group_session_service: GroupSessionService = Depends(get_group_session_service),
) -> JoinResponse:
    """
    Take a seat.

    The join that reaches the quorum confirms the session; the response then
    includes the video room URL.
    """
    try:
        result = await asyncio.to_thread(
            group_session_service.join, session_id, payload.consumer_id
        )
        return JoinResponse(
            session=GroupSessionResponse.model_validate(result.session),
            participant=ParticipantResponse.model_validate(result.participant),
            quorum_reached=result.quorum_reached,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.delete(
    "/group-sessions/{session_id}/participants/{consumer_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def leave_group_session(
    consumer_id: str,
    session_id: str = _session_id_path(),
    group_session_service: GroupSessionService = Depends(get_group_session_service),
) -> Response:
    try:
        await asyncio.to_thread(
            group_session_service.cancel_by_participant, session_id, consumer_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/group-sessions/{session_id}/cancel", response_model=GroupSessionResponse)
async def cancel_group_session(
    session_id: str = _session_id_path(),
    group_session_service: GroupSessionService = Depends(get_group_session_service),
) -> GroupSessionResponse:
    try:
        session = await asyncio.to_thread(group_session_service.cancel_by_mentor, session_id)
        return GroupSessionResponse.model_validate(session)
    except DomainException as e:
        handle_domain_exception(e)


@router.get(
    "/group-sessions/{session_id}/participants",
    response_model=List[ParticipantResponse],
)
async def list_group_session_participants(
    session_id: str = _session_id_path(),
    group_session_service: GroupSessionService = Depends(get_group_session_service),
) -> List[ParticipantResponse]:
    try:
        participants = await asyncio.to_thread(
            group_session_service.list_participants, session_id
        )
        return [ParticipantResponse.model_validate(p) for p in participants]
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/mentors/{mentor_id}/group-sessions", response_model=List[GroupSessionResponse])
async def list_mentor_group_sessions(
    mentor_id: str,
    session_status: Optional[str] = Query(None, alias="status"),
    open_only: bool = Query(False, description="Only future sessions with free seats"),
    group_session_service: GroupSessionService = Depends(get_group_session_service),
) -> List[GroupSessionResponse]:
    if open_only:
        sessions = await asyncio.to_thread(group_session_service.list_open_sessions, mentor_id)
    else:
        sessions = await asyncio.to_thread(
            group_session_service.list_sessions_for_mentor, mentor_id, session_status
        )
    return [GroupSessionResponse.model_validate(s) for s in sessions]
