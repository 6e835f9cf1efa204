# backend/mentorline/repositories/group_session_repository.py
"""
Group Session Repository for Mentorline

Sessions and their participant rows. ``participant_count`` on the session is
updated by the service in the same transaction as the participant rows.
"""

from datetime import datetime, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.group_session import (
    GroupSession,
    GroupSessionParticipant,
    GroupSessionStatus,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class GroupSessionRepository(BaseRepository[GroupSession]):
    """Repository for GroupSession rows."""

    def __init__(self, db: Session):
        super().__init__(db, GroupSession)

    def list_open_for_mentor(
        self, mentor_id: str, now: datetime, exclude_id: Optional[str] = None
    ) -> List[GroupSession]:
        """Future SCHEDULED or CONFIRMED sessions of the mentor with a free seat."""
        query = self._build_query().filter(
            GroupSession.mentor_id == mentor_id,
            GroupSession.status.in_(
                (GroupSessionStatus.SCHEDULED.value, GroupSessionStatus.CONFIRMED.value)
            ),
            GroupSession.scheduled_at > now,
            GroupSession.participant_count < GroupSession.max_capacity,
        )
        if exclude_id:
            query = query.filter(GroupSession.id != exclude_id)
        return self._execute_query(query.order_by(GroupSession.scheduled_at))

    def list_for_mentor(self, mentor_id: str, status: Optional[str] = None) -> List[GroupSession]:
        query = self._build_query().filter(GroupSession.mentor_id == mentor_id)
        if status:
            query = query.filter(GroupSession.status == status)
        return self._execute_query(query.order_by(GroupSession.scheduled_at))

    def get_quorum_candidates(
        self, now: datetime, quorum_window: timedelta, limit: int
    ) -> List[GroupSession]:
        """
        SCHEDULED sessions whose quorum deadline has passed without quorum.

        The deadline is ``scheduled_at - quorum_window``, so the filter is on
        ``scheduled_at <= now + quorum_window``.
        """
        query = (
            self._build_query()
            .filter(
                GroupSession.status == GroupSessionStatus.SCHEDULED.value,
                GroupSession.scheduled_at <= now + quorum_window,
                GroupSession.participant_count < GroupSession.min_attendees,
            )
            .order_by(GroupSession.scheduled_at)
            .limit(limit)
        )
        return self._execute_query(query)

    def get_confirmed_started_before(self, cutoff: datetime, limit: int) -> List[GroupSession]:
        query = (
            self._build_query()
            .filter(
                GroupSession.status == GroupSessionStatus.CONFIRMED.value,
                GroupSession.scheduled_at < cutoff,
            )
            .order_by(GroupSession.scheduled_at)
            .limit(limit)
        )
        return self._execute_query(query)

    def get_confirmed_without_room(self, now: datetime, limit: int) -> List[GroupSession]:
        """CONFIRMED sessions still lacking a video room that have not ended."""
        query = (
            self._build_query()
            .filter(
                GroupSession.status == GroupSessionStatus.CONFIRMED.value,
                GroupSession.video_room_url.is_(None),
                GroupSession.scheduled_at > now - timedelta(hours=24),
            )
            .order_by(GroupSession.scheduled_at)
            .limit(limit)
        )
        return [s for s in self._execute_query(query) if s.ends_at > now]


class GroupSessionParticipantRepository(BaseRepository[GroupSessionParticipant]):
    """Repository for GroupSessionParticipant rows."""

    def __init__(self, db: Session):
        super().__init__(db, GroupSessionParticipant)

    def get_participant(self, session_id: str, consumer_id: str) -> Optional[GroupSessionParticipant]:
        return self.find_one_by(session_id=session_id, consumer_id=consumer_id)

    def list_for_session(self, session_id: str) -> List[GroupSessionParticipant]:
        query = (
            self._build_query()
            .filter(GroupSessionParticipant.session_id == session_id)
            .order_by(GroupSessionParticipant.joined_at, GroupSessionParticipant.id)
        )
        return self._execute_query(query)

    def mark_all_refund_eligible(self, session_id: str) -> int:
        """Flag every participant of the session as refund-eligible."""
        participants = self.list_for_session(session_id)
        for participant in participants:
            participant.refund_eligible = True
        self.flush()
        return len(participants)
