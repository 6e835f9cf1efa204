"""VideoRoomService: room provisioning for confirmed calls and sessions.

Room names are deterministic (``call-<id>`` / ``group-<id>``) so a retried
provisioning reuses the same room. Rooms expire a grace period after the
appointment ends. Callers must not hold a scheduling lock while calling in.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Optional

from ..core.config import settings
from ..integrations.daily_client import (
    DailyClient,
    DailyError,
    FakeVideoRoomProvider,
    VideoRoomProvider,
)

logger = logging.getLogger(__name__)

CALL_ROOM_PARTICIPANTS = 2


def call_room_name(call_id: str) -> str:
    return f"call-{call_id}".lower()


def session_room_name(session_id: str) -> str:
    return f"group-{session_id}".lower()


def build_video_provider() -> VideoRoomProvider:
    """Provider selected by ``settings.video_provider``."""
    if settings.video_provider == "daily":
        if settings.daily_api_key is None:
            raise RuntimeError("DAILY_API_KEY must be set when VIDEO_PROVIDER=daily")
        return DailyClient(
            api_key=settings.daily_api_key,
            base_url=settings.daily_api_base_url,
        )
    return FakeVideoRoomProvider()


class VideoRoomService:
    """Thin domain wrapper over a VideoRoomProvider."""

    def __init__(
        self,
        provider: Optional[VideoRoomProvider] = None,
        grace_minutes: Optional[int] = None,
    ) -> None:
        self.provider = provider or build_video_provider()
        self.grace_minutes = (
            grace_minutes if grace_minutes is not None else settings.video_room_grace_minutes
        )

    def _expiry(self, ends_at: datetime) -> datetime:
        return ends_at + timedelta(minutes=self.grace_minutes)

    def provision_call_room(self, call_id: str, ends_at: datetime) -> str:
        """
        Create the room for a call and return its URL.

        Raises:
            DailyError: provider failure; the caller decides whether to proceed
        """
        name = call_room_name(call_id)
        url = self.provider.create_room(
            name, max_participants=CALL_ROOM_PARTICIPANTS, expires_at=self._expiry(ends_at)
        )
        logger.info("video_room_provisioned", extra={"room": name, "subject_id": call_id})
        return url

    def provision_session_room(self, session_id: str, capacity: int, ends_at: datetime) -> str:
        name = session_room_name(session_id)
        # Seats plus the mentor
        url = self.provider.create_room(
            name, max_participants=capacity + 1, expires_at=self._expiry(ends_at)
        )
        logger.info("video_room_provisioned", extra={"room": name, "subject_id": session_id})
        return url

    def release_room(self, name: str) -> None:
        """Best-effort delete of an orphaned room."""
        try:
            self.provider.delete_room(name)
        except DailyError as exc:
            logger.warning(
                "video_room_release_failed",
                extra={"room": name, "error": exc.message, "status_code": exc.status_code},
            )
