# backend/mentorline/tasks/scheduling_tasks.py
"""
Periodic scheduling sweeps.

Each task opens its own database session, builds the service with the
configured collaborators and the system clock, and returns the sweep counts.
"""

from contextlib import contextmanager
from typing import Dict, Iterator

from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..services.booking_service import BookingService
from ..services.group_session_service import GroupSessionService
from .celery_app import celery_app

logger = get_task_logger(__name__)


@contextmanager
def _session_scope() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@celery_app.task(name="scheduling.complete_calls")  # type: ignore[misc]
def complete_calls() -> Dict[str, int]:
    with _session_scope() as db:
        result = BookingService(db).mark_completed()
    logger.info("complete_calls finished", extra=result.as_dict())
    return result.as_dict()


@celery_app.task(name="scheduling.expire_requested_calls")  # type: ignore[misc]
def expire_requested_calls() -> Dict[str, int]:
    with _session_scope() as db:
        result = BookingService(db).expire_stale_requests()
    logger.info("expire_requested_calls finished", extra=result.as_dict())
    return result.as_dict()


@celery_app.task(name="scheduling.sweep_quorum_deadline")  # type: ignore[misc]
def sweep_quorum_deadline() -> Dict[str, int]:
    with _session_scope() as db:
        result = GroupSessionService(db).sweep_quorum_deadline()
    logger.info("sweep_quorum_deadline finished", extra=result.as_dict())
    return result.as_dict()


@celery_app.task(name="scheduling.complete_group_sessions")  # type: ignore[misc]
def complete_group_sessions() -> Dict[str, int]:
    with _session_scope() as db:
        result = GroupSessionService(db).mark_completed()
    logger.info("complete_group_sessions finished", extra=result.as_dict())
    return result.as_dict()


@celery_app.task(name="scheduling.provision_missing_rooms")  # type: ignore[misc]
def provision_missing_rooms() -> Dict[str, Dict[str, int]]:
    """Retry video rooms for confirmed calls and sessions that have none."""
    with _session_scope() as db:
        calls = BookingService(db).provision_missing_rooms()
        sessions = GroupSessionService(db).provision_missing_rooms()
    if calls.failed or sessions.failed:
        logger.warning(
            "provision_missing_rooms had failures",
            extra={"call_failures": calls.failed, "session_failures": sessions.failed},
        )
    return {"calls": calls.as_dict(), "group_sessions": sessions.as_dict()}
