# backend/mentorline/tasks/reminder_tasks.py
"""Reminder dispatch task."""

from typing import Dict, Optional

from celery.utils.log import get_task_logger

from ..services.reminder_service import ReminderService
from .celery_app import celery_app
from .scheduling_tasks import _session_scope

logger = get_task_logger(__name__)


@celery_app.task(name="reminders.dispatch_due")  # type: ignore[misc]
def dispatch_due(limit: Optional[int] = None) -> Dict[str, int]:
    """Deliver due reminders; failed jobs stay pending for the next run."""
    with _session_scope() as db:
        result = ReminderService(db).dispatch(limit=limit)
    if result.failed:
        logger.warning("Reminder dispatch had failures", extra=result.as_dict())
    return result.as_dict()
