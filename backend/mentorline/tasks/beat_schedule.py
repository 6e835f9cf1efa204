# backend/mentorline/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for Mentorline.

Every state transition driven by time (completion, request expiry, quorum
deadline, room provisioning retries, reminders) is a periodic sweep. Sweeps
are idempotent, so a missed or duplicated beat is harmless.
"""

from datetime import timedelta
from typing import Any

from celery.schedules import crontab

SWEEP_EVERY_FIVE_MINUTES = crontab(minute="*/5")

CELERYBEAT_SCHEDULE: dict[str, dict[str, Any]] = {
    "complete-calls": {
        "task": "scheduling.complete_calls",
        "schedule": SWEEP_EVERY_FIVE_MINUTES,
        "options": {"queue": "scheduling", "priority": 5},
    },
    "expire-requested-calls": {
        "task": "scheduling.expire_requested_calls",
        "schedule": SWEEP_EVERY_FIVE_MINUTES,
        "options": {"queue": "scheduling", "priority": 6},
    },
    "sweep-quorum-deadline": {
        "task": "scheduling.sweep_quorum_deadline",
        "schedule": SWEEP_EVERY_FIVE_MINUTES,
        "options": {"queue": "scheduling", "priority": 7},
    },
    "complete-group-sessions": {
        "task": "scheduling.complete_group_sessions",
        "schedule": SWEEP_EVERY_FIVE_MINUTES,
        "options": {"queue": "scheduling", "priority": 5},
    },
    "provision-missing-rooms": {
        "task": "scheduling.provision_missing_rooms",
        "schedule": SWEEP_EVERY_FIVE_MINUTES,
        "options": {"queue": "scheduling", "priority": 6},
    },
    "dispatch-due-reminders": {
        "task": "reminders.dispatch_due",
        "schedule": crontab(minute="*"),
        "options": {"queue": "notifications", "priority": 8},
    },
}

# Schedule configuration for different environments
SCHEDULE_CONFIG: dict[str, dict[str, dict[str, Any]]] = {
    "production": {},
    "testing": {
        "dispatch-due-reminders": {
            "task": "reminders.dispatch_due",
            "schedule": timedelta(seconds=30),
            "options": {"queue": "notifications", "priority": 8},
        },
    },
}


def get_beat_schedule(environment: str = "production") -> dict[str, dict[str, Any]]:
    """
    Get the beat schedule for the specified environment.

    Args:
        environment: The environment name (production, development, testing)

    Returns:
        Mapping of task name to Celery beat configuration dict
    """
    base: dict[str, dict[str, Any]] = dict(CELERYBEAT_SCHEDULE)
    overrides = SCHEDULE_CONFIG.get(environment)
    if overrides:
        base.update(overrides)
    return base
