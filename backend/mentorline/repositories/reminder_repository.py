# backend/mentorline/repositories/reminder_repository.py
"""
Repository for reminder jobs.

Scheduling is an idempotent insert on ``(subject_id, kind)``; dispatch
fetches due jobs, locking them on PostgreSQL so concurrent dispatchers skip
each other's rows.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, List, Optional, cast

from sqlalchemy import Select, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from ..core.ulid_helper import generate_ulid
from ..database.session_utils import get_dialect_name
from ..models.reminder import ReminderJob

logger = logging.getLogger(__name__)


class ReminderRepository:
    """Data access helpers for reminder job rows."""

    def __init__(self, db: Session):
        self.db = db
        self._dialect = get_dialect_name(db, default="postgresql").lower()

    # ------------------------------------------------------------------ enqueue
    def enqueue(
        self,
        subject_id: str,
        subject_type: str,
        kind: str,
        due_at: datetime,
        created_at: Optional[datetime] = None,
    ) -> ReminderJob:
        """
        Insert a reminder job unless one already exists for ``(subject_id, kind)``.

        Returns the persisted row (existing or newly created).
        """
        values: dict[str, Any] = {
            "id": generate_ulid(),
            "subject_id": subject_id,
            "subject_type": subject_type,
            "kind": kind,
            "due_at": due_at,
            "attempt_count": 0,
        }
        if created_at is not None:
            values["created_at"] = created_at

        inserted = False
        if self._dialect == "postgresql":
            stmt = (
                pg_insert(ReminderJob)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["subject_id", "kind"])
                .returning(ReminderJob.id)
            )
            inserted = self.db.execute(stmt).scalar_one_or_none() is not None
        else:
            stmt = insert(ReminderJob).values(**values)
            if self._dialect == "sqlite":
                stmt = stmt.prefix_with("OR IGNORE")
            result = self.db.execute(stmt)
            inserted = bool(getattr(result, "rowcount", 0))

        if inserted:
            self.db.flush()
            row = cast(Optional[ReminderJob], self.db.get(ReminderJob, values["id"]))
            if row is None:
                raise RuntimeError("Inserted reminder row could not be reloaded")
            return row

        existing = self.get_for_subject_kind(subject_id, kind)
        if existing is None:
            raise RuntimeError("Reminder row not found after enqueue conflict")
        return existing

    # ---------------------------------------------------------------- fetchers
    def get_for_subject_kind(self, subject_id: str, kind: str) -> Optional[ReminderJob]:
        result = self.db.execute(
            select(ReminderJob).where(
                ReminderJob.subject_id == subject_id, ReminderJob.kind == kind
            )
        )
        return cast(Optional[ReminderJob], result.scalar_one_or_none())

    def list_for_subject(self, subject_id: str) -> List[ReminderJob]:
        result = self.db.execute(
            select(ReminderJob)
            .where(ReminderJob.subject_id == subject_id)
            .order_by(ReminderJob.due_at.asc())
        )
        return cast(List[ReminderJob], result.scalars().all())

    def fetch_due_ids(self, now: datetime, limit: int = 200) -> List[str]:
        """Ids of unfired, uncancelled jobs whose due time has arrived, oldest first."""
        stmt: Select[Any] = (
            select(ReminderJob.id)
            .where(ReminderJob.fired_at.is_(None))
            .where(ReminderJob.cancelled_at.is_(None))
            .where(ReminderJob.due_at <= now)
            .order_by(ReminderJob.due_at.asc(), ReminderJob.id.asc())
            .limit(limit)
        )
        return [str(job_id) for job_id in self.db.execute(stmt).scalars().all()]

    def claim(self, job_id: str) -> Optional[ReminderJob]:
        """
        Re-read a job for delivery if it is still pending.

        On PostgreSQL the row is locked and rows held by another dispatcher
        are skipped (None).
        """
        stmt: Select[Any] = (
            select(ReminderJob)
            .where(ReminderJob.id == job_id)
            .where(ReminderJob.fired_at.is_(None))
            .where(ReminderJob.cancelled_at.is_(None))
            .execution_options(populate_existing=True)
        )
        if self._dialect == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)
        return cast(Optional[ReminderJob], self.db.execute(stmt).scalar_one_or_none())

    # ----------------------------------------------------------------- updates
    def cancel_pending_for_subject(self, subject_id: str, cancelled_at: datetime) -> int:
        """Stamp ``cancelled_at`` on every unfired job of the subject."""
        result = self.db.execute(
            update(ReminderJob)
            .where(ReminderJob.subject_id == subject_id)
            .where(ReminderJob.fired_at.is_(None))
            .where(ReminderJob.cancelled_at.is_(None))
            .values(cancelled_at=cancelled_at)
            .execution_options(synchronize_session="fetch")
        )
        return int(getattr(result, "rowcount", 0) or 0)
