# src/infrastructure/repositories/task_repository.py

import json
from datetime import datetime, timedelta

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import ScheduledTask, utcnow


class TaskRepository:

    def __init__(self, db: Session):
        self.db = db

    def schedule(
        self,
        task_name: str,
        payload: dict,
        run_at: datetime,
        dedupe_key: str,
    ) -> ScheduledTask:
        existing = self.get_by_dedupe_key(dedupe_key)
        if existing:
            return existing

        task = ScheduledTask(
            task_name=task_name,
            payload=json.dumps(payload, sort_keys=True),
            run_at=run_at,
            status="PENDING",
            attempts=0,
            dedupe_key=dedupe_key,
        )
        self.db.add(task)
        return task

    def get_by_dedupe_key(self, dedupe_key: str) -> ScheduledTask | None:
        stmt = select(ScheduledTask).where(ScheduledTask.dedupe_key == dedupe_key)
        return self.db.execute(stmt).scalar_one_or_none()

    def due_task_ids(self, now: datetime, limit: int) -> list[str]:
        stmt = (
            select(ScheduledTask.id)
            .where(ScheduledTask.status == "PENDING")
            .where(ScheduledTask.run_at <= now)
            .order_by(ScheduledTask.run_at)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def lock_pending(self, task_id: str) -> ScheduledTask | None:
        """
        SELECT ... FOR UPDATE SKIP LOCKED
        Another worker already holding the row makes this return None.
        """
        stmt = (
            select(ScheduledTask)
            .where(ScheduledTask.id == task_id)
            .where(ScheduledTask.status == "PENDING")
            .with_for_update(skip_locked=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def mark_done(self, task: ScheduledTask) -> None:
        task.status = "DONE"
        task.attempts += 1
        task.completed_at = utcnow()

    def mark_retry(
        self,
        task: ScheduledTask,
        error: str,
        now: datetime,
        retry_delay_seconds: int,
        max_attempts: int,
    ) -> None:
        task.attempts += 1
        task.last_error = error
        if task.attempts >= max_attempts:
            task.status = "FAILED"
            return
        task.run_at = now + timedelta(seconds=retry_delay_seconds * task.attempts)
