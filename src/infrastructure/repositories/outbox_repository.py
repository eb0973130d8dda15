# src/infrastructure/repositories/outbox_repository.py

import json

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import OutboxEvent, utcnow


class OutboxRepository:

    def __init__(self, db: Session):
        self.db = db

    def add_event(
        self,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict,
        dedupe_key: str,
    ) -> bool:
        """Returns False when an event with the same dedupe key already exists."""
        existing = self.db.execute(
            select(OutboxEvent).where(OutboxEvent.dedupe_key == dedupe_key)
        ).scalar_one_or_none()
        if existing:
            return False

        self.db.add(
            OutboxEvent(
                aggregate_type=aggregate_type,
                aggregate_id=aggregate_id,
                event_type=event_type,
                payload=json.dumps(payload, sort_keys=True),
                dedupe_key=dedupe_key,
                status="PENDING",
                attempts=0,
            )
        )
        return True

    def pending(self, limit: int) -> list[OutboxEvent]:
        stmt = (
            select(OutboxEvent)
            .where(OutboxEvent.status == "PENDING")
            .order_by(OutboxEvent.created_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list(self.db.execute(stmt).scalars().all())

    def mark_published(self, event: OutboxEvent) -> None:
        event.status = "PUBLISHED"
        event.published_at = utcnow()
        event.attempts += 1

    def mark_failed_attempt(
        self,
        event: OutboxEvent,
        error: str,
        max_attempts: int,
    ) -> None:
        event.attempts += 1
        event.last_error = error
        if event.attempts >= max_attempts:
            event.status = "FAILED"
