# src/infrastructure/repositories/show_repository.py

from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import Show


class ShowRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, show_id: str) -> Show | None:
        stmt = select(Show).where(Show.id == show_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_upcoming(self, now: datetime) -> list[Show]:
        stmt = (
            select(Show)
            .where(Show.start_date_time >= now)
            .order_by(Show.start_date_time)
        )
        return list(self.db.execute(stmt).scalars().all())
