# src/infrastructure/repositories/profile_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import UserProfile


class ProfileRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str) -> UserProfile | None:
        stmt = select(UserProfile).where(UserProfile.id == user_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_or_create(self, user_id: str) -> UserProfile:
        profile = self.get_by_id(user_id)
        if profile:
            return profile

        profile = UserProfile(id=user_id, role="user", favorites=[])
        self.db.add(profile)
        self.db.flush()
        return profile
