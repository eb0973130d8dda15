# src/infrastructure/identity.py

from typing import Mapping

from sqlalchemy.orm import Session

from src.infrastructure.repositories.profile_repository import ProfileRepository


USER_ID_HEADER = "x-user-id"


class HeaderIdentityOracle:
    """
    Identity supplied by the upstream auth proxy.

    The proxy authenticates the caller and forwards the user id
    in a header; an absent or blank header means anonymous.
    """

    def __init__(self, admin_user_ids: list[str] | None = None):
        self.admin_user_ids = set(admin_user_ids or [])

    def resolve(self, headers: Mapping[str, str]) -> str | None:
        user_id = headers.get(USER_ID_HEADER) or headers.get(USER_ID_HEADER.title())
        if not user_id or not user_id.strip():
            return None
        return user_id.strip()

    def is_admin(self, db: Session, user_id: str) -> bool:
        if user_id in self.admin_user_ids:
            return True
        profile = ProfileRepository(db).get_by_id(user_id)
        return bool(profile and profile.role == "admin")
