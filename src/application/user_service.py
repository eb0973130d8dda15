import logging

from sqlalchemy.orm import Session

from src.domain.exceptions import ValidationError
from src.infrastructure.repositories.profile_repository import ProfileRepository


logger = logging.getLogger(__name__)


class UserService:
    """Per-user state kept alongside the external identity record."""

    def __init__(self, db: Session):
        self.db = db
        self.profile_repository = ProfileRepository(db)

    def toggle_favorite(self, user_id: str, movie_ref: str) -> list[str]:
        movie_ref = (movie_ref or "").strip()
        if not movie_ref:
            raise ValidationError("movie_id is required")

        profile = self.profile_repository.get_or_create(user_id)
        favorites = list(profile.favorites or [])
        if movie_ref in favorites:
            favorites.remove(movie_ref)
        else:
            favorites.append(movie_ref)

        # JSON columns only track reassignment.
        profile.favorites = favorites
        self.db.flush()
        logger.info("Favorites updated. user_id=%s count=%s", user_id, len(favorites))
        return favorites

    def favorites(self, user_id: str) -> list[str]:
        profile = self.profile_repository.get_by_id(user_id)
        return list(profile.favorites) if profile else []
