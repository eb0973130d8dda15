from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from src.infrastructure.db.models import Base, Show, UserProfile
from src.infrastructure.db.session import engine, get_db_session


def _dt(days_from_now: int, hour: int, minute: int) -> datetime:
    ist = timezone(timedelta(hours=5, minutes=30))
    now_ist = datetime.now(ist)
    target = now_ist + timedelta(days=days_from_now)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


def seed_shows(db) -> None:
    show_defs = [
        {
            "movie_ref": "tmdb:1022789",
            "theatre_ref": "pvr-select-citywalk",
            "start_date_time": _dt(days_from_now=1, hour=18, minute=30),
            "price_per_seat": 250,
        },
        {
            "movie_ref": "tmdb:1022789",
            "theatre_ref": "pvr-select-citywalk",
            "start_date_time": _dt(days_from_now=1, hour=21, minute=45),
            "price_per_seat": 300,
        },
        {
            "movie_ref": "tmdb:533535",
            "theatre_ref": "inox-nehru-place",
            "start_date_time": _dt(days_from_now=2, hour=14, minute=0),
            "price_per_seat": 180,
        },
    ]

    for item in show_defs:
        existing = db.execute(
            select(Show)
            .where(Show.movie_ref == item["movie_ref"])
            .where(Show.theatre_ref == item["theatre_ref"])
            .where(Show.start_date_time == item["start_date_time"])
        ).scalar_one_or_none()
        if existing:
            existing.price_per_seat = item["price_per_seat"]
            continue
        db.add(Show(**item))


def seed_admin(db, user_id: str = "admin") -> None:
    profile = db.execute(
        select(UserProfile).where(UserProfile.id == user_id)
    ).scalar_one_or_none()
    if profile:
        profile.role = "admin"
        return
    db.add(UserProfile(id=user_id, role="admin", favorites=[]))


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_db_session() as db:
        seed_shows(db)
        seed_admin(db)
    print("Seed complete: 3 shows and an admin profile added.")


if __name__ == "__main__":
    main()
