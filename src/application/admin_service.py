from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from src.infrastructure.db.models import Booking, utcnow
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.seat_repository import SeatRepository
from src.infrastructure.repositories.show_repository import ShowRepository


class AdminService:
    """Read-only views for the back office."""

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.seat_repository = SeatRepository(db)
        self.show_repository = ShowRepository(db)

    def all_bookings(self) -> list[Booking]:
        return self.booking_repository.list_all()

    def upcoming_shows(self) -> list[dict]:
        return [
            {
                "show": show,
                "occupied_seats": self.seat_repository.occupied_seats(show.id),
            }
            for show in self.show_repository.list_upcoming(utcnow())
        ]

    def dashboard(self) -> dict:
        total_bookings, total_revenue = self.booking_repository.paid_totals()
        total_users = self.db.execute(
            select(func.count(distinct(Booking.user_id)))
        ).scalar_one()
        return {
            "total_bookings": total_bookings,
            "total_revenue": total_revenue,
            "total_users": int(total_users),
            "active_shows": self.upcoming_shows(),
        }
