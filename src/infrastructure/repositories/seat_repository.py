# src/infrastructure/repositories/seat_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from src.infrastructure.db.models import Booking, SeatClaim
from src.domain.exceptions import SeatConflictError


class SeatRepository:
    """
    Seat availability for a show.

    Occupancy is derived from active bookings; seat claims
    mirror it one row per seat so the store can reject a
    concurrent double claim.
    """

    def __init__(self, db: Session):
        self.db = db

    def occupied_seats(self, show_id: str) -> list[str]:
        stmt = (
            select(Booking.booked_seats)
            .where(Booking.show_id == show_id)
            .where(Booking.is_cancelled.is_(False))
            .order_by(Booking.created_at)
        )
        occupied: list[str] = []
        for seats in self.db.execute(stmt).scalars().all():
            occupied.extend(seats)
        return occupied

    def find_conflicts(self, show_id: str, seats: list[str]) -> list[str]:
        occupied = set(self.occupied_seats(show_id))
        return [seat for seat in seats if seat in occupied]

    def claim_seats(
        self,
        show_id: str,
        booking_id: str,
        seats: list[str],
    ) -> None:
        """
        INSERT one claim per seat and flush.
        Raises SeatConflictError when another active booking
        won the race for any of them.
        """
        for seat in seats:
            self.db.add(
                SeatClaim(
                    show_id=show_id,
                    seat_label=seat,
                    booking_id=booking_id,
                )
            )
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            # The winner has committed; report only the seats it took.
            contested = self.find_conflicts(show_id, seats) or seats
            raise SeatConflictError(contested) from exc

    def release_claims(self, booking_id: str) -> int:
        result = self.db.execute(
            delete(SeatClaim).where(SeatClaim.booking_id == booking_id)
        )
        return result.rowcount
