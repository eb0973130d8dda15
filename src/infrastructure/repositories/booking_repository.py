# src/infrastructure/repositories/booking_repository.py

from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import func, select, update

from src.infrastructure.db.models import Booking, utcnow


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_user(self, user_id: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_all(self) -> list[Booking]:
        stmt = select(Booking).order_by(Booking.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def paid_totals(self) -> tuple[int, int]:
        """Count and revenue of paid bookings that are still active."""
        stmt = (
            select(func.count(Booking.id), func.coalesce(func.sum(Booking.amount), 0))
            .where(Booking.is_paid.is_(True))
            .where(Booking.is_cancelled.is_(False))
        )
        count, revenue = self.db.execute(stmt).one()
        return int(count), int(revenue)

    def create_booking(
        self,
        user_id: str,
        show_id: str,
        seats: list[str],
        amount: int,
    ) -> Booking:

        booking = Booking(
            user_id=user_id,
            show_id=show_id,
            booked_seats=list(seats),
            amount=amount,
            is_paid=False,
            is_cancelled=False,
            refund_amount=0,
            created_at=utcnow(),
        )

        self.db.add(booking)
        return booking

    def attach_payment_session(
        self,
        booking: Booking,
        session_id: str,
        url: str,
    ) -> None:

        booking.payment_session_id = session_id
        booking.payment_link = url

    def mark_paid_if_unpaid(
        self,
        booking_id: str,
        session_id: str | None,
        payment_ref: str | None,
    ) -> bool:
        """
        Conditional UPDATE; returns True only for the caller
        whose write flipped is_paid.
        """
        values = {"is_paid": True, "payment_link": None}
        if session_id:
            values["payment_session_id"] = session_id
        if payment_ref:
            values["payment_session_ref"] = payment_ref

        stmt = (
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.is_paid.is_(False))
            .where(Booking.is_cancelled.is_(False))
            .values(**values)
        )
        result = self.db.execute(
            stmt.execution_options(synchronize_session=False)
        )
        self._expire_cached(booking_id)
        return result.rowcount == 1

    def mark_cancelled(
        self,
        booking_id: str,
        reason: str,
        refund_amount: int = 0,
        expected_paid: bool | None = None,
        cancelled_at: datetime | None = None,
    ) -> bool:
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.is_cancelled.is_(False))
        )
        if expected_paid is not None:
            stmt = stmt.where(Booking.is_paid.is_(expected_paid))

        stmt = stmt.values(
            is_cancelled=True,
            cancel_reason=reason,
            refund_amount=refund_amount,
            payment_link=None,
            cancelled_at=cancelled_at or utcnow(),
        )
        result = self.db.execute(
            stmt.execution_options(synchronize_session=False)
        )
        self._expire_cached(booking_id)
        return result.rowcount == 1

    def _expire_cached(self, booking_id: str) -> None:
        # Conditional UPDATEs bypass the identity map; reload on next access.
        key = self.db.identity_key(Booking, booking_id)
        cached = self.db.identity_map.get(key)
        if cached is not None:
            self.db.expire(cached)
