from datetime import timedelta
import logging

from sqlalchemy.orm import Session

from src.domain.exceptions import (
    NotFoundError,
    PaymentProviderError,
    SeatConflictError,
    UnauthenticatedError,
    ValidationError,
)
from src.infrastructure import config
from src.infrastructure.db.models import Booking
from src.infrastructure.payments.razorpay_provider import RazorpayPaymentProvider
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.seat_repository import SeatRepository
from src.infrastructure.repositories.show_repository import ShowRepository
from src.infrastructure.repositories.task_repository import TaskRepository


logger = logging.getLogger(__name__)

RELEASE_UNPAID_BOOKING = "release_unpaid_booking"


def normalize_seats(seats: list[str] | None) -> list[str]:
    labels = [str(seat).strip().upper() for seat in (seats or [])]
    if not labels:
        raise ValidationError("At least one seat must be selected")
    if any(not label for label in labels):
        raise ValidationError("Seat labels must not be blank")
    if len(set(labels)) != len(labels):
        raise ValidationError("Seat labels must be unique")
    return labels


class BookingService:
    """Application service coordinating seat reservation."""

    def __init__(
        self,
        db: Session,
        payment_provider: RazorpayPaymentProvider | None = None,
    ):
        self.db = db
        self.payment_provider = payment_provider
        self.booking_repository = BookingRepository(db)
        self.seat_repository = SeatRepository(db)
        self.show_repository = ShowRepository(db)
        self.task_repository = TaskRepository(db)
        self.reaper_delay = timedelta(minutes=config.REAPER_DELAY_MINUTES)
        self.session_ttl = timedelta(minutes=config.PAYMENT_SESSION_TTL_MINUTES)

    def reserve(
        self,
        show_id: str,
        user_id: str | None,
        seats: list[str],
        origin: str,
    ) -> tuple[Booking, str]:
        if not user_id:
            raise UnauthenticatedError("Please login to book tickets")
        if self.payment_provider is None:
            raise PaymentProviderError("Payment provider is not configured")
        labels = normalize_seats(seats)

        show = self.show_repository.get_by_id(show_id)
        if not show:
            raise NotFoundError("Show not found")

        conflicts = self.seat_repository.find_conflicts(show_id, labels)
        if conflicts:
            raise SeatConflictError(conflicts)

        booking = self.booking_repository.create_booking(
            user_id=user_id,
            show_id=show_id,
            seats=labels,
            amount=show.price_per_seat * len(labels),
        )
        self.db.flush()
        self.seat_repository.claim_seats(show_id, booking.id, labels)

        # The reaper is durable before the provider is called, so a
        # failed session leaves a booking that is still cleaned up.
        self.task_repository.schedule(
            task_name=RELEASE_UNPAID_BOOKING,
            payload={"booking_id": booking.id},
            run_at=booking.created_at + self.reaper_delay,
            dedupe_key=f"{RELEASE_UNPAID_BOOKING}:{booking.id}",
        )
        self.db.commit()
        logger.info(
            "Booking created. booking_id=%s show_id=%s seats=%s amount=%s",
            booking.id,
            show_id,
            labels,
            booking.amount,
        )

        session = self.payment_provider.create_session(
            amount=booking.amount,
            success_url=f"{origin}/my-bookings",
            cancel_url=f"{origin}/my-bookings",
            metadata={
                "booking_id": booking.id,
                "description": f"Booking for show {show_id}",
            },
            expires_at=booking.created_at + self.session_ttl,
        )
        self.booking_repository.attach_payment_session(
            booking,
            session_id=session.session_id,
            url=session.url,
        )
        self.db.commit()
        return booking, session.url

    def occupied_seats(self, show_id: str) -> list[str]:
        if not self.show_repository.get_by_id(show_id):
            raise NotFoundError("Show not found")
        return self.seat_repository.occupied_seats(show_id)

    def list_user_bookings(self, user_id: str | None) -> list[Booking]:
        if not user_id:
            raise UnauthenticatedError("Please login to view bookings")
        return self.booking_repository.list_for_user(user_id)
