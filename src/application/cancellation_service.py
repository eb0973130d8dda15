from dataclasses import dataclass
import logging

from sqlalchemy.orm import Session

from src.domain.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    PaymentProviderError,
    UnauthenticatedError,
    UnauthorizedError,
)
from src.domain.state_machine import BookingStateMachine, BookingStatus
from src.infrastructure.db.models import Booking
from src.infrastructure.notifications import BOOKING_CANCELLED
from src.infrastructure.payments.razorpay_provider import RazorpayPaymentProvider
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.outbox_repository import OutboxRepository
from src.infrastructure.repositories.seat_repository import SeatRepository


logger = logging.getLogger(__name__)

USER_CANCELLED = "USER_CANCELLED"


@dataclass
class CancellationResult:
    booking: Booking
    refunded: bool
    refund_amount: int


class CancellationService:

    def __init__(
        self,
        db: Session,
        payment_provider: RazorpayPaymentProvider | None = None,
    ):
        self.db = db
        self.payment_provider = payment_provider
        self.booking_repository = BookingRepository(db)
        self.seat_repository = SeatRepository(db)
        self.outbox_repository = OutboxRepository(db)

    def cancel(self, booking_id: str, user_id: str | None) -> CancellationResult:
        if not user_id:
            raise UnauthenticatedError("Please login to cancel bookings")

        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        if booking.user_id != user_id:
            raise UnauthorizedError("You can only cancel your own bookings")

        from_status = booking.status
        BookingStateMachine.validate_transition(from_status, BookingStatus.CANCELLED)
        was_paid = booking.is_paid

        # Guarded on the paid flag we read, so a payment confirmed
        # in between is never cancelled without a refund attempt.
        cancelled = self.booking_repository.mark_cancelled(
            booking.id,
            reason=USER_CANCELLED,
            expected_paid=was_paid,
        )
        if not cancelled:
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=BookingStatus.CANCELLED.value,
            )
        self.seat_repository.release_claims(booking.id)
        # Committed before any provider call.
        self.db.commit()

        if was_paid:
            refund_amount = self._refund(booking)
        else:
            refund_amount = 0
            self._close_payment_session(booking)
        booking.refund_amount = refund_amount

        self.outbox_repository.add_event(
            aggregate_type="booking",
            aggregate_id=booking.id,
            event_type=BOOKING_CANCELLED,
            payload={
                "booking_id": booking.id,
                "user_id": booking.user_id,
                "show_id": booking.show_id,
                "show_time": booking.show.start_date_time.isoformat(),
                "theatre_ref": booking.show.theatre_ref,
                "seats": list(booking.booked_seats),
                "amount": booking.amount,
                "was_paid": was_paid,
                "refund_amount": refund_amount,
            },
            dedupe_key=f"booking:{booking.id}:cancelled",
        )
        self.db.flush()
        logger.info(
            "Booking cancelled. booking_id=%s was_paid=%s refund_amount=%s",
            booking.id,
            was_paid,
            refund_amount,
        )
        return CancellationResult(
            booking=booking,
            refunded=refund_amount > 0,
            refund_amount=refund_amount,
        )

    def _refund(self, booking: Booking) -> int:
        if not booking.payment_session_ref or self.payment_provider is None:
            logger.warning(
                "No payment instrument to refund. booking_id=%s",
                booking.id,
            )
            return 0
        try:
            self.payment_provider.refund(booking.payment_session_ref, booking.amount)
        except PaymentProviderError:
            logger.warning(
                "Refund failed; cancelling without refund. booking_id=%s",
                booking.id,
            )
            return 0
        logger.info(
            "Refund issued. booking_id=%s payment_ref=%s amount=%s",
            booking.id,
            booking.payment_session_ref,
            booking.amount,
        )
        return booking.amount

    def _close_payment_session(self, booking: Booking) -> None:
        # The link stays payable until it is cancelled at the provider.
        if not booking.payment_session_id or self.payment_provider is None:
            return
        try:
            self.payment_provider.cancel_session(booking.payment_session_id)
        except PaymentProviderError:
            logger.warning(
                "Could not cancel payment session %s for cancelled booking %s",
                booking.payment_session_id,
                booking.id,
            )
