import logging
from typing import Callable

from sqlalchemy.orm import Session

from src.application.payment_reconciliation import PaymentReconciliationService
from src.domain.exceptions import PaymentProviderError
from src.domain.state_machine import BookingStatus
from src.infrastructure.payments.razorpay_provider import RazorpayPaymentProvider
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.seat_repository import SeatRepository


logger = logging.getLogger(__name__)

EXPIRED = "EXPIRED"


class ExpiryReaper:
    """
    Releases the seats of a booking that was never paid.

    Runs once per booking from the task scheduler, which may
    deliver the same task more than once; every step is a
    no-op on a booking that is already paid or cancelled.
    """

    def __init__(
        self,
        db: Session,
        payment_provider: RazorpayPaymentProvider | None = None,
    ):
        self.db = db
        self.payment_provider = payment_provider
        self.booking_repository = BookingRepository(db)
        self.seat_repository = SeatRepository(db)

    def release_if_unpaid(self, booking_id: str) -> bool:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            logger.info("Reaper skipped missing booking. booking_id=%s", booking_id)
            return False
        if booking.status != BookingStatus.CREATED:
            return False

        if self._paid_at_provider(booking.id, booking.payment_session_id):
            return False

        released = self.booking_repository.mark_cancelled(
            booking.id,
            reason=EXPIRED,
            expected_paid=False,
        )
        if not released:
            return False

        self.seat_repository.release_claims(booking.id)
        self.db.flush()
        logger.info(
            "Released unpaid booking. booking_id=%s seats=%s",
            booking.id,
            booking.booked_seats,
        )

        if booking.payment_session_id and self.payment_provider is not None:
            try:
                self.payment_provider.cancel_session(booking.payment_session_id)
            except PaymentProviderError:
                logger.warning(
                    "Could not cancel payment session %s for released booking %s",
                    booking.payment_session_id,
                    booking.id,
                )
        return True

    def _paid_at_provider(self, booking_id: str, session_id: str | None) -> bool:
        # A missed webhook must not cost a paying customer their seats.
        if not session_id or self.payment_provider is None:
            return False
        try:
            session = self.payment_provider.get_session(session_id)
        except PaymentProviderError:
            logger.warning(
                "Could not fetch payment session %s before release; releasing anyway",
                session_id,
            )
            return False
        if not session.is_paid:
            return False

        reconciliation = PaymentReconciliationService(self.db, self.payment_provider)
        return reconciliation.confirm_payment(booking_id, session_id, session.payment_ref)


def make_release_handler(
    provider_factory: Callable[[], RazorpayPaymentProvider | None],
) -> Callable[[Session, dict], None]:
    def handle(db: Session, payload: dict) -> None:
        ExpiryReaper(db, provider_factory()).release_if_unpaid(payload["booking_id"])

    return handle
