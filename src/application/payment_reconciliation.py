import logging
from typing import Mapping

from sqlalchemy.orm import Session

from src.domain.exceptions import ValidationError
from src.infrastructure.notifications import BOOKING_CONFIRMED
from src.infrastructure.payments.razorpay_provider import RazorpayPaymentProvider
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.outbox_repository import OutboxRepository


logger = logging.getLogger(__name__)


class PaymentReconciliationService:
    """
    Aligns booking payment state with the payment provider.

    Client polling (verify_session) and provider webhooks
    (handle_webhook) may both fire for the same payment, in any
    order and any number of times. Both funnel into
    confirm_payment, whose conditional update lets exactly one
    caller flip is_paid and write the confirmation event.
    """

    def __init__(self, db: Session, payment_provider: RazorpayPaymentProvider):
        self.db = db
        self.payment_provider = payment_provider
        self.booking_repository = BookingRepository(db)
        self.outbox_repository = OutboxRepository(db)

    def verify_session(self, session_id: str) -> bool:
        if not session_id:
            raise ValidationError("session_id is required")

        session = self.payment_provider.get_session(session_id)
        if not session.is_paid:
            logger.info(
                "Payment session not paid yet. session_id=%s status=%s",
                session_id,
                session.status,
            )
            return False

        booking_id = session.metadata.get("booking_id")
        if not booking_id:
            logger.warning("Paid session without booking id. session_id=%s", session_id)
            return False

        return self.confirm_payment(booking_id, session_id, session.payment_ref)

    def handle_webhook(
        self,
        payload: bytes,
        headers: Mapping[str, str],
        secret: str | None,
    ) -> bool:
        event = self.payment_provider.verify_webhook_signature(payload, headers, secret)
        logger.info("Payment webhook received. event=%s", event.event_type)

        if not event.is_completed:
            logger.info("Unhandled webhook event type: %s", event.event_type)
            return False

        booking_id = event.metadata.get("booking_id")
        if not booking_id:
            logger.warning(
                "Completed payment without booking id. session_id=%s",
                event.session_id,
            )
            return False

        return self.confirm_payment(booking_id, event.session_id, event.payment_ref)

    def confirm_payment(
        self,
        booking_id: str,
        session_id: str | None,
        payment_ref: str | None,
    ) -> bool:
        """
        Returns True when the booking is paid after this call,
        whether or not this call performed the transition.
        """
        transitioned = self.booking_repository.mark_paid_if_unpaid(
            booking_id,
            session_id=session_id,
            payment_ref=payment_ref,
        )
        booking = self.booking_repository.get_by_id(booking_id)

        if booking is None:
            logger.warning("Payment confirmed for unknown booking. booking_id=%s", booking_id)
            return False

        if not transitioned:
            if booking.is_cancelled and not booking.is_paid:
                logger.warning(
                    "Payment arrived for released booking. booking_id=%s payment_ref=%s",
                    booking_id,
                    payment_ref,
                )
            return booking.is_paid

        self.outbox_repository.add_event(
            aggregate_type="booking",
            aggregate_id=booking.id,
            event_type=BOOKING_CONFIRMED,
            payload={
                "booking_id": booking.id,
                "user_id": booking.user_id,
                "show_id": booking.show_id,
                "show_time": booking.show.start_date_time.isoformat(),
                "seats": list(booking.booked_seats),
                "amount": booking.amount,
                "payment_ref": payment_ref,
            },
            dedupe_key=f"booking:{booking.id}:confirmed",
        )
        self.db.flush()
        logger.info("Booking paid. booking_id=%s session_id=%s", booking.id, session_id)
        return True
