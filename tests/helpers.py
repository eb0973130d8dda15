import hashlib
import hmac
import json

from src.domain.exceptions import PaymentProviderError
from src.infrastructure.db.models import Booking
from src.infrastructure.db.session import SessionLocal
from src.infrastructure.payments.razorpay_provider import (
    PaymentSession,
    RazorpayPaymentProvider,
    SessionStatus,
)


WEBHOOK_SECRET = "whsec_test"


class FakePaymentProvider(RazorpayPaymentProvider):
    """
    In-memory payment links. Webhook signatures go through
    the real Razorpay verification inherited from the parent.
    """

    def __init__(self):
        super().__init__("rzp_test_key", "rzp_test_secret")
        self.sessions: dict[str, dict] = {}
        self.refunds: list[tuple[str, int]] = []
        self.cancelled: list[str] = []
        self.fail_create = False
        self.fail_get = False
        self.fail_refund = False
        self.fail_cancel = False

    def create_session(self, amount, success_url, cancel_url, metadata, expires_at):
        if self.fail_create:
            raise PaymentProviderError("Payment provider create_session failed: boom")
        session_id = f"plink_{len(self.sessions) + 1}"
        self.sessions[session_id] = {
            "status": "created",
            "amount": amount,
            "metadata": {key: str(value) for key, value in metadata.items()},
            "payment_ref": None,
            "expires_at": expires_at,
            "success_url": success_url,
        }
        return PaymentSession(session_id=session_id, url=f"https://rzp.io/l/{session_id}")

    def pay(self, session_id: str) -> str:
        session = self.sessions[session_id]
        session["status"] = "paid"
        session["payment_ref"] = f"pay_{session_id}"
        return session["payment_ref"]

    def get_session(self, session_id):
        if self.fail_get or session_id not in self.sessions:
            raise PaymentProviderError("Payment provider get_session failed")
        session = self.sessions[session_id]
        return SessionStatus(
            session_id=session_id,
            status=session["status"],
            payment_ref=session["payment_ref"],
            metadata=dict(session["metadata"]),
        )

    def refund(self, payment_ref, amount):
        if self.fail_refund:
            raise PaymentProviderError("Payment provider refund failed")
        self.refunds.append((payment_ref, amount))
        return {"id": f"rfnd_{payment_ref}", "amount": amount * 100}

    def cancel_session(self, session_id):
        if self.fail_cancel:
            raise PaymentProviderError("Payment provider cancel_session failed")
        self.cancelled.append(session_id)
        if session_id in self.sessions:
            self.sessions[session_id]["status"] = "cancelled"


def signed_webhook(
    session_id: str,
    booking_id: str,
    payment_ref: str,
    event: str = "payment_link.paid",
    secret: str = WEBHOOK_SECRET,
) -> tuple[str, dict]:
    body = json.dumps(
        {
            "event": event,
            "payload": {
                "payment_link": {
                    "entity": {
                        "id": session_id,
                        "status": "paid",
                        "notes": {"booking_id": booking_id},
                    }
                },
                "payment": {"entity": {"id": payment_ref, "status": "captured"}},
            },
        }
    )
    signature = hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()
    return body, {
        "X-Razorpay-Signature": signature,
        "Content-Type": "application/json",
    }


def auth(user_id: str) -> dict:
    return {"X-User-Id": user_id, "Origin": "http://localhost:5173"}


def load_booking(booking_id: str) -> Booking | None:
    with SessionLocal() as db:
        return db.get(Booking, booking_id)

