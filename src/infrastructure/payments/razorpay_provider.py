# src/infrastructure/payments/razorpay_provider.py

from dataclasses import dataclass, field
from datetime import datetime
import json
import logging
from typing import Any, Callable, Mapping

import razorpay
from razorpay.errors import SignatureVerificationError

from src.infrastructure import config
from src.domain.exceptions import (
    PaymentProviderError,
    SignatureInvalidError,
    ValidationError,
)


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-razorpay-signature"
PAID_EVENT = "payment_link.paid"


@dataclass
class PaymentSession:
    session_id: str
    url: str


@dataclass
class SessionStatus:
    session_id: str
    status: str
    payment_ref: str | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"


@dataclass
class WebhookEvent:
    event_type: str
    session_id: str | None = None
    payment_ref: str | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.event_type == PAID_EVENT


def _notes(entity: Mapping[str, Any]) -> dict:
    # Razorpay serialises empty notes as [] rather than {}.
    notes = entity.get("notes")
    return dict(notes) if isinstance(notes, dict) else {}


class RazorpayPaymentProvider:
    """
    Payment sessions backed by Razorpay Payment Links.

    A payment link is the hosted checkout page: it carries the
    booking id in its notes, expires on its own, and is the unit
    that webhooks and status polling report on.
    """

    def __init__(self, key_id: str, key_secret: str, currency: str = "INR"):
        self.client = razorpay.Client(auth=(key_id, key_secret))
        self.currency = currency

    def _call(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception as exc:
            logger.warning("Razorpay %s failed: %s", operation, exc)
            raise PaymentProviderError(f"Payment provider {operation} failed: {exc}") from exc

    def create_session(
        self,
        amount: int,
        success_url: str,
        cancel_url: str,
        metadata: dict,
        expires_at: datetime,
    ) -> PaymentSession:
        notes = {key: str(value) for key, value in metadata.items()}
        notes["cancel_url"] = cancel_url
        data = {
            "amount": amount * 100,
            "currency": self.currency,
            "accept_partial": False,
            "description": metadata.get("description", "Movie ticket booking"),
            "expire_by": int(expires_at.timestamp()),
            "notes": notes,
            "callback_url": success_url,
            "callback_method": "get",
        }
        if "booking_id" in metadata:
            data["reference_id"] = str(metadata["booking_id"])

        link = self._call("create_session", self.client.payment_link.create, data)
        return PaymentSession(session_id=link["id"], url=link["short_url"])

    def get_session(self, session_id: str) -> SessionStatus:
        link = self._call("get_session", self.client.payment_link.fetch, session_id)
        payments = link.get("payments") or []
        payment_ref = payments[-1].get("payment_id") if payments else None
        return SessionStatus(
            session_id=link.get("id", session_id),
            status=link.get("status", "unknown"),
            payment_ref=payment_ref,
            metadata=_notes(link),
        )

    def refund(self, payment_ref: str, amount: int) -> dict:
        return self._call(
            "refund",
            self.client.payment.refund,
            payment_ref,
            {"amount": amount * 100},
        )

    def cancel_session(self, session_id: str) -> None:
        self._call("cancel_session", self.client.payment_link.cancel, session_id)

    def verify_webhook_signature(
        self,
        payload: bytes,
        headers: Mapping[str, str],
        secret: str | None,
    ) -> WebhookEvent:
        normalized = {key.lower(): value for key, value in headers.items()}
        signature = normalized.get(SIGNATURE_HEADER)
        if not signature or not secret:
            raise SignatureInvalidError("Missing webhook signature or secret")

        body = payload.decode("utf-8")
        try:
            self.client.utility.verify_webhook_signature(body, signature, secret)
        except SignatureVerificationError as exc:
            raise SignatureInvalidError("Invalid webhook signature") from exc

        try:
            event = json.loads(body)
        except ValueError as exc:
            raise ValidationError("Webhook payload is not valid JSON") from exc

        payload_section = event.get("payload") or {}
        link = (payload_section.get("payment_link") or {}).get("entity") or {}
        payment = (payload_section.get("payment") or {}).get("entity") or {}
        return WebhookEvent(
            event_type=event.get("event", ""),
            session_id=link.get("id"),
            payment_ref=payment.get("id"),
            metadata=_notes(link),
        )


def build_payment_provider() -> RazorpayPaymentProvider | None:
    if not config.RAZORPAY_KEY_ID or not config.RAZORPAY_KEY_SECRET:
        return None
    return RazorpayPaymentProvider(
        key_id=config.RAZORPAY_KEY_ID,
        key_secret=config.RAZORPAY_KEY_SECRET,
        currency=config.PAYMENT_CURRENCY,
    )
