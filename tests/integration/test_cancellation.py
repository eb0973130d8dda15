import pytest

from src.application.cancellation_service import CancellationService
from src.application.payment_reconciliation import PaymentReconciliationService
from src.infrastructure.db.models import OutboxEvent
from src.infrastructure.db.session import SessionLocal
from tests.helpers import auth, load_booking


def _reserve(client, show_id, seats=("A1", "A2"), user_id="user1"):
    response = client.post(
        "/bookings/create",
        json={"show_id": show_id, "seats": list(seats)},
        headers=auth(user_id),
    )
    assert response.status_code == 200
    return response.json()["booking_id"]


def _pay(client, payment_provider, session_id="plink_1"):
    payment_provider.pay(session_id)
    response = client.post("/bookings/verify", json={"session_id": session_id})
    assert response.json()["success"] is True


def _cancel(client, booking_id, user_id="user1"):
    return client.post(f"/bookings/{booking_id}/cancel", headers=auth(user_id))


def _occupied(client, show_id):
    return client.get(f"/bookings/seats/{show_id}").json()["occupied_seats"]


def test_cancel_unpaid_booking_releases_seats(client, show, payment_provider):
    booking_id = _reserve(client, show.id)

    response = _cancel(client, booking_id)

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "refunded": False,
        "refund_amount": 0,
        "message": "Booking cancelled",
    }
    booking = load_booking(booking_id)
    assert booking.is_cancelled
    assert booking.cancel_reason == "USER_CANCELLED"
    assert booking.cancelled_at is not None
    assert _occupied(client, show.id) == []
    assert payment_provider.refunds == []
    assert payment_provider.cancelled == ["plink_1"]


def test_cancel_paid_booking_refunds_full_amount(client, show, payment_provider):
    booking_id = _reserve(client, show.id)
    _pay(client, payment_provider)

    response = _cancel(client, booking_id)

    assert response.status_code == 200
    body = response.json()
    assert body["refunded"] is True
    assert body["refund_amount"] == 400
    assert payment_provider.refunds == [("pay_plink_1", 400)]

    booking = load_booking(booking_id)
    assert booking.is_cancelled
    assert booking.refund_amount == 400
    assert _occupied(client, show.id) == []

    with SessionLocal() as db:
        event = (
            db.query(OutboxEvent)
            .filter(OutboxEvent.event_type == "BOOKING_CANCELLED")
            .one()
        )
        assert event.aggregate_id == booking_id
        assert '"refund_amount": 400' in event.payload


def test_refund_failure_still_cancels(client, show, payment_provider):
    booking_id = _reserve(client, show.id)
    _pay(client, payment_provider)
    payment_provider.fail_refund = True

    response = _cancel(client, booking_id)

    assert response.status_code == 200
    body = response.json()
    assert body["refunded"] is False
    assert body["refund_amount"] == 0
    assert body["message"] == "Booking cancelled; refund could not be issued"
    booking = load_booking(booking_id)
    assert booking.is_cancelled
    assert booking.refund_amount == 0
    assert _occupied(client, show.id) == []


def test_cannot_cancel_someone_elses_booking(client, show):
    booking_id = _reserve(client, show.id)

    response = _cancel(client, booking_id, user_id="user2")

    assert response.status_code == 403
    assert not load_booking(booking_id).is_cancelled
    assert sorted(_occupied(client, show.id)) == ["A1", "A2"]


def test_cancel_requires_identity(client, show):
    booking_id = _reserve(client, show.id)

    response = client.post(f"/bookings/{booking_id}/cancel")

    assert response.status_code == 401
    assert not load_booking(booking_id).is_cancelled


def test_cancel_unknown_booking(client):
    assert _cancel(client, "missing-booking").status_code == 404


def test_second_cancel_is_rejected(client, show, payment_provider):
    booking_id = _reserve(client, show.id)
    _pay(client, payment_provider)
    assert _cancel(client, booking_id).status_code == 200

    response = _cancel(client, booking_id)

    assert response.status_code == 409
    assert payment_provider.refunds == [("pay_plink_1", 400)]


def test_cancelled_booking_cannot_be_paid(client, show, payment_provider):
    booking_id = _reserve(client, show.id)
    assert _cancel(client, booking_id).status_code == 200

    payment_provider.pay("plink_1")
    response = client.post("/bookings/verify", json={"session_id": "plink_1"})

    assert response.json()["success"] is False
    booking = load_booking(booking_id)
    assert booking.is_cancelled
    assert not booking.is_paid


def test_cancel_unpaid_closes_payment_link(client, show, payment_provider):
    booking_id = _reserve(client, show.id, seats=("A1",))
    assert _cancel(client, booking_id).status_code == 200

    assert payment_provider.cancelled == ["plink_1"]
    assert payment_provider.sessions["plink_1"]["status"] == "cancelled"


def test_cancel_unpaid_proceeds_when_link_cannot_be_closed(client, show, payment_provider):
    booking_id = _reserve(client, show.id)
    payment_provider.fail_cancel = True

    response = _cancel(client, booking_id)

    assert response.status_code == 200
    assert load_booking(booking_id).is_cancelled
    assert _occupied(client, show.id) == []


def test_cancel_paid_booking_without_payment_reference(client, show, payment_provider):
    booking_id = _reserve(client, show.id)
    with SessionLocal() as db:
        service = PaymentReconciliationService(db, payment_provider)
        assert service.confirm_payment(booking_id, "plink_1", None)
        db.commit()

    response = _cancel(client, booking_id)

    assert response.status_code == 200
    body = response.json()
    assert body["refunded"] is False
    assert body["refund_amount"] == 0
    assert body["message"] == "Booking cancelled; refund could not be issued"
    booking = load_booking(booking_id)
    assert booking.is_cancelled
    assert booking.refund_amount == 0
    assert _occupied(client, show.id) == []
    assert payment_provider.refunds == []
    assert payment_provider.cancelled == []


def test_cancellation_is_committed_before_refund_call(client, show, payment_provider, monkeypatch):
    booking_id = _reserve(client, show.id)
    _pay(client, payment_provider)

    def crash(payment_ref, amount):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(payment_provider, "refund", crash)

    with SessionLocal() as db:
        with pytest.raises(RuntimeError):
            CancellationService(db, payment_provider).cancel(booking_id, "user1")
        db.rollback()

    booking = load_booking(booking_id)
    assert booking.is_cancelled
    assert booking.cancel_reason == "USER_CANCELLED"
    assert booking.refund_amount == 0
    assert _occupied(client, show.id) == []
