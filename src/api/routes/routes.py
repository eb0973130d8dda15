import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from src.api.dependencies import (
    get_current_user_id,
    get_db,
    get_payment_provider,
    request_origin,
)
from src.api.schemas.schemas import (
    BookingListResponse,
    BookingResponse,
    CancelBookingResponse,
    CreateBookingRequest,
    CreateBookingResponse,
    FavoritesResponse,
    MessageResponse,
    OccupiedSeatsResponse,
    ShowResponse,
    UpdateFavoriteRequest,
    VerifyPaymentRequest,
    WebhookAckResponse,
)
from src.application.booking_service import BookingService
from src.application.cancellation_service import CancellationService
from src.application.payment_reconciliation import PaymentReconciliationService
from src.application.user_service import UserService
from src.infrastructure import config
from src.infrastructure.db.models import Booking, Show
from src.infrastructure.payments.razorpay_provider import RazorpayPaymentProvider


router = APIRouter()
logger = logging.getLogger(__name__)


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def show_response(show: Show) -> ShowResponse:
    return ShowResponse(
        id=show.id,
        movie_ref=show.movie_ref,
        theatre_ref=show.theatre_ref,
        start_date_time=show.start_date_time.isoformat(),
        price_per_seat=show.price_per_seat,
    )


def booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        user_id=booking.user_id,
        show=show_response(booking.show),
        booked_seats=list(booking.booked_seats),
        amount=booking.amount,
        status=booking.status.value,
        is_paid=booking.is_paid,
        is_cancelled=booking.is_cancelled,
        payment_link=booking.payment_link,
        refund_amount=booking.refund_amount,
        cancel_reason=booking.cancel_reason,
        created_at=booking.created_at.isoformat(),
        cancelled_at=_iso(booking.cancelled_at),
    )


@router.get("/health")
def health():
    return {"message": "Showtime Booking Engine is running"}


@router.post("/bookings/create", response_model=CreateBookingResponse)
def create_booking(
    request: CreateBookingRequest,
    user_id: str = Depends(get_current_user_id),
    origin: str = Depends(request_origin),
    provider: RazorpayPaymentProvider = Depends(get_payment_provider),
    db: Session = Depends(get_db),
):
    booking, url = BookingService(db, provider).reserve(
        show_id=request.show_id,
        user_id=user_id,
        seats=request.seats,
        origin=origin,
    )
    return CreateBookingResponse(booking_id=booking.id, url=url)


@router.get("/bookings/seats/{show_id}", response_model=OccupiedSeatsResponse)
def get_occupied_seats(show_id: str, db: Session = Depends(get_db)):
    return OccupiedSeatsResponse(
        occupied_seats=BookingService(db).occupied_seats(show_id),
    )


@router.get("/bookings/my-bookings", response_model=BookingListResponse)
def get_user_bookings(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    bookings = BookingService(db).list_user_bookings(user_id)
    return BookingListResponse(bookings=[booking_response(b) for b in bookings])


@router.post("/bookings/verify", response_model=MessageResponse)
def verify_payment(
    request: VerifyPaymentRequest,
    provider: RazorpayPaymentProvider = Depends(get_payment_provider),
    db: Session = Depends(get_db),
):
    verified = PaymentReconciliationService(db, provider).verify_session(request.session_id)
    if verified:
        return MessageResponse(success=True, message="Payment verified")
    return MessageResponse(success=False, message="Payment not verified")


@router.post("/bookings/{booking_id}/cancel", response_model=CancelBookingResponse)
def cancel_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    provider: RazorpayPaymentProvider = Depends(get_payment_provider),
    db: Session = Depends(get_db),
):
    result = CancellationService(db, provider).cancel(booking_id, user_id)
    if result.refunded:
        message = "Booking cancelled and refund issued"
    elif result.booking.is_paid:
        message = "Booking cancelled; refund could not be issued"
    else:
        message = "Booking cancelled"
    return CancelBookingResponse(
        refunded=result.refunded,
        refund_amount=result.refund_amount,
        message=message,
    )


@router.post("/payments/webhook", response_model=WebhookAckResponse)
async def payment_webhook(
    request: Request,
    provider: RazorpayPaymentProvider = Depends(get_payment_provider),
    db: Session = Depends(get_db),
):
    # Signature is computed over the exact bytes the provider sent.
    payload = await request.body()
    service = PaymentReconciliationService(db, provider)
    await run_in_threadpool(
        service.handle_webhook,
        payload,
        dict(request.headers),
        config.RAZORPAY_WEBHOOK_SECRET,
    )
    return WebhookAckResponse()


@router.post("/user/update-favorite", response_model=FavoritesResponse)
def update_favorite(
    request: UpdateFavoriteRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return FavoritesResponse(
        favorites=UserService(db).toggle_favorite(user_id, request.movie_id),
    )


@router.get("/user/favorites", response_model=FavoritesResponse)
def get_favorites(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return FavoritesResponse(favorites=UserService(db).favorites(user_id))
