from pydantic import BaseModel, Field


class CreateBookingRequest(BaseModel):
    show_id: str
    seats: list[str] = Field(default_factory=list)


class CreateBookingResponse(BaseModel):
    success: bool = True
    booking_id: str
    url: str


class VerifyPaymentRequest(BaseModel):
    session_id: str


class MessageResponse(BaseModel):
    success: bool
    message: str


class ShowResponse(BaseModel):
    id: str
    movie_ref: str
    theatre_ref: str
    start_date_time: str
    price_per_seat: int


class BookingResponse(BaseModel):
    id: str
    user_id: str
    show: ShowResponse
    booked_seats: list[str]
    amount: int
    status: str
    is_paid: bool
    is_cancelled: bool
    payment_link: str | None = None
    refund_amount: int
    cancel_reason: str | None = None
    created_at: str
    cancelled_at: str | None = None


class BookingListResponse(BaseModel):
    success: bool = True
    bookings: list[BookingResponse]


class OccupiedSeatsResponse(BaseModel):
    success: bool = True
    occupied_seats: list[str]


class CancelBookingResponse(BaseModel):
    success: bool = True
    refunded: bool
    refund_amount: int
    message: str


class WebhookAckResponse(BaseModel):
    received: bool = True


class UpdateFavoriteRequest(BaseModel):
    movie_id: str


class FavoritesResponse(BaseModel):
    success: bool = True
    favorites: list[str]


class IsAdminResponse(BaseModel):
    success: bool = True
    is_admin: bool


class ShowWithSeatsResponse(ShowResponse):
    occupied_seats: list[str]


class DashboardData(BaseModel):
    total_bookings: int
    total_revenue: int
    total_users: int
    active_shows: list[ShowWithSeatsResponse]


class DashboardResponse(BaseModel):
    success: bool = True
    dashboard_data: DashboardData
