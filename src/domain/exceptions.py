class BookingEngineError(Exception):
    """
    Base exception for all domain-level errors
    inside the Showtime Booking Engine.
    """

    status_code = 400


class UnauthenticatedError(BookingEngineError):
    """Raised when the request carries no identity."""

    status_code = 401


class UnauthorizedError(BookingEngineError):
    """Raised when the caller does not own the resource or lacks a role."""

    status_code = 403


class NotFoundError(BookingEngineError):
    """Raised when a show or booking does not exist."""

    status_code = 404


class SeatConflictError(BookingEngineError):
    """Raised when a requested seat is already claimed by an active booking."""

    status_code = 409

    def __init__(self, seats: list[str]):
        self.seats = seats
        super().__init__(
            f"Selected seats are not available: {', '.join(seats)}"
        )


class InvalidStateTransitionError(BookingEngineError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    status_code = 409

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class ValidationError(BookingEngineError):
    """Raised when a required field is missing or malformed."""

    status_code = 400


class PaymentProviderError(BookingEngineError):
    """Raised when the payment provider call fails."""

    status_code = 502


class SignatureInvalidError(BookingEngineError):
    """Raised when a webhook signature does not match the shared secret."""

    status_code = 400
