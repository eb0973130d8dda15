# src/domain/state_machine.py

from enum import Enum
from typing import Dict, Set

from src.domain.exceptions import InvalidStateTransitionError


class BookingStatus(str, Enum):
    CREATED = "CREATED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class BookingStateMachine:
    """
    Central lifecycle controller for booking transitions.

    A booking is stored as two flags (is_paid, is_cancelled);
    the status is derived from them and every mutation of
    those flags is checked here first.
    """

    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.CREATED: {
            BookingStatus.PAID,
            BookingStatus.CANCELLED,
        },
        BookingStatus.PAID: {
            BookingStatus.CANCELLED,
        },
        BookingStatus.CANCELLED: set(),
    }

    @staticmethod
    def status_of(is_paid: bool, is_cancelled: bool) -> BookingStatus:
        if is_cancelled:
            return BookingStatus.CANCELLED
        if is_paid:
            return BookingStatus.PAID
        return BookingStatus.CREATED

    @classmethod
    def can_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_terminal(cls, status: BookingStatus) -> bool:
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @staticmethod
    def _ensure_valid_status(status: BookingStatus) -> None:
        if not isinstance(status, BookingStatus):
            raise TypeError(
                f"Expected BookingStatus, got {type(status)}"
            )
