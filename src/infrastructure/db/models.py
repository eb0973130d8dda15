# src/infrastructure/db/models.py

from sqlalchemy import (
    JSON,
    Boolean,
    String,
    Integer,
    DateTime,
    Text,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime, timezone
from uuid import uuid4

from src.infrastructure.db.session import Base
from src.domain.state_machine import BookingStateMachine, BookingStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Show(Base):
    __tablename__ = "shows"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    movie_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    theatre_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    start_date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    price_per_seat: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("price_per_seat >= 0", name="ck_show_price_nonnegative"),
    )


class Booking(Base):
    """
    Booking table. The row itself is the seat hold:
    it is created unpaid at seat selection time and
    only ever moves to paid or cancelled.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    show_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("shows.id"),
        nullable=False,
    )
    booked_seats: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_link: Mapped[str | None] = mapped_column(String(512), nullable=True)
    payment_session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_session_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    refund_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cancel_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    show: Mapped[Show] = relationship(lazy="joined")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_booking_amount_nonnegative"),
        CheckConstraint("refund_amount >= 0", name="ck_booking_refund_nonnegative"),
        Index("ix_bookings_show_active", "show_id", "is_cancelled"),
        Index("ix_bookings_user_created", "user_id", "created_at"),
    )

    @property
    def status(self) -> BookingStatus:
        return BookingStateMachine.status_of(self.is_paid, self.is_cancelled)


class SeatClaim(Base):
    """
    One row per seat held by an active booking.
    The unique constraint is what makes two concurrent
    reservations of the same seat fail atomically.
    """

    __tablename__ = "seat_claims"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    show_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("shows.id"),
        nullable=False,
    )
    seat_label: Mapped[str] = mapped_column(String(16), nullable=False)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("show_id", "seat_label", name="uq_seat_claim_show_seat"),
        Index("ix_seat_claims_booking", "booking_id"),
    )


class ScheduledTask(Base):
    __tablename__ = "scheduled_tasks"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    task_name: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    dedupe_key: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_scheduled_task_dedupe_key"),
        Index("ix_scheduled_tasks_due", "status", "run_at"),
    )


class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    aggregate_type: Mapped[str] = mapped_column(String(64), nullable=False)
    aggregate_id: Mapped[str] = mapped_column(String(36), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    dedupe_key: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_outbox_dedupe_key"),
    )


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="user")
    favorites: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
