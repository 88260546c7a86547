"""
Booking model - reservations of a provider's service by a customer, plus their status history.
"""
from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Uuid,
    Enum as SQLEnum,
    CheckConstraint,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.lib.db import Base


class BookingStatus(str, enum.Enum):
    """
    Booking status state machine.

    pending → confirmed | declined | cancelled
    confirmed → in_progress | cancelled | no_show
    in_progress → completed
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DECLINED = "declined"
    NO_SHOW = "no_show"


# Statuses that reserve the (provider, date, start) slot
OCCUPYING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

# Statuses with no further transitions
TERMINAL_STATUSES = frozenset({
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.DECLINED,
    BookingStatus.NO_SHOW,
})


class PaymentMethod(str, enum.Enum):
    """Payment method recorded on the booking (no settlement happens here)."""
    CASH = "cash"
    ONLINE = "online"
    BANK_TRANSFER = "bank_transfer"


class LocationType(str, enum.Enum):
    CUSTOMER_ADDRESS = "customer_address"
    PROVIDER_ADDRESS = "provider_address"
    CUSTOM = "custom"


def _enum(enum_cls, name):
    return SQLEnum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


def make_slot_key(provider_id: UUID, scheduled_date: date, start_time: str) -> str:
    """Storage key of an occupied slot; unique across the bookings table."""
    return f"{provider_id}|{scheduled_date.isoformat()}|{start_time}"


class Booking(Base):
    """
    Booking entity - service appointments.

    slot_key is set while the booking is in an occupying status and NULL otherwise;
    its UNIQUE constraint is the authoritative double-booking guard.
    """
    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    booking_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    # Relationships
    customer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    service_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Schedule
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    duration_estimated: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    duration_actual: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    slot_key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Location
    location_type: Mapped[LocationType] = mapped_column(
        _enum(LocationType, "location_type"),
        nullable=False,
        default=LocationType.CUSTOMER_ADDRESS,
    )
    location_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    location_instructions: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Commercial terms
    agreed_amount: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    payment_method: Mapped[PaymentMethod] = mapped_column(
        _enum(PaymentMethod, "payment_method"),
        nullable=False,
        default=PaymentMethod.CASH,
    )

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        _enum(BookingStatus, "booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )

    # Notes
    customer_notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    provider_notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Cancellation block (only while cancelled)
    cancelled_by: Mapped[Optional[UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Completion block (only while completed)
    completed_by: Mapped[Optional[UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    is_reviewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("agreed_amount >= 0", name="booking_amount_non_negative"),
        UniqueConstraint("slot_key", name="uq_bookings_slot_key"),
        Index("ix_bookings_provider_date", "provider_id", "scheduled_date"),
        Index("ix_bookings_customer_status", "customer_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Booking(code={self.booking_code}, status={self.status}, customer_id={self.customer_id})>"


class BookingStatusEvent(Base):
    """
    Append-only history of status changes for a booking.
    from_status is NULL for the creation event.
    """
    __tablename__ = "booking_status_events"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    booking_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status: Mapped[Optional[BookingStatus]] = mapped_column(
        _enum(BookingStatus, "booking_status"),
        nullable=True,
    )
    to_status: Mapped[BookingStatus] = mapped_column(
        _enum(BookingStatus, "booking_status"),
        nullable=False,
    )
    actor_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<BookingStatusEvent(booking_id={self.booking_id}, {self.from_status} -> {self.to_status})>"
