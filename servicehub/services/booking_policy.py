"""
Cancellation / modification window policy.

Advisory predicates evaluated against wall-clock time. Callers check them
before asking the state machine for a transition; the state machine does not
re-derive them.
"""
from datetime import datetime, timedelta
from typing import Optional

from servicehub.lib.clock import slot_start, utcnow
from servicehub.lib.config_flags import get_booking_policy
from servicehub.models.bookings import Booking, BookingStatus

CANCELLABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})
MODIFIABLE_STATUSES = frozenset({BookingStatus.PENDING})


def scheduled_start(booking: Booking) -> datetime:
    return slot_start(booking.scheduled_date, booking.start_time)


def cancellation_deadline(booking: Booking) -> datetime:
    """Last instant (exclusive) at which the booking may still be cancelled."""
    hours = get_booking_policy().cancellation_window_hours
    return scheduled_start(booking) - timedelta(hours=hours)


def modification_deadline(booking: Booking) -> datetime:
    hours = get_booking_policy().modification_window_hours
    return scheduled_start(booking) - timedelta(hours=hours)


def is_cancellable(booking: Booking, now: Optional[datetime] = None) -> bool:
    """Status is pending/confirmed and more than the cancellation window remains before start."""
    now = now or utcnow()
    return booking.status in CANCELLABLE_STATUSES and now < cancellation_deadline(booking)


def is_modifiable(booking: Booking, now: Optional[datetime] = None) -> bool:
    """Status is pending and more than the modification window remains before start."""
    now = now or utcnow()
    return booking.status in MODIFIABLE_STATUSES and now < modification_deadline(booking)
