"""
Typed outcomes of the booking engine.

Each error is an expected, user-facing result. They derive from the API's
application exceptions so the registered handler renders them with their
context (statuses, slot, deadline) instead of a generic 500.
"""
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from servicehub.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
)


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


class SlotConflict(ConflictException):
    code = "slot_conflict"

    def __init__(self, provider_id: UUID, scheduled_date: date, start_time: str):
        super().__init__(
            "This time slot is already booked",
            details={
                "provider_id": str(provider_id),
                "scheduled_date": _iso(scheduled_date),
                "start_time": start_time,
            },
        )


class PastDate(BadRequestException):
    code = "past_date"

    def __init__(self, scheduled_at: datetime, now: datetime):
        super().__init__(
            "Booking time must be in the future",
            details={"scheduled_at": _iso(scheduled_at), "now": _iso(now)},
        )


class SelfBooking(BadRequestException):
    code = "self_booking"

    def __init__(self, service_id: UUID):
        super().__init__(
            "You cannot book your own service",
            details={"service_id": str(service_id)},
        )


class InvalidTransition(ConflictException):
    code = "invalid_transition"

    def __init__(self, current_status: str, attempted_status: str, actor_role: str):
        super().__init__(
            f"Cannot change booking status from '{current_status}' to '{attempted_status}'",
            details={
                "current_status": current_status,
                "attempted_status": attempted_status,
                "actor_role": actor_role,
            },
        )


class WindowExpired(BadRequestException):
    code = "window_expired"

    def __init__(self, action: str, current_status: str, deadline: Optional[datetime]):
        super().__init__(
            f"Booking can no longer be {action}",
            details={
                "action": action,
                "current_status": current_status,
                "deadline": _iso(deadline),
            },
        )


class AlreadyReviewed(ConflictException):
    code = "already_reviewed"

    def __init__(self, booking_id: UUID):
        super().__init__(
            "Review already exists for this booking",
            details={"booking_id": str(booking_id)},
        )


class NotCompleted(BadRequestException):
    code = "not_completed"

    def __init__(self, booking_id: UUID, current_status: str):
        super().__init__(
            "You can only review completed bookings",
            details={"booking_id": str(booking_id), "current_status": current_status},
        )


class NotEditable(BadRequestException):
    code = "not_editable"

    def __init__(self, review_id: UUID, editable_until: Optional[datetime]):
        super().__init__(
            "Review is no longer editable",
            details={"review_id": str(review_id), "editable_until": _iso(editable_until)},
        )


class NotFound(NotFoundException):
    def __init__(self, resource: str, resource_id=None):
        super().__init__(resource, str(resource_id) if resource_id is not None else None)


class Forbidden(ForbiddenException):
    def __init__(self, reason: str):
        super().__init__(reason, details={"reason": reason})
