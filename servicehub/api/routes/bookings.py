"""
Booking Routes - customer and provider booking lifecycle.

Provides:
- POST /bookings: Create a booking (customer)
- GET /bookings: List own bookings (all bookings for admins)
- GET /bookings/{id}: Booking details
- GET /bookings/{id}/history: Status change history
- GET /bookings/{id}/eligibility: Cancellation / modification windows
- PUT /bookings/{id}/status: Apply a status transition
- POST /bookings/{id}/cancel: Customer cancellation within the window
- PATCH /bookings/{id}: Customer modification within the window
"""
from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from servicehub.api.dependencies import get_current_actor, get_db, require_customer
from servicehub.models.bookings import BookingStatus, LocationType, PaymentMethod
from servicehub.services.booking_policy import (
    CANCELLABLE_STATUSES,
    MODIFIABLE_STATUSES,
    cancellation_deadline,
    modification_deadline,
)
from servicehub.services.booking_service import BookingLocation, BookingService
from servicehub.services.booking_state_machine import Actor


router = APIRouter(prefix="/bookings", tags=["bookings"])

HHMM_PATTERN = r"^\d{2}:\d{2}$"


# Request models
class LocationPayload(BaseModel):
    type: LocationType = LocationType.CUSTOMER_ADDRESS
    address: Optional[str] = Field(None, max_length=500)
    instructions: Optional[str] = Field(None, max_length=500)

    def to_location(self) -> BookingLocation:
        return BookingLocation(type=self.type, address=self.address, instructions=self.instructions)


class BookingCreateRequest(BaseModel):
    service_id: UUID
    scheduled_date: date
    start_time: str = Field(pattern=HHMM_PATTERN, description="Slot start, HH:MM")
    customer_notes: Optional[str] = Field(None, max_length=500)
    location: Optional[LocationPayload] = None
    payment_method: PaymentMethod = PaymentMethod.CASH


class BookingStatusUpdateRequest(BaseModel):
    status: BookingStatus
    notes: Optional[str] = Field(None, max_length=500)


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingModifyRequest(BaseModel):
    scheduled_date: Optional[date] = None
    start_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    customer_notes: Optional[str] = Field(None, max_length=500)
    location: Optional[LocationPayload] = None


# Response models
class BookingResponse(BaseModel):
    id: UUID
    booking_code: str
    customer_id: UUID
    provider_id: UUID
    service_id: UUID
    scheduled_date: date
    start_time: str
    end_time: Optional[str] = None
    duration_estimated: Optional[int] = None
    duration_actual: Optional[int] = None
    location_type: LocationType
    location_address: Optional[str] = None
    location_instructions: Optional[str] = None
    agreed_amount: float
    currency: str
    payment_method: PaymentMethod
    status: BookingStatus
    customer_notes: Optional[str] = None
    provider_notes: Optional[str] = None
    cancelled_by: Optional[UUID] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    completed_by: Optional[UUID] = None
    completed_at: Optional[datetime] = None
    is_reviewed: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingListResponse(BaseModel):
    """Paginated booking list response."""
    bookings: List[BookingResponse]
    total: int
    page: int
    page_size: int
    has_next: bool


class BookingEventResponse(BaseModel):
    from_status: Optional[BookingStatus] = None
    to_status: BookingStatus
    actor_id: UUID
    actor_role: str
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingEligibilityResponse(BaseModel):
    booking_id: UUID
    status: BookingStatus
    cancellable: bool
    modifiable: bool
    cancellation_deadline: Optional[datetime] = None
    modification_deadline: Optional[datetime] = None


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a booking",
)
def create_booking(
    payload: BookingCreateRequest,
    actor: Actor = Depends(require_customer),
    db: Session = Depends(get_db),
) -> BookingResponse:
    """
    Book a service slot as the authenticated customer.

    Rejects past slots, booking one's own service and occupied slots.
    """
    booking = BookingService(db).create_booking(
        customer_id=actor.id,
        service_id=payload.service_id,
        scheduled_date=payload.scheduled_date,
        start_time=payload.start_time,
        notes=payload.customer_notes,
        location=payload.location.to_location() if payload.location else None,
        payment_method=payload.payment_method,
    )
    return BookingResponse.model_validate(booking)


@router.get("", response_model=BookingListResponse, summary="List bookings")
def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status", description="Filter by status"),
    when: Optional[Literal["upcoming", "past"]] = Query(None, description="upcoming or past"),
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> BookingListResponse:
    bookings, total = BookingService(db).list_bookings(
        actor, status=status_filter, when=when, page=page, limit=page_size
    )
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        page_size=page_size,
        has_next=page * page_size < total,
    )


@router.get("/{booking_id}", response_model=BookingResponse, summary="Get a booking")
def get_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> BookingResponse:
    return BookingResponse.model_validate(BookingService(db).get_booking(booking_id, actor))


@router.get(
    "/{booking_id}/history",
    response_model=List[BookingEventResponse],
    summary="Booking status history",
)
def get_booking_history(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> List[BookingEventResponse]:
    events = BookingService(db).get_history(booking_id, actor)
    return [BookingEventResponse.model_validate(e) for e in events]


@router.get(
    "/{booking_id}/eligibility",
    response_model=BookingEligibilityResponse,
    summary="Cancellation and modification eligibility",
)
def get_booking_eligibility(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> BookingEligibilityResponse:
    """
    Report whether the booking can still be cancelled or modified, with the
    deadlines that apply to its current status.
    """
    service = BookingService(db)
    booking = service.get_booking(booking_id, actor)
    return BookingEligibilityResponse(
        booking_id=booking.id,
        status=booking.status,
        cancellable=service.check_cancellable(booking_id),
        modifiable=service.check_modifiable(booking_id),
        cancellation_deadline=(
            cancellation_deadline(booking) if booking.status in CANCELLABLE_STATUSES else None
        ),
        modification_deadline=(
            modification_deadline(booking) if booking.status in MODIFIABLE_STATUSES else None
        ),
    )


@router.put(
    "/{booking_id}/status",
    response_model=BookingResponse,
    summary="Update booking status",
)
def update_booking_status(
    booking_id: UUID,
    payload: BookingStatusUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> BookingResponse:
    """
    Apply a status transition as the booking's provider or customer.

    Customers may only cancel pending bookings here, and only while the
    cancellation window is open; cancelling a confirmed booking goes through
    POST /bookings/{id}/cancel.
    """
    booking = BookingService(db).transition_booking(
        booking_id, actor, payload.status, notes=payload.notes
    )
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking (customer)",
)
def cancel_booking(
    booking_id: UUID,
    payload: Optional[BookingCancelRequest] = None,
    actor: Actor = Depends(require_customer),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = BookingService(db).cancel_booking(
        booking_id, actor, reason=payload.reason if payload else None
    )
    return BookingResponse.model_validate(booking)


@router.patch(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Modify a pending booking (customer)",
)
def modify_booking(
    booking_id: UUID,
    payload: BookingModifyRequest,
    actor: Actor = Depends(require_customer),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = BookingService(db).modify_booking(
        booking_id,
        actor,
        scheduled_date=payload.scheduled_date,
        start_time=payload.start_time,
        customer_notes=payload.customer_notes,
        location=payload.location.to_location() if payload.location else None,
    )
    return BookingResponse.model_validate(booking)
