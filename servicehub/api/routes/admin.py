"""
Admin Routes - support and moderation actions.

Provides:
- PUT /admin/bookings/{id}/status: Apply any status transition (dispute resolution)
- PUT /admin/reviews/{id}/visibility: Hide or restore a review
- DELETE /admin/reviews/{id}: Remove a review
- POST /admin/ratings/recalculate: Rebuild every rating aggregate
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from servicehub.api.dependencies import get_db, require_admin
from servicehub.api.routes.bookings import BookingResponse, BookingStatusUpdateRequest
from servicehub.api.routes.reviews import ReviewResponse
from servicehub.jobs.recalculate_ratings import run_rating_recalculation
from servicehub.lib.logging import get_logger
from servicehub.services.booking_service import BookingService
from servicehub.services.booking_state_machine import Actor
from servicehub.services.review_service import ReviewService


logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


class ReviewVisibilityRequest(BaseModel):
    is_visible: bool = Field(description="false hides (reports) the review")


class RecalculateRatingsResponse(BaseModel):
    job_id: UUID
    status: str
    services_updated: int
    providers_updated: int
    started_at: datetime
    finished_at: Optional[datetime] = None


@router.put(
    "/bookings/{booking_id}/status",
    response_model=BookingResponse,
    summary="Override booking status",
)
def admin_update_booking_status(
    booking_id: UUID,
    payload: BookingStatusUpdateRequest,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
) -> BookingResponse:
    """
    Move a booking to any status.

    Reopening a booking re-claims its slot and fails with a conflict if another
    booking now holds it.
    """
    booking = BookingService(db).transition_booking(
        booking_id, actor, payload.status, notes=payload.notes
    )
    return BookingResponse.model_validate(booking)


@router.put(
    "/reviews/{review_id}/visibility",
    response_model=ReviewResponse,
    summary="Hide or restore a review",
)
def set_review_visibility(
    review_id: UUID,
    payload: ReviewVisibilityRequest,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ReviewResponse:
    review = ReviewService(db).set_review_visibility(review_id, payload.is_visible)
    return ReviewResponse.from_review(review)


@router.delete(
    "/reviews/{review_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a review",
)
def delete_review(
    review_id: UUID,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Response:
    ReviewService(db).delete_review(review_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/ratings/recalculate",
    response_model=RecalculateRatingsResponse,
    summary="Recalculate all ratings",
)
def recalculate_ratings(
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
) -> RecalculateRatingsResponse:
    logger.info("Rating recalculation requested", extra={"admin_id": str(actor.id)})
    job = run_rating_recalculation(db, triggered_by=str(actor.id))
    return RecalculateRatingsResponse(
        job_id=job.id,
        status=job.status.value,
        services_updated=job.result["services_updated"],
        providers_updated=job.result["providers_updated"],
        started_at=job.started_at,
        finished_at=job.finished_at,
    )
