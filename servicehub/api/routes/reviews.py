"""
Review Routes - customer reviews of completed bookings.

Provides:
- POST /reviews: Review a completed booking (customer)
- PUT /reviews/{id}: Edit a review within its editing window (customer)
- GET /reviews/pending: Completed bookings still awaiting a review (customer)
- GET /reviews/service/{id}: Visible reviews of a service
- GET /reviews/provider/{id}: Visible reviews of a provider
- POST /reviews/{id}/helpful, DELETE /reviews/{id}/helpful: Helpful votes (any user)
- POST /reviews/{id}/response: Reply to a review (the reviewed provider)
"""
from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from servicehub.api.dependencies import get_current_actor, get_db, require_customer
from servicehub.api.routes.bookings import BookingResponse
from servicehub.models.reviews import Review
from servicehub.services.booking_state_machine import Actor
from servicehub.services.review_service import ReviewRatings, ReviewService


router = APIRouter(prefix="/reviews", tags=["reviews"])

ReviewSort = Literal["newest", "oldest", "rating_high", "rating_low"]


class RatingPayload(BaseModel):
    overall: int = Field(ge=1, le=5)
    quality: Optional[int] = Field(None, ge=1, le=5)
    punctuality: Optional[int] = Field(None, ge=1, le=5)
    communication: Optional[int] = Field(None, ge=1, le=5)
    value: Optional[int] = Field(None, ge=1, le=5)

    def to_ratings(self) -> ReviewRatings:
        return ReviewRatings(**self.model_dump())


class ReviewCreateRequest(BaseModel):
    booking_id: UUID
    rating: RatingPayload
    comment: str = Field(min_length=1, max_length=1000)
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    would_recommend: bool = True
    is_anonymous: bool = False


class ReviewUpdateRequest(BaseModel):
    rating: Optional[RatingPayload] = None
    comment: Optional[str] = Field(None, min_length=1, max_length=1000)
    pros: Optional[List[str]] = None
    cons: Optional[List[str]] = None
    would_recommend: Optional[bool] = None


class ProviderResponseRequest(BaseModel):
    message: str = Field(min_length=1, max_length=1000)
    is_public: bool = True


class ProviderReply(BaseModel):
    message: str
    responded_at: datetime
    is_public: bool


class HelpfulVoteResponse(BaseModel):
    review_id: UUID
    helpful_count: int


class ReviewResponse(BaseModel):
    id: UUID
    booking_id: UUID
    customer_id: Optional[UUID] = Field(None, description="Omitted for anonymous reviews")
    provider_id: UUID
    service_id: UUID
    rating: RatingPayload
    detailed_average: float
    comment: str
    pros: List[str]
    cons: List[str]
    would_recommend: bool
    is_anonymous: bool
    is_visible: bool
    is_editable: bool
    editable_until: datetime
    helpful_count: int
    provider_response: Optional[ProviderReply] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_review(cls, review: Review, public_view: bool = False) -> "ReviewResponse":
        """
        In the public view anonymous reviewers are hidden, as are provider
        replies the provider did not make public.
        """
        show_customer = not public_view or not review.is_anonymous
        reply = None
        if review.response_message and (review.response_is_public or not public_view):
            reply = ProviderReply(
                message=review.response_message,
                responded_at=review.response_responded_at,
                is_public=review.response_is_public,
            )
        return cls(
            id=review.id,
            booking_id=review.booking_id,
            customer_id=review.customer_id if show_customer else None,
            provider_id=review.provider_id,
            service_id=review.service_id,
            rating=RatingPayload(
                overall=review.rating_overall,
                quality=review.rating_quality,
                punctuality=review.rating_punctuality,
                communication=review.rating_communication,
                value=review.rating_value,
            ),
            detailed_average=review.detailed_average,
            comment=review.comment,
            pros=review.pros or [],
            cons=review.cons or [],
            would_recommend=review.would_recommend,
            is_anonymous=review.is_anonymous,
            is_visible=review.is_visible,
            is_editable=review.is_editable,
            editable_until=review.editable_until,
            helpful_count=review.helpful_count or 0,
            provider_response=reply,
            created_at=review.created_at,
            updated_at=review.updated_at,
        )


class ReviewListResponse(BaseModel):
    """Paginated review list response."""
    reviews: List[ReviewResponse]
    total: int
    page: int
    page_size: int
    has_next: bool


def _review_page(reviews: List[Review], total: int, page: int, page_size: int) -> ReviewListResponse:
    return ReviewListResponse(
        reviews=[ReviewResponse.from_review(r, public_view=True) for r in reviews],
        total=total,
        page=page,
        page_size=page_size,
        has_next=page * page_size < total,
    )


@router.post(
    "",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Review a completed booking",
)
def create_review(
    payload: ReviewCreateRequest,
    actor: Actor = Depends(require_customer),
    db: Session = Depends(get_db),
) -> ReviewResponse:
    """
    Create the review of a completed booking.

    The service and provider rating aggregates are recomputed before the
    response is returned.
    """
    review = ReviewService(db).create_review(
        booking_id=payload.booking_id,
        customer_id=actor.id,
        ratings=payload.rating.to_ratings(),
        comment=payload.comment,
        pros=payload.pros,
        cons=payload.cons,
        would_recommend=payload.would_recommend,
        is_anonymous=payload.is_anonymous,
    )
    return ReviewResponse.from_review(review)


@router.get(
    "/pending",
    response_model=List[BookingResponse],
    summary="Completed bookings awaiting a review",
)
def get_pending_reviews(
    actor: Actor = Depends(require_customer),
    db: Session = Depends(get_db),
) -> List[BookingResponse]:
    bookings = ReviewService(db).get_pending_reviews(actor.id)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.put("/{review_id}", response_model=ReviewResponse, summary="Edit a review")
def edit_review(
    review_id: UUID,
    payload: ReviewUpdateRequest,
    actor: Actor = Depends(require_customer),
    db: Session = Depends(get_db),
) -> ReviewResponse:
    review = ReviewService(db).edit_review(
        review_id,
        actor.id,
        ratings=payload.rating.to_ratings() if payload.rating else None,
        comment=payload.comment,
        pros=payload.pros,
        cons=payload.cons,
        would_recommend=payload.would_recommend,
    )
    return ReviewResponse.from_review(review)


@router.get("/service/{service_id}", response_model=ReviewListResponse, summary="Reviews of a service")
def list_service_reviews(
    service_id: UUID,
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    sort: ReviewSort = Query("newest", description="newest, oldest, rating_high or rating_low"),
    rating: Optional[int] = Query(None, ge=1, le=5, description="Only reviews with this overall rating"),
    db: Session = Depends(get_db),
) -> ReviewListResponse:
    reviews, total = ReviewService(db).list_service_reviews(
        service_id, page=page, limit=page_size, sort=sort, rating=rating
    )
    return _review_page(reviews, total, page, page_size)


@router.get("/provider/{provider_id}", response_model=ReviewListResponse, summary="Reviews of a provider")
def list_provider_reviews(
    provider_id: UUID,
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    sort: ReviewSort = Query("newest", description="newest, oldest, rating_high or rating_low"),
    rating: Optional[int] = Query(None, ge=1, le=5, description="Only reviews with this overall rating"),
    db: Session = Depends(get_db),
) -> ReviewListResponse:
    reviews, total = ReviewService(db).list_provider_reviews(
        provider_id, page=page, limit=page_size, sort=sort, rating=rating
    )
    return _review_page(reviews, total, page, page_size)


@router.post("/{review_id}/helpful", response_model=HelpfulVoteResponse, summary="Mark a review as helpful")
def mark_review_helpful(
    review_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> HelpfulVoteResponse:
    review = ReviewService(db).mark_helpful(review_id, actor.id)
    return HelpfulVoteResponse(review_id=review.id, helpful_count=review.helpful_count)


@router.delete("/{review_id}/helpful", response_model=HelpfulVoteResponse, summary="Remove a helpful vote")
def remove_review_helpful_vote(
    review_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> HelpfulVoteResponse:
    review = ReviewService(db).remove_helpful_vote(review_id, actor.id)
    return HelpfulVoteResponse(review_id=review.id, helpful_count=review.helpful_count)


@router.post("/{review_id}/response", response_model=ReviewResponse, summary="Reply to a review (provider)")
def respond_to_review(
    review_id: UUID,
    payload: ProviderResponseRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ReviewResponse:
    """
    Attach the provider's reply to a review of one of their services.

    A later reply replaces the earlier one.
    """
    review = ReviewService(db).respond_to_review(
        review_id, actor, payload.message, is_public=payload.is_public
    )
    return ReviewResponse.from_review(review)
