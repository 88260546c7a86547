"""
Review service - customer reviews of completed bookings, helpful votes,
provider responses, admin moderation and the pending-review resolver.

Every write that changes the visible review set recomputes the affected
service and provider aggregates and commits with them, before returning.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func, exists, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from servicehub.api.middleware.error_handler import BadRequestException
from servicehub.lib.clock import ensure_utc, utcnow
from servicehub.lib.config_flags import get_booking_policy
from servicehub.lib.logging import get_logger
from servicehub.lib.metrics import get_metrics_collector
from servicehub.models.bookings import Booking, BookingStatus
from servicehub.models.reviews import Review, ReviewHelpfulVote, SUB_RATING_FIELDS
from servicehub.services.booking_state_machine import Actor, ActorRole
from servicehub.services.errors import (
    AlreadyReviewed,
    Forbidden,
    NotCompleted,
    NotEditable,
    NotFound,
)
from servicehub.services.rating_service import RatingService

logger = get_logger(__name__)

REVIEW_SORTS = {
    "newest": (Review.created_at.desc(),),
    "oldest": (Review.created_at.asc(),),
    "rating_high": (Review.rating_overall.desc(), Review.created_at.desc()),
    "rating_low": (Review.rating_overall.asc(), Review.created_at.desc()),
}


@dataclass
class ReviewRatings:
    overall: int
    quality: Optional[int] = None
    punctuality: Optional[int] = None
    communication: Optional[int] = None
    value: Optional[int] = None

    def validate(self) -> None:
        for field in ("overall",) + SUB_RATING_FIELDS:
            score = getattr(self, field)
            if score is None and field != "overall":
                continue
            if score is None or not 1 <= score <= 5:
                raise BadRequestException(
                    f"Rating '{field}' must be between 1 and 5",
                    details={"field": field, "value": score},
                )


class ReviewService:
    """Review lifecycle operations over a single database session."""

    def __init__(self, session: Session):
        self.session = session
        self.ratings = RatingService(session)
        self.metrics = get_metrics_collector()

    @staticmethod
    def _check_comment(comment: str) -> str:
        comment = (comment or "").strip()
        limit = get_booking_policy().comment_max_length
        if not comment:
            raise BadRequestException("Review comment is required", details={"field": "comment"})
        if len(comment) > limit:
            raise BadRequestException(
                f"Comment cannot be more than {limit} characters",
                details={"field": "comment", "max_length": limit},
            )
        return comment

    @staticmethod
    def _apply_ratings(review: Review, ratings: ReviewRatings) -> None:
        review.rating_overall = ratings.overall
        for field in SUB_RATING_FIELDS:
            setattr(review, f"rating_{field}", getattr(ratings, field))

    def _load(self, review_id: UUID) -> Review:
        review = self.session.get(Review, review_id)
        if review is None:
            raise NotFound("Review", review_id)
        return review

    # ===== Customer writes =====

    def create_review(
        self,
        booking_id: UUID,
        customer_id: UUID,
        ratings: ReviewRatings,
        comment: str,
        pros: Optional[List[str]] = None,
        cons: Optional[List[str]] = None,
        would_recommend: bool = True,
        is_anonymous: bool = False,
        now: Optional[datetime] = None,
    ) -> Review:
        """
        Review a completed booking.

        Raises:
            NotFound: unknown booking
            Forbidden: the booking belongs to another customer
            NotCompleted: the booking is not completed
            AlreadyReviewed: a review for the booking exists
        """
        now = now or utcnow()

        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFound("Booking", booking_id)
        if booking.customer_id != customer_id:
            raise Forbidden("You can only review your own bookings")
        if booking.status is not BookingStatus.COMPLETED:
            raise NotCompleted(booking_id, booking.status.value)

        existing = self.session.execute(
            select(Review.id).where(Review.booking_id == booking_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise AlreadyReviewed(booking_id)

        ratings.validate()
        comment = self._check_comment(comment)

        review = Review(
            booking_id=booking.id,
            customer_id=customer_id,
            provider_id=booking.provider_id,
            service_id=booking.service_id,
            comment=comment,
            pros=list(pros or []),
            cons=list(cons or []),
            would_recommend=would_recommend,
            is_anonymous=is_anonymous,
            is_visible=True,
            is_editable=True,
            editable_until=now + timedelta(hours=get_booking_policy().review_edit_window_hours),
            created_at=now,
            updated_at=now,
        )
        self._apply_ratings(review, ratings)
        self.session.add(review)

        try:
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            if "booking_id" in str(e.orig):
                raise AlreadyReviewed(booking_id) from e
            raise

        booking.is_reviewed = True
        self.ratings.recompute_for_review(review)
        self.session.commit()
        self.session.refresh(review)

        self.metrics.increment_reviews("created")
        logger.info(
            "Review created",
            extra={
                "review_id": str(review.id),
                "booking_code": booking.booking_code,
                "provider_id": str(review.provider_id),
                "rating_overall": review.rating_overall,
            },
        )
        return review

    def edit_review(
        self,
        review_id: UUID,
        customer_id: UUID,
        ratings: Optional[ReviewRatings] = None,
        comment: Optional[str] = None,
        pros: Optional[List[str]] = None,
        cons: Optional[List[str]] = None,
        would_recommend: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> Review:
        """
        Edit a review while its editing window is open.

        The review is looked up by id and owner, so another customer's review
        is reported as not found. `editable_until` is never extended.
        """
        now = now or utcnow()

        review = self.session.execute(
            select(Review).where(Review.id == review_id, Review.customer_id == customer_id)
        ).scalar_one_or_none()
        if review is None:
            raise NotFound("Review", review_id)

        editable_until = ensure_utc(review.editable_until)
        if not review.is_editable or now >= editable_until:
            raise NotEditable(review_id, editable_until)

        if ratings is not None:
            ratings.validate()
            self._apply_ratings(review, ratings)
        if comment is not None:
            review.comment = self._check_comment(comment)
        if pros is not None:
            review.pros = list(pros)
        if cons is not None:
            review.cons = list(cons)
        if would_recommend is not None:
            review.would_recommend = would_recommend
        review.updated_at = now

        self.session.flush()
        self.ratings.recompute_for_review(review)
        self.session.commit()
        self.session.refresh(review)

        self.metrics.increment_reviews("edited")
        logger.info("Review edited", extra={"review_id": str(review.id)})
        return review

    # ===== Helpful votes =====

    def _load_visible(self, review_id: UUID) -> Review:
        review = self._load(review_id)
        if not review.is_visible:
            raise NotFound("Review", review_id)
        return review

    def _recount_helpful(self, review: Review) -> None:
        review.helpful_count = self.session.execute(
            select(func.count())
            .select_from(ReviewHelpfulVote)
            .where(ReviewHelpfulVote.review_id == review.id)
        ).scalar_one()

    def mark_helpful(self, review_id: UUID, user_id: UUID, now: Optional[datetime] = None) -> Review:
        """
        Record `user_id` as finding a visible review helpful. Voting twice
        leaves the count unchanged.
        """
        review = self._load_visible(review_id)
        if self.session.get(ReviewHelpfulVote, (review.id, user_id)) is not None:
            return review

        self.session.add(ReviewHelpfulVote(review_id=review.id, user_id=user_id, created_at=now or utcnow()))
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            if self.session.get(ReviewHelpfulVote, (review_id, user_id)) is None:
                raise
            # Same vote committed concurrently
            return self._load(review_id)

        self._recount_helpful(review)
        self.session.commit()
        self.session.refresh(review)

        self.metrics.increment_reviews("helpful_marked")
        logger.info(
            "Review marked helpful",
            extra={"review_id": str(review.id), "helpful_count": review.helpful_count},
        )
        return review

    def remove_helpful_vote(self, review_id: UUID, user_id: UUID) -> Review:
        """Withdraw a helpful vote; a user without a vote is a no-op."""
        review = self._load_visible(review_id)
        vote = self.session.get(ReviewHelpfulVote, (review.id, user_id))
        if vote is None:
            return review

        self.session.delete(vote)
        self.session.flush()
        self._recount_helpful(review)
        self.session.commit()
        self.session.refresh(review)

        self.metrics.increment_reviews("helpful_removed")
        logger.info(
            "Helpful vote removed",
            extra={"review_id": str(review.id), "helpful_count": review.helpful_count},
        )
        return review

    # ===== Provider response =====

    def respond_to_review(
        self,
        review_id: UUID,
        actor: Actor,
        message: str,
        is_public: bool = True,
        now: Optional[datetime] = None,
    ) -> Review:
        """
        Attach the provider's reply to a review, replacing any earlier one.

        Raises:
            NotFound: unknown review
            Forbidden: the actor is not the provider the review is about
        """
        now = now or utcnow()
        review = self._load(review_id)
        if actor.role is not ActorRole.PROVIDER or review.provider_id != actor.id:
            raise Forbidden("You can only respond to reviews for your services")

        message = (message or "").strip()
        limit = get_booking_policy().comment_max_length
        if not message:
            raise BadRequestException("Response message is required", details={"field": "message"})
        if len(message) > limit:
            raise BadRequestException(
                f"Response cannot be more than {limit} characters",
                details={"field": "message", "max_length": limit},
            )

        review.response_message = message
        review.response_is_public = is_public
        review.response_responded_at = now
        review.updated_at = now
        self.session.commit()
        self.session.refresh(review)

        self.metrics.increment_reviews("responded")
        logger.info(
            "Provider responded to review",
            extra={"review_id": str(review.id), "provider_id": str(actor.id), "is_public": is_public},
        )
        return review

    # ===== Moderation =====

    def set_review_visibility(self, review_id: UUID, visible: bool) -> Review:
        """Hide (report) or restore a review, then recompute its aggregates."""
        review = self._load(review_id)
        if review.is_visible == visible:
            return review

        review.is_visible = visible
        review.is_reported = not visible
        review.updated_at = utcnow()

        self.session.flush()
        self.ratings.recompute_for_review(review)
        self.session.commit()
        self.session.refresh(review)

        self.metrics.increment_reviews("shown" if visible else "hidden")
        logger.info(
            "Review visibility changed",
            extra={"review_id": str(review.id), "is_visible": visible},
        )
        return review

    def delete_review(self, review_id: UUID) -> None:
        review = self._load(review_id)
        booking_id = review.booking_id

        booking = self.session.get(Booking, booking_id)
        if booking is not None:
            booking.is_reviewed = False

        self.session.execute(delete(ReviewHelpfulVote).where(ReviewHelpfulVote.review_id == review.id))
        self.session.delete(review)
        self.session.flush()
        self.ratings.recompute_for_review(review)
        self.session.commit()

        self.metrics.increment_reviews("deleted")
        logger.info(
            "Review deleted",
            extra={"review_id": str(review_id), "booking_id": str(booking_id)},
        )

    # ===== Reads =====

    def get_pending_reviews(self, customer_id: UUID) -> List[Booking]:
        """
        Completed bookings of the customer that have no review yet, most
        recently updated first.

        A single anti-join statement, so the set difference is taken from one
        snapshot.
        """
        reviewed = exists().where(Review.booking_id == Booking.id)
        stmt = (
            select(Booking)
            .where(
                Booking.customer_id == customer_id,
                Booking.status == BookingStatus.COMPLETED,
                ~reviewed,
            )
            .order_by(Booking.updated_at.desc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def _list_visible(
        self,
        column,
        entity_id: UUID,
        page: int,
        limit: int,
        sort: str,
        rating: Optional[int],
    ) -> Tuple[List[Review], int]:
        if sort not in REVIEW_SORTS:
            raise BadRequestException(
                f"Unknown sort '{sort}'",
                details={"field": "sort", "allowed": sorted(REVIEW_SORTS)},
            )

        stmt = select(Review).where(column == entity_id, Review.is_visible.is_(True))
        if rating is not None:
            stmt = stmt.where(Review.rating_overall == rating)

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

        stmt = stmt.order_by(*REVIEW_SORTS[sort]).offset((page - 1) * limit).limit(limit)
        return list(self.session.execute(stmt).scalars().all()), total

    def list_service_reviews(
        self,
        service_id: UUID,
        page: int = 1,
        limit: int = 10,
        sort: str = "newest",
        rating: Optional[int] = None,
    ) -> Tuple[List[Review], int]:
        return self._list_visible(Review.service_id, service_id, page, limit, sort, rating)

    def list_provider_reviews(
        self,
        provider_id: UUID,
        page: int = 1,
        limit: int = 10,
        sort: str = "newest",
        rating: Optional[int] = None,
    ) -> Tuple[List[Review], int]:
        return self._list_visible(Review.provider_id, provider_id, page, limit, sort, rating)
