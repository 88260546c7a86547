"""
Review model - customer feedback on completed bookings.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Uuid, JSON, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.lib.db import Base


SUB_RATING_FIELDS = ("quality", "punctuality", "communication", "value")


class Review(Base):
    """
    Review entity - customer ratings and comments (1:1 with Booking).

    provider_id and service_id are copied from the booking when the review is
    created and never re-derived afterwards.
    """
    __tablename__ = "reviews"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # Relationship (one review per booking)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    customer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Snapshot references
    provider_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    service_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)

    # Ratings (1-5 scale)
    rating_overall: Mapped[int] = mapped_column(Integer, nullable=False)
    rating_quality: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rating_punctuality: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rating_communication: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rating_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Content
    comment: Mapped[str] = mapped_column(String(1000), nullable=False)
    pros: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    cons: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    would_recommend: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Moderation
    is_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_reported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Helpful votes; helpful_count is recounted from review_helpful_votes
    helpful_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Provider response
    response_message: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    response_responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    response_is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Editing window (fixed at creation, never extended)
    is_editable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    editable_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

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
        CheckConstraint("rating_overall >= 1 AND rating_overall <= 5", name="review_rating_range"),
        CheckConstraint("helpful_count >= 0", name="review_helpful_count_non_negative"),
        CheckConstraint(
            "rating_quality IS NULL OR (rating_quality >= 1 AND rating_quality <= 5)",
            name="review_quality_range",
        ),
        CheckConstraint(
            "rating_punctuality IS NULL OR (rating_punctuality >= 1 AND rating_punctuality <= 5)",
            name="review_punctuality_range",
        ),
        CheckConstraint(
            "rating_communication IS NULL OR (rating_communication >= 1 AND rating_communication <= 5)",
            name="review_communication_range",
        ),
        CheckConstraint(
            "rating_value IS NULL OR (rating_value >= 1 AND rating_value <= 5)",
            name="review_value_range",
        ),
        Index("ix_reviews_provider_visible", "provider_id", "is_visible"),
        Index("ix_reviews_service_visible", "service_id", "is_visible"),
    )

    @property
    def detailed_average(self) -> float:
        """Mean of the sub-ratings present, or the overall rating when none are."""
        present = [
            getattr(self, f"rating_{field}")
            for field in SUB_RATING_FIELDS
            if getattr(self, f"rating_{field}") is not None
        ]
        if not present:
            return float(self.rating_overall)
        return round(sum(present) / len(present), 1)

    def __repr__(self) -> str:
        return f"<Review(id={self.id}, booking_id={self.booking_id}, rating={self.rating_overall})>"


class ReviewHelpfulVote(Base):
    """One user's "helpful" mark on a review; a user votes at most once per review."""
    __tablename__ = "review_helpful_votes"

    review_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("reviews.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<ReviewHelpfulVote(review_id={self.review_id}, user_id={self.user_id})>"
