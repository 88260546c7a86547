"""
Runtime policy configuration and feature toggles for the booking engine.

Provides centralized configuration for:
- Booking policy windows (cancellation, modification, review editing)
- Free-text limits for notes and review comments
- Feature flags (e.g. interval-overlap conflict detection)
"""
from typing import Optional
from pydantic import BaseModel, Field

from servicehub.lib.logging import get_logger


logger = get_logger(__name__)


class BookingPolicy(BaseModel):
    """
    Time windows and limits applied to bookings and reviews.

    - Customers may cancel a pending/confirmed booking more than 2 hours before start
    - Customers may modify a pending booking more than 24 hours before start
    - Reviews are editable for 24 hours after creation
    """

    cancellation_window_hours: float = Field(
        default=2,
        ge=0,
        le=168,
        description="Minimum hours before start for a cancellation to be allowed"
    )
    modification_window_hours: float = Field(
        default=24,
        ge=0,
        le=720,
        description="Minimum hours before start for a modification to be allowed"
    )
    review_edit_window_hours: float = Field(
        default=24,
        ge=0,
        le=720,
        description="Hours after creation during which a review can be edited"
    )
    notes_max_length: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Max characters for customer/provider booking notes"
    )
    comment_max_length: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Max characters for a review comment"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "cancellation_window_hours": 2,
                "modification_window_hours": 24,
                "review_edit_window_hours": 24,
            }
        }
    }


class FeatureFlags(BaseModel):
    """Feature flags for enabling/disabling functionality."""

    interval_overlap_detection: bool = Field(
        default=False,
        description="Also reject bookings whose [start, end) overlaps an occupied slot "
                    "(default: exact start-time match only)"
    )


# Global configuration instances (can be overridden)
_booking_policy: Optional[BookingPolicy] = None
_feature_flags: Optional[FeatureFlags] = None


def get_booking_policy() -> BookingPolicy:
    """
    Get booking policy configuration.

    Returns:
        BookingPolicy instance with current settings
    """
    global _booking_policy
    if _booking_policy is None:
        _booking_policy = BookingPolicy()
        logger.info("Initialized default booking policy")
    return _booking_policy


def set_booking_policy(policy: BookingPolicy) -> None:
    """Override booking policy configuration."""
    global _booking_policy
    _booking_policy = policy
    logger.info("Updated booking policy", extra={
        "cancellation_window_hours": policy.cancellation_window_hours,
        "modification_window_hours": policy.modification_window_hours,
        "review_edit_window_hours": policy.review_edit_window_hours,
    })


def get_feature_flags() -> FeatureFlags:
    """Get feature flags configuration."""
    global _feature_flags
    if _feature_flags is None:
        _feature_flags = FeatureFlags()
        logger.info("Initialized default feature flags")
    return _feature_flags


def set_feature_flags(flags: FeatureFlags) -> None:
    """Override feature flags configuration."""
    global _feature_flags
    _feature_flags = flags
    logger.info("Updated feature flags", extra=flags.model_dump())


def reset_all_configs() -> None:
    """Reset all configurations to defaults (useful for testing)."""
    global _booking_policy, _feature_flags
    _booking_policy = None
    _feature_flags = None
    logger.info("Reset all configurations to defaults")
