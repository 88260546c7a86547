"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from servicehub.models.users import User
from servicehub.models.providers import Provider
from servicehub.models.services import Service
from servicehub.models.bookings import Booking, BookingStatusEvent
from servicehub.models.reviews import Review, ReviewHelpfulVote
from servicehub.models.jobs import Job

__all__ = [
    "User",
    "Provider",
    "Service",
    "Booking",
    "BookingStatusEvent",
    "Review",
    "ReviewHelpfulVote",
    "Job",
]
