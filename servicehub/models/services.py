"""
Service model - services listed by providers that customers can book.
"""
from uuid import uuid4, UUID
from typing import Optional
import enum

from sqlalchemy import String, Numeric, Integer, Boolean, ForeignKey, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.lib.db import Base


class ServiceCategory(str, enum.Enum):
    """Service category enumeration."""
    CLEANING = "cleaning"
    COOKING = "cooking"
    BEAUTY = "beauty"
    TUTORING = "tutoring"
    OTHER = "other"


class Service(Base):
    """
    Service entity - bookable services.

    rating_average / rating_count are a cache over visible reviews, written only
    by servicehub.services.rating_service.
    """
    __tablename__ = "services"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    provider_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Service details
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[ServiceCategory] = mapped_column(
        SQLEnum(ServiceCategory, name="service_category", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Pricing and duration
    base_price: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False),
        nullable=False,
    )
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Counters and rating cache
    total_bookings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating_average: Mapped[float] = mapped_column(
        Numeric(3, 1, asdecimal=False),
        nullable=False,
        default=0.0,
    )
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name={self.name}, category={self.category})>"
