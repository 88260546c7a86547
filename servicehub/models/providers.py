"""
Provider model - extends User for service providers.
"""
from uuid import UUID

from sqlalchemy import Integer, Numeric, Boolean, ForeignKey, Uuid, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.lib.db import Base


class Provider(Base):
    """
    Provider entity - service providers (1:1 with User).

    rating_average / rating_count are a cache over visible reviews, written only
    by servicehub.services.rating_service.
    """
    __tablename__ = "providers"

    # Primary key (also foreign key to users)
    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    # Rating cache
    rating_average: Mapped[float] = mapped_column(
        Numeric(3, 1, asdecimal=False),
        nullable=False,
        default=0.0,
    )
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Lifetime counters
    completed_services: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("completed_services >= 0", name="provider_completed_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Provider(id={self.id}, rating={self.rating_average}, "
            f"reviews={self.rating_count}, completed={self.completed_services})>"
        )
