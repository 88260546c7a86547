"""
User model - base entity for customers, providers, and admins.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Boolean, DateTime, Uuid, Enum as SQLEnum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.lib.db import Base


class UserType(str, enum.Enum):
    """User type enumeration (doubles as the actor role on requests)."""
    CUSTOMER = "customer"
    PROVIDER = "provider"
    ADMIN = "admin"


class User(Base):
    """
    User entity - represents all system users.
    Either phone or email must be present.
    """
    __tablename__ = "users"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # Contact info (at least one required)
    phone: Mapped[Optional[str]] = mapped_column(
        String(20),
        unique=True,
        nullable=True,
        index=True,
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        index=True,
    )

    # Profile
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[UserType] = mapped_column(
        SQLEnum(UserType, name="user_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

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
        CheckConstraint(
            "phone IS NOT NULL OR email IS NOT NULL",
            name="user_contact_required",
        ),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name={self.name}, type={self.type})>"
