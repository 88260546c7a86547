"""
Job model - bookkeeping for maintenance runs (e.g. rating recalculation).
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, DateTime, Uuid, JSON, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.lib.db import Base


class JobType(str, enum.Enum):
    """Job type enumeration."""
    RATING_RECALCULATION = "rating_recalculation"
    OTHER = "other"


class JobStatus(str, enum.Enum):
    """Job execution status."""
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class Job(Base):
    """
    Job entity - one row per maintenance run, with its outcome.
    """
    __tablename__ = "jobs"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    type: Mapped[JobType] = mapped_column(
        SQLEnum(JobType, name="job_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    status: Mapped[JobStatus] = mapped_column(
        SQLEnum(JobStatus, name="job_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=JobStatus.PROCESSING,
        index=True,
    )
    triggered_by: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Actor id or 'cli'",
    )

    # Outcome
    result: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Timestamps
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    finished_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, type={self.type}, status={self.status})>"
