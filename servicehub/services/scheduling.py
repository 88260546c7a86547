"""
Scheduling conflict detector.

A slot is the (provider, date, start time) key. A booking in an occupying
status (pending, confirmed) holds its slot until it moves to any other status.

The detector is the optimistic pre-check run before a booking is written; the
UNIQUE `bookings.slot_key` column is the authoritative guard against two
concurrent requests for the same slot.
"""
import enum
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from servicehub.lib.clock import parse_hhmm
from servicehub.lib.config_flags import get_feature_flags
from servicehub.lib.logging import get_logger
from servicehub.models.bookings import Booking, OCCUPYING_STATUSES

logger = get_logger(__name__)


class SlotStatus(str, enum.Enum):
    AVAILABLE = "available"
    CONFLICT = "conflict"


def _minutes(hhmm: str) -> int:
    parsed = parse_hhmm(hhmm)
    return parsed.hour * 60 + parsed.minute


def _end_minutes(start_time: str, end_time: Optional[str], duration: Optional[int]) -> int:
    start = _minutes(start_time)
    if end_time:
        end = _minutes(end_time)
        if end > start:
            return end
    return start + (duration or 0)


def end_time_for(start_time: str, duration_minutes: Optional[int]) -> Optional[str]:
    """HH:MM end of a slot, or None when it would spill past midnight."""
    if not duration_minutes:
        return None
    start = datetime.combine(date.min, parse_hhmm(start_time))
    end = start + timedelta(minutes=duration_minutes)
    if end.date() != start.date():
        return None
    return end.strftime("%H:%M")


class ConflictDetector:
    """Checks provider slot availability against occupying bookings."""

    def __init__(self, session: Session):
        self.session = session

    def _occupying(self, provider_id: UUID, scheduled_date: date, exclude_booking_id: Optional[UUID]):
        stmt = select(Booking).where(
            Booking.provider_id == provider_id,
            Booking.scheduled_date == scheduled_date,
            Booking.status.in_(list(OCCUPYING_STATUSES)),
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)
        return self.session.execute(stmt).scalars().all()

    def check_slot(
        self,
        provider_id: UUID,
        scheduled_date: date,
        start_time: str,
        end_time: Optional[str] = None,
        exclude_booking_id: Optional[UUID] = None,
    ) -> SlotStatus:
        """
        Return CONFLICT when an occupying booking already starts at `start_time`.

        With the `interval_overlap_detection` flag on, any overlap of
        [start, end) with an occupying booking is also a conflict.
        """
        occupying = self._occupying(provider_id, scheduled_date, exclude_booking_id)

        if any(b.start_time == start_time for b in occupying):
            return SlotStatus.CONFLICT

        if get_feature_flags().interval_overlap_detection:
            start = _minutes(start_time)
            end = _end_minutes(start_time, end_time, None)
            for other in occupying:
                other_start = _minutes(other.start_time)
                other_end = _end_minutes(other.start_time, other.end_time, other.duration_estimated)
                if start < other_end and other_start < max(end, start + 1):
                    logger.info(
                        "Interval overlap detected",
                        extra={
                            "provider_id": str(provider_id),
                            "scheduled_date": scheduled_date.isoformat(),
                            "start_time": start_time,
                            "conflicting_booking": other.booking_code,
                        },
                    )
                    return SlotStatus.CONFLICT

        return SlotStatus.AVAILABLE
