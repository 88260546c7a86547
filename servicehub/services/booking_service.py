"""
Booking service - creation, status transitions, customer cancellation and
modification of bookings.

Creation flow:
1. Resolve the service through the catalog (must be active and approved)
2. Reject self-booking and slots that are not strictly in the future
3. Run the conflict detector (optimistic pre-check)
4. Insert; a UNIQUE violation on slot_key is the authoritative conflict signal
"""
import secrets
import string
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception, stop_after_attempt

from servicehub.api.middleware.error_handler import BadRequestException
from servicehub.lib.clock import local_date, slot_start, utcnow, parse_hhmm
from servicehub.lib.config_flags import get_booking_policy
from servicehub.lib.logging import get_logger
from servicehub.lib.metrics import get_metrics_collector
from servicehub.lib.settings import settings
from servicehub.models.bookings import (
    Booking,
    BookingStatus,
    BookingStatusEvent,
    LocationType,
    PaymentMethod,
    OCCUPYING_STATUSES,
    TERMINAL_STATUSES,
    make_slot_key,
)
from servicehub.services.booking_policy import (
    CANCELLABLE_STATUSES,
    MODIFIABLE_STATUSES,
    cancellation_deadline,
    is_cancellable,
    is_modifiable,
    modification_deadline,
)
from servicehub.services.booking_state_machine import (
    Actor,
    ActorRole,
    default_cancellation_reason,
    ensure_transition_allowed,
    is_noop,
)
from servicehub.services.catalog import ProviderCounters, ServiceCatalog
from servicehub.services.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PastDate,
    SelfBooking,
    SlotConflict,
    WindowExpired,
)
from servicehub.services.scheduling import ConflictDetector, SlotStatus, end_time_for

logger = get_logger(__name__)

_CODE_ALPHABET = string.digits + string.ascii_uppercase
_CODE_ATTEMPTS = 3


def _base36(number: int) -> str:
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_CODE_ALPHABET[remainder])
    return "".join(reversed(digits)) or "0"


def generate_booking_code(now: Optional[datetime] = None) -> str:
    """BK + base36 millisecond timestamp + 5 random base36 characters."""
    now = now or utcnow()
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(5))
    return f"BK{_base36(int(now.timestamp() * 1000))}{suffix}"


@dataclass
class BookingLocation:
    type: LocationType = LocationType.CUSTOMER_ADDRESS
    address: Optional[str] = None
    instructions: Optional[str] = None


def _violates(exc: IntegrityError, constraint_hint: str) -> bool:
    return constraint_hint in str(exc.orig)


def _is_code_collision(exc: BaseException) -> bool:
    return isinstance(exc, IntegrityError) and _violates(exc, "booking_code")


def _log_code_collision(retry_state) -> None:
    logger.warning(
        "Booking code collision, regenerating",
        extra={"attempt": retry_state.attempt_number},
    )


class BookingService:
    """Booking lifecycle operations over a single database session."""

    def __init__(self, session: Session):
        self.session = session
        self.detector = ConflictDetector(session)
        self.catalog = ServiceCatalog(session)
        self.counters = ProviderCounters(session)
        self.metrics = get_metrics_collector()

    # ===== Lookups =====

    def _load(self, booking_id: UUID) -> Booking:
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFound("Booking", booking_id)
        return booking

    @staticmethod
    def _ensure_participant(booking: Booking, actor: Actor) -> None:
        if actor.role is ActorRole.ADMIN:
            return
        if actor.role is ActorRole.CUSTOMER and booking.customer_id == actor.id:
            return
        if actor.role is ActorRole.PROVIDER and booking.provider_id == actor.id:
            return
        raise Forbidden("Access denied")

    def get_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        booking = self._load(booking_id)
        self._ensure_participant(booking, actor)
        return booking

    def list_bookings(
        self,
        actor: Actor,
        status: Optional[BookingStatus] = None,
        when: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        now: Optional[datetime] = None,
    ) -> Tuple[List[Booking], int]:
        """
        List bookings visible to the actor: own bookings for customers and
        providers, all bookings for admins.

        `when` is "upcoming" (occupying, scheduled today or later, where today
        is taken in BOOKING_TIMEZONE) or "past" (terminal statuses).
        """
        stmt = select(Booking)
        if actor.role is ActorRole.CUSTOMER:
            stmt = stmt.where(Booking.customer_id == actor.id)
        elif actor.role is ActorRole.PROVIDER:
            stmt = stmt.where(Booking.provider_id == actor.id)

        if status is not None:
            stmt = stmt.where(Booking.status == status)
        if when == "upcoming":
            today = local_date(now)
            stmt = stmt.where(
                Booking.scheduled_date >= today,
                Booking.status.in_(list(OCCUPYING_STATUSES)),
            )
        elif when == "past":
            stmt = stmt.where(Booking.status.in_(list(TERMINAL_STATUSES)))

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

        stmt = (
            stmt.order_by(Booking.scheduled_date.desc(), Booking.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all()), total

    def get_history(self, booking_id: UUID, actor: Actor) -> List[BookingStatusEvent]:
        self.get_booking(booking_id, actor)
        stmt = (
            select(BookingStatusEvent)
            .where(BookingStatusEvent.booking_id == booking_id)
            .order_by(BookingStatusEvent.created_at, BookingStatusEvent.id)
        )
        return list(self.session.execute(stmt).scalars().all())

    # ===== Validation helpers =====

    @staticmethod
    def _check_notes(notes: Optional[str], field: str = "notes") -> Optional[str]:
        if notes is None:
            return None
        limit = get_booking_policy().notes_max_length
        if len(notes) > limit:
            raise BadRequestException(
                f"{field} cannot be more than {limit} characters",
                details={"field": field, "max_length": limit},
            )
        return notes

    @staticmethod
    def _check_start(scheduled_date: date, start_time: str, now: datetime) -> datetime:
        try:
            parse_hhmm(start_time)
        except ValueError as e:
            raise BadRequestException(str(e), details={"field": "start_time"}) from e
        starts_at = slot_start(scheduled_date, start_time)
        if starts_at <= now:
            raise PastDate(starts_at, now)
        return starts_at

    def _flush_guarding_slot(self, provider_id: UUID, scheduled_date: date, start_time: str) -> None:
        """Flush pending writes, turning a slot_key UNIQUE violation into SlotConflict."""
        try:
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            if _violates(e, "slot_key"):
                self.metrics.increment_slot_conflicts()
                logger.info(
                    "Slot claimed concurrently",
                    extra={
                        "provider_id": str(provider_id),
                        "scheduled_date": scheduled_date.isoformat(),
                        "start_time": start_time,
                    },
                )
                raise SlotConflict(provider_id, scheduled_date, start_time) from e
            raise

    def _ensure_slot_available(
        self,
        provider_id: UUID,
        scheduled_date: date,
        start_time: str,
        end_time: Optional[str],
        exclude_booking_id: Optional[UUID] = None,
    ) -> None:
        verdict = self.detector.check_slot(
            provider_id,
            scheduled_date,
            start_time,
            end_time=end_time,
            exclude_booking_id=exclude_booking_id,
        )
        if verdict is SlotStatus.CONFLICT:
            self.metrics.increment_slot_conflicts()
            raise SlotConflict(provider_id, scheduled_date, start_time)

    # ===== Create =====

    @retry(
        stop=stop_after_attempt(_CODE_ATTEMPTS),
        retry=retry_if_exception(_is_code_collision),
        before_sleep=_log_code_collision,
        reraise=True,
    )
    def _insert_booking(self, **fields) -> Booking:
        """Insert under a fresh booking code; a code collision rolls back and retries."""
        booking = Booking(booking_code=generate_booking_code(fields["created_at"]), **fields)
        self.session.add(booking)
        self._flush_guarding_slot(fields["provider_id"], fields["scheduled_date"], fields["start_time"])
        return booking

    def create_booking(
        self,
        customer_id: UUID,
        service_id: UUID,
        scheduled_date: date,
        start_time: str,
        notes: Optional[str] = None,
        location: Optional[BookingLocation] = None,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        agreed_amount: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Create a pending booking for a customer.

        Raises:
            NotFound: service missing, inactive or not approved
            SelfBooking: the customer is the service's provider
            PastDate: the slot does not start strictly after `now`
            SlotConflict: an occupying booking already holds the slot
        """
        now = now or utcnow()

        service = self.catalog.get_bookable_service(service_id)
        if service is None:
            raise NotFound("Service", service_id)

        if service.provider_id == customer_id:
            raise SelfBooking(service_id)

        self._check_start(scheduled_date, start_time, now)
        self._check_notes(notes, "customer_notes")
        if agreed_amount is not None and agreed_amount < 0:
            raise BadRequestException("Amount cannot be negative", details={"field": "agreed_amount"})

        end_time = end_time_for(start_time, service.duration_minutes)
        self._ensure_slot_available(service.provider_id, scheduled_date, start_time, end_time)

        location = location or BookingLocation()
        booking = self._insert_booking(
            customer_id=customer_id,
            provider_id=service.provider_id,
            service_id=service.id,
            scheduled_date=scheduled_date,
            start_time=start_time,
            end_time=end_time,
            duration_estimated=service.duration_minutes,
            slot_key=make_slot_key(service.provider_id, scheduled_date, start_time),
            location_type=location.type,
            location_address=location.address,
            location_instructions=location.instructions,
            agreed_amount=service.base_price if agreed_amount is None else agreed_amount,
            currency=service.currency or settings.default_currency,
            payment_method=payment_method,
            status=BookingStatus.PENDING,
            customer_notes=notes,
            created_at=now,
            updated_at=now,
        )

        self.session.add(BookingStatusEvent(
            booking_id=booking.id,
            from_status=None,
            to_status=BookingStatus.PENDING,
            actor_id=customer_id,
            actor_role=ActorRole.CUSTOMER.value,
            notes=notes,
            created_at=now,
        ))
        self.catalog.increment_total_bookings(service.id)
        self.session.commit()
        self.session.refresh(booking)

        self.metrics.increment_bookings_created()
        logger.info(
            "Booking created",
            extra={
                "booking_code": booking.booking_code,
                "booking_id": str(booking.id),
                "customer_id": str(customer_id),
                "provider_id": str(booking.provider_id),
                "scheduled_date": scheduled_date.isoformat(),
                "start_time": start_time,
            },
        )
        return booking

    # ===== Transitions =====

    def transition_booking(
        self,
        booking_id: UUID,
        actor: Actor,
        target_status: BookingStatus,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Move a booking to `target_status` on behalf of `actor`.

        Raises:
            NotFound: unknown booking
            Forbidden: actor is not a participant (admins always are)
            InvalidTransition: the move is not in the actor's allowed set
            WindowExpired: a customer cancel after the cancellation deadline
            SlotConflict: an admin reopened a booking whose slot is taken
        """
        now = now or utcnow()
        booking = self._load(booking_id)
        self._ensure_participant(booking, actor)
        if (
            actor.role is ActorRole.CUSTOMER
            and target_status is BookingStatus.CANCELLED
            and booking.status in CANCELLABLE_STATUSES
            and not is_cancellable(booking, now)
        ):
            raise WindowExpired("cancelled", booking.status.value, cancellation_deadline(booking))
        return self._transition(booking, actor, target_status, notes, now)

    def _transition(
        self,
        booking: Booking,
        actor: Actor,
        target: BookingStatus,
        notes: Optional[str],
        now: datetime,
        window_override: bool = False,
    ) -> Booking:
        current = booking.status

        if is_noop(current, target, actor.role):
            logger.info(
                "Booking status re-applied, nothing to do",
                extra={"booking_code": booking.booking_code, "status": current.value},
            )
            return booking

        ensure_transition_allowed(current, target, actor.role, window_override)
        self._check_notes(notes)

        booking.status = target
        booking.updated_at = now

        if target in OCCUPYING_STATUSES:
            booking.slot_key = make_slot_key(booking.provider_id, booking.scheduled_date, booking.start_time)
        else:
            booking.slot_key = None

        if current is BookingStatus.CANCELLED:
            booking.cancelled_by = None
            booking.cancellation_reason = None
            booking.cancelled_at = None
        if current is BookingStatus.COMPLETED:
            booking.completed_by = None
            booking.completed_at = None

        if target is BookingStatus.CANCELLED:
            booking.cancelled_by = actor.id
            booking.cancellation_reason = notes or default_cancellation_reason(actor.role)
            booking.cancelled_at = now
        elif target is BookingStatus.COMPLETED:
            booking.completed_by = actor.id
            booking.completed_at = now
            self.counters.increment_completed(booking.provider_id)

        if notes:
            if actor.role is ActorRole.PROVIDER:
                booking.provider_notes = notes
            elif actor.role is ActorRole.CUSTOMER:
                booking.customer_notes = notes

        self.session.add(BookingStatusEvent(
            booking_id=booking.id,
            from_status=current,
            to_status=target,
            actor_id=actor.id,
            actor_role=actor.role.value,
            notes=notes,
            created_at=now,
        ))

        self._flush_guarding_slot(booking.provider_id, booking.scheduled_date, booking.start_time)
        self.session.commit()
        self.session.refresh(booking)

        self.metrics.increment_transitions(current.value, target.value, actor.role.value)
        logger.info(
            "Booking status updated",
            extra={
                "booking_code": booking.booking_code,
                "from_status": current.value,
                "to_status": target.value,
                "actor_id": str(actor.id),
                "actor_role": actor.role.value,
            },
        )
        return booking

    # ===== Window policy =====

    def check_cancellable(self, booking_id: UUID, now: Optional[datetime] = None) -> bool:
        return is_cancellable(self._load(booking_id), now)

    def check_modifiable(self, booking_id: UUID, now: Optional[datetime] = None) -> bool:
        return is_modifiable(self._load(booking_id), now)

    def cancel_booking(
        self,
        booking_id: UUID,
        actor: Actor,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Customer-initiated cancellation gated by the cancellation window.

        A customer may cancel a confirmed booking here (not through a plain
        transition) as long as the window is still open.
        """
        now = now or utcnow()
        booking = self._load(booking_id)
        if actor.role is not ActorRole.CUSTOMER or booking.customer_id != actor.id:
            raise Forbidden("Access denied. You can only cancel your own bookings")

        if booking.status is BookingStatus.CANCELLED:
            return booking

        if booking.status not in CANCELLABLE_STATUSES:
            raise InvalidTransition(booking.status.value, BookingStatus.CANCELLED.value, actor.role.value)
        if not is_cancellable(booking, now):
            raise WindowExpired("cancelled", booking.status.value, cancellation_deadline(booking))

        return self._transition(
            booking,
            actor,
            BookingStatus.CANCELLED,
            reason or default_cancellation_reason(ActorRole.CUSTOMER),
            now,
            window_override=True,
        )

    def modify_booking(
        self,
        booking_id: UUID,
        actor: Actor,
        scheduled_date: Optional[date] = None,
        start_time: Optional[str] = None,
        customer_notes: Optional[str] = None,
        location: Optional[BookingLocation] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Reschedule or amend a pending booking while the modification window is open.
        """
        now = now or utcnow()
        booking = self._load(booking_id)
        if not (
            actor.role is ActorRole.ADMIN
            or (actor.role is ActorRole.CUSTOMER and booking.customer_id == actor.id)
        ):
            raise Forbidden("Access denied. You can only modify your own bookings")

        if not is_modifiable(booking, now):
            deadline = modification_deadline(booking) if booking.status in MODIFIABLE_STATUSES else None
            raise WindowExpired("modified", booking.status.value, deadline)

        new_date = scheduled_date or booking.scheduled_date
        new_start = start_time or booking.start_time
        rescheduled = (new_date, new_start) != (booking.scheduled_date, booking.start_time)

        if rescheduled:
            self._check_start(new_date, new_start, now)
            new_end = end_time_for(new_start, booking.duration_estimated)
            self._ensure_slot_available(
                booking.provider_id, new_date, new_start, new_end, exclude_booking_id=booking.id
            )
            booking.scheduled_date = new_date
            booking.start_time = new_start
            booking.end_time = new_end
            booking.slot_key = make_slot_key(booking.provider_id, new_date, new_start)

        if customer_notes is not None:
            booking.customer_notes = self._check_notes(customer_notes, "customer_notes")
        if location is not None:
            booking.location_type = location.type
            booking.location_address = location.address
            booking.location_instructions = location.instructions

        booking.updated_at = now
        self._flush_guarding_slot(booking.provider_id, new_date, new_start)
        self.session.commit()
        self.session.refresh(booking)

        logger.info(
            "Booking modified",
            extra={
                "booking_code": booking.booking_code,
                "rescheduled": rescheduled,
                "scheduled_date": booking.scheduled_date.isoformat(),
                "start_time": booking.start_time,
            },
        )
        return booking
