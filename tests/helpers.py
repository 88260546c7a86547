"""
Test helpers: auth headers, actors and a factory for committed records.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple
from uuid import uuid4
from zoneinfo import ZoneInfo

from servicehub.lib.clock import utcnow
from servicehub.lib.jwt import create_access_token
from servicehub.lib.settings import settings
from servicehub.models import Booking, Provider, Review, Service, User
from servicehub.models.bookings import BookingStatus, OCCUPYING_STATUSES, make_slot_key
from servicehub.models.services import ServiceCategory
from servicehub.models.users import UserType
from servicehub.services.booking_state_machine import Actor, ActorRole


def future_date(days: int = 7) -> date:
    return datetime.now(timezone.utc).date() + timedelta(days=days)


def slot_in(delta: timedelta) -> Tuple[date, str]:
    """Date and HH:MM, in BOOKING_TIMEZONE, of a slot starting roughly `delta` from now."""
    local = (utcnow() + delta).astimezone(ZoneInfo(settings.booking_timezone))
    return local.date(), local.strftime("%H:%M")


def auth_headers(user: User) -> dict:
    token = create_access_token(str(user.id), user.type.value)
    return {"Authorization": f"Bearer {token}"}


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=ActorRole(user.type.value))


class Factory:
    """Creates committed records for tests."""

    def __init__(self, session):
        self.session = session
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def user(self, user_type: UserType = UserType.CUSTOMER, name: Optional[str] = None) -> User:
        n = self._next()
        user = User(
            id=uuid4(),
            name=name or f"{user_type.value.title()} {n}",
            email=f"{user_type.value}{n}-{uuid4().hex[:6]}@example.com",
            type=user_type,
        )
        self.session.add(user)
        self.session.commit()
        return user

    def customer(self) -> User:
        return self.user(UserType.CUSTOMER)

    def admin(self) -> User:
        return self.user(UserType.ADMIN)

    def provider(self) -> User:
        user = self.user(UserType.PROVIDER)
        self.session.add(Provider(id=user.id))
        self.session.commit()
        return user

    def service(
        self,
        provider: User,
        name: str = "Home Deep Cleaning",
        base_price: float = 2500.0,
        duration_minutes: int = 120,
        is_active: bool = True,
        is_approved: bool = True,
        category: ServiceCategory = ServiceCategory.CLEANING,
    ) -> Service:
        service = Service(
            id=uuid4(),
            provider_id=provider.id,
            name=name,
            category=category,
            description=f"{name} at your place",
            base_price=base_price,
            currency="INR",
            duration_minutes=duration_minutes,
            is_active=is_active,
            is_approved=is_approved,
        )
        self.session.add(service)
        self.session.commit()
        return service

    def booking(
        self,
        customer: User,
        service: Service,
        status: BookingStatus = BookingStatus.PENDING,
        scheduled_date: Optional[date] = None,
        start_time: str = "10:00",
        updated_at: Optional[datetime] = None,
    ) -> Booking:
        scheduled_date = scheduled_date or future_date()
        now = datetime.now(timezone.utc)
        booking = Booking(
            id=uuid4(),
            booking_code=f"BKTEST{self._next():05d}{uuid4().hex[:4].upper()}",
            customer_id=customer.id,
            provider_id=service.provider_id,
            service_id=service.id,
            scheduled_date=scheduled_date,
            start_time=start_time,
            duration_estimated=service.duration_minutes,
            slot_key=(
                make_slot_key(service.provider_id, scheduled_date, start_time)
                if status in OCCUPYING_STATUSES else None
            ),
            agreed_amount=service.base_price,
            currency="INR",
            status=status,
            completed_at=now if status is BookingStatus.COMPLETED else None,
            created_at=now,
            updated_at=updated_at or now,
        )
        self.session.add(booking)
        self.session.commit()
        return booking

    def review(self, booking: Booking, rating: int, is_visible: bool = True) -> Review:
        now = datetime.now(timezone.utc)
        review = Review(
            id=uuid4(),
            booking_id=booking.id,
            customer_id=booking.customer_id,
            provider_id=booking.provider_id,
            service_id=booking.service_id,
            rating_overall=rating,
            comment="Good work",
            is_visible=is_visible,
            editable_until=now + timedelta(hours=24),
            created_at=now,
            updated_at=now,
        )
        booking.is_reviewed = True
        self.session.add(review)
        self.session.commit()
        return review
