"""
Adapters over collaborator-owned records the booking engine depends on:
the service catalog (bookable services) and provider lifetime counters.
"""
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from servicehub.lib.logging import get_logger
from servicehub.models.providers import Provider
from servicehub.models.services import Service

logger = get_logger(__name__)


@dataclass(frozen=True)
class BookableService:
    id: UUID
    provider_id: UUID
    base_price: float
    currency: Optional[str]
    duration_minutes: Optional[int]


class ServiceCatalog:
    """Looks up services that are active and approved."""

    def __init__(self, session: Session):
        self.session = session

    def get_bookable_service(self, service_id: UUID) -> Optional[BookableService]:
        stmt = select(Service).where(
            Service.id == service_id,
            Service.is_active.is_(True),
            Service.is_approved.is_(True),
        )
        service = self.session.execute(stmt).scalar_one_or_none()
        if service is None:
            return None
        return BookableService(
            id=service.id,
            provider_id=service.provider_id,
            base_price=float(service.base_price),
            currency=service.currency,
            duration_minutes=service.duration_minutes,
        )

    def increment_total_bookings(self, service_id: UUID) -> None:
        self.session.execute(
            update(Service)
            .where(Service.id == service_id)
            .values(total_bookings=Service.total_bookings + 1)
        )


class ProviderCounters:
    """Lifetime counters owned by the provider profile."""

    def __init__(self, session: Session):
        self.session = session

    def increment_completed(self, provider_id: UUID) -> None:
        result = self.session.execute(
            update(Provider)
            .where(Provider.id == provider_id)
            .values(completed_services=Provider.completed_services + 1)
        )
        if result.rowcount == 0:
            logger.warning(
                "Completed-services counter not incremented: provider profile missing",
                extra={"provider_id": str(provider_id)},
            )
