"""
Services API routes.
"""
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session
from pydantic import BaseModel

from servicehub.lib.db import get_db
from servicehub.models.services import Service, ServiceCategory
from servicehub.services.rating_service import RatingService


# Pydantic schemas
class RatingSummary(BaseModel):
    average: float
    count: int


class ServiceResponse(BaseModel):
    """Bookable service with its rating aggregate."""
    id: UUID
    provider_id: UUID
    name: str
    category: str
    description: Optional[str] = None
    base_price: float
    currency: Optional[str] = None
    duration_minutes: int
    total_bookings: int
    rating: RatingSummary


class RatingDetailResponse(BaseModel):
    average: float
    count: int
    distribution: Dict[int, int]


# Router
router = APIRouter(prefix="/services", tags=["services"])


@router.get("", response_model=List[ServiceResponse])
def list_services(
    category: Optional[ServiceCategory] = Query(None, description="Filter by category"),
    provider_id: Optional[UUID] = Query(None, description="Filter by provider"),
    db: Session = Depends(get_db),
) -> List[ServiceResponse]:
    """
    List bookable services.

    Only active, approved services are returned. Ratings go through the
    validated read path, so a corrupt cache is repaired before it is served.

    Query parameters:
    - category: Filter by service category
    - provider_id: Filter by provider
    """
    stmt = select(Service).where(Service.is_active.is_(True), Service.is_approved.is_(True))

    if category:
        stmt = stmt.where(Service.category == category)
    if provider_id:
        stmt = stmt.where(Service.provider_id == provider_id)

    stmt = stmt.order_by(Service.category, Service.name)
    services = db.execute(stmt).scalars().all()

    ratings = RatingService(db)
    return [
        ServiceResponse(
            id=s.id,
            provider_id=s.provider_id,
            name=s.name,
            category=s.category.value,
            description=s.description,
            base_price=float(s.base_price),
            currency=s.currency,
            duration_minutes=s.duration_minutes,
            total_bookings=s.total_bookings,
            rating=RatingSummary(**ratings.get_service_rating(s.id).as_dict()),
        )
        for s in services
    ]


@router.get("/{service_id}/rating", response_model=RatingDetailResponse)
def get_service_rating(service_id: UUID, db: Session = Depends(get_db)) -> RatingDetailResponse:
    """Rating aggregate of a service with its star distribution."""
    ratings = RatingService(db)
    aggregate = ratings.get_service_rating(service_id)
    return RatingDetailResponse(
        average=aggregate.average,
        count=aggregate.count,
        distribution=ratings.rating_distribution(service_id=service_id),
    )
