"""
Provider API routes.
"""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from servicehub.api.routes.services import RatingDetailResponse
from servicehub.lib.db import get_db
from servicehub.services.rating_service import RatingService


router = APIRouter(prefix="/providers", tags=["providers"])


@router.get("/{provider_id}/rating", response_model=RatingDetailResponse)
def get_provider_rating(provider_id: UUID, db: Session = Depends(get_db)) -> RatingDetailResponse:
    """Rating aggregate of a provider with its star distribution."""
    ratings = RatingService(db)
    aggregate = ratings.get_provider_rating(provider_id)
    return RatingDetailResponse(
        average=aggregate.average,
        count=aggregate.count,
        distribution=ratings.rating_distribution(provider_id=provider_id),
    )
