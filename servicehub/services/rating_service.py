"""
Rating aggregation engine.

Service and provider rating averages are a cache over the visible reviews
that reference them. Every trigger (review created, edited, hidden, shown or
deleted) runs a full recompute from the current visible set; nothing is
applied incrementally, so a missed update heals on the next trigger.

`_write_cache` is the only writer of the cached rating columns.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional, Union
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from servicehub.lib.logging import get_logger
from servicehub.lib.metrics import get_metrics_collector
from servicehub.models.providers import Provider
from servicehub.models.reviews import Review
from servicehub.models.services import Service
from servicehub.services.errors import NotFound

logger = get_logger(__name__)

_ONE_DP = Decimal("0.1")


@dataclass(frozen=True)
class RatingAggregate:
    average: float
    count: int

    def as_dict(self) -> Dict[str, Union[float, int]]:
        return {"average": self.average, "count": self.count}


def compute_aggregate(ratings: Iterable[int]) -> RatingAggregate:
    """
    Mean of the ratings rounded half-up to one decimal place, and their count.

    An empty set is a defined state: (0.0, 0).
    """
    values = list(ratings)
    if not values:
        return RatingAggregate(0.0, 0)
    mean = Decimal(sum(values)) / Decimal(len(values))
    return RatingAggregate(float(mean.quantize(_ONE_DP, rounding=ROUND_HALF_UP)), len(values))


def is_cache_consistent(average: Optional[float], count: Optional[int]) -> bool:
    """Cheap sanity check of a cached (average, count) pair."""
    if average is None or count is None:
        return False
    if count < 0 or not (0 <= average <= 5):
        return False
    if count == 0 and average != 0:
        return False
    return True


class RatingService:
    """Recomputes and serves the cached rating aggregates."""

    def __init__(self, session: Session):
        self.session = session
        self.metrics = get_metrics_collector()

    def _visible_ratings(self, column, entity_id: UUID) -> list[int]:
        stmt = select(Review.rating_overall).where(
            column == entity_id,
            Review.is_visible.is_(True),
        )
        return list(self.session.execute(stmt).scalars().all())

    @staticmethod
    def _write_cache(entity: Union[Service, Provider], aggregate: RatingAggregate) -> None:
        entity.rating_average = aggregate.average
        entity.rating_count = aggregate.count

    # ===== Full recompute =====

    def recompute_service_rating(self, service_id: UUID) -> RatingAggregate:
        """
        Recompute a service's aggregate from its visible reviews.

        Flushes but does not commit; the caller owns the transaction.
        """
        service = self.session.get(Service, service_id)
        if service is None:
            logger.warning("Rating recompute skipped: service missing", extra={"service_id": str(service_id)})
            return RatingAggregate(0.0, 0)

        aggregate = compute_aggregate(self._visible_ratings(Review.service_id, service_id))
        self._write_cache(service, aggregate)
        self.session.flush()
        self.metrics.increment_rating_recomputes("service")

        logger.debug(
            "Service rating recomputed",
            extra={"service_id": str(service_id), "average": aggregate.average, "count": aggregate.count},
        )
        return aggregate

    def recompute_provider_rating(self, provider_id: UUID) -> RatingAggregate:
        """
        Recompute a provider's aggregate from its visible reviews.

        Flushes but does not commit; the caller owns the transaction.
        """
        provider = self.session.get(Provider, provider_id)
        if provider is None:
            logger.warning("Rating recompute skipped: provider missing", extra={"provider_id": str(provider_id)})
            return RatingAggregate(0.0, 0)

        aggregate = compute_aggregate(self._visible_ratings(Review.provider_id, provider_id))
        self._write_cache(provider, aggregate)
        self.session.flush()
        self.metrics.increment_rating_recomputes("provider")

        logger.debug(
            "Provider rating recomputed",
            extra={"provider_id": str(provider_id), "average": aggregate.average, "count": aggregate.count},
        )
        return aggregate

    def recompute_for_review(self, review: Review) -> None:
        """Recompute both aggregates a review contributes to."""
        self.recompute_service_rating(review.service_id)
        self.recompute_provider_rating(review.provider_id)

    def recalculate_all_ratings(self) -> Dict[str, int]:
        """
        Overwrite every service and provider aggregate from the visible reviews.

        Safe to run alongside live traffic: each entity is recomputed
        independently from whatever review set is visible at the time.

        Returns:
            {"services_updated": n, "providers_updated": m}
        """
        service_ids = self.session.execute(select(Service.id)).scalars().all()
        for service_id in service_ids:
            self.recompute_service_rating(service_id)

        provider_ids = self.session.execute(select(Provider.id)).scalars().all()
        for provider_id in provider_ids:
            self.recompute_provider_rating(provider_id)

        self.session.commit()

        result = {"services_updated": len(service_ids), "providers_updated": len(provider_ids)}
        logger.info("Recalculated all ratings", extra=result)
        return result

    # ===== Reads =====

    def get_service_rating(self, service_id: UUID) -> RatingAggregate:
        """Cached service aggregate, recomputed first if the cache looks corrupt."""
        service = self.session.get(Service, service_id)
        if service is None:
            raise NotFound("Service", service_id)
        if is_cache_consistent(service.rating_average, service.rating_count):
            return RatingAggregate(float(service.rating_average), service.rating_count)

        logger.error(
            "Corrupt service rating cache, recomputing",
            extra={
                "service_id": str(service_id),
                "cached_average": service.rating_average,
                "cached_count": service.rating_count,
            },
        )
        self.metrics.increment_rating_cache_repairs("service")
        aggregate = self.recompute_service_rating(service_id)
        self.session.commit()
        return aggregate

    def get_provider_rating(self, provider_id: UUID) -> RatingAggregate:
        """Cached provider aggregate, recomputed first if the cache looks corrupt."""
        provider = self.session.get(Provider, provider_id)
        if provider is None:
            raise NotFound("Provider", provider_id)
        if is_cache_consistent(provider.rating_average, provider.rating_count):
            return RatingAggregate(float(provider.rating_average), provider.rating_count)

        logger.error(
            "Corrupt provider rating cache, recomputing",
            extra={
                "provider_id": str(provider_id),
                "cached_average": provider.rating_average,
                "cached_count": provider.rating_count,
            },
        )
        self.metrics.increment_rating_cache_repairs("provider")
        aggregate = self.recompute_provider_rating(provider_id)
        self.session.commit()
        return aggregate

    def rating_distribution(
        self,
        provider_id: Optional[UUID] = None,
        service_id: Optional[UUID] = None,
    ) -> Dict[int, int]:
        """Histogram {1..5: count} of visible overall ratings."""
        stmt = (
            select(Review.rating_overall, func.count())
            .where(Review.is_visible.is_(True))
            .group_by(Review.rating_overall)
        )
        if provider_id is not None:
            stmt = stmt.where(Review.provider_id == provider_id)
        if service_id is not None:
            stmt = stmt.where(Review.service_id == service_id)

        distribution = {star: 0 for star in range(1, 6)}
        for rating, count in self.session.execute(stmt).all():
            distribution[int(rating)] = count
        return distribution
