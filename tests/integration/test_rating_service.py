"""
Integration tests for rating aggregation, cache repair and the recalculation job.
"""
from uuid import uuid4

import pytest
from sqlalchemy import update

from servicehub.jobs.recalculate_ratings import run_rating_recalculation
from servicehub.lib.metrics import get_metrics_collector
from servicehub.models import Provider, Service
from servicehub.models.bookings import BookingStatus
from servicehub.models.jobs import Job, JobStatus, JobType
from servicehub.services.errors import NotFound
from servicehub.services.rating_service import RatingService


def seed_reviews(factory, service, ratings, visible=True):
    customer = factory.customer()
    reviews = []
    for i, rating in enumerate(ratings):
        booking = factory.booking(
            customer, service, status=BookingStatus.COMPLETED, start_time=f"{8 + i:02d}:00"
        )
        reviews.append(factory.review(booking, rating, is_visible=visible))
    return reviews


@pytest.mark.integration
def test_recompute_service_rating(db, factory):
    service = factory.service(factory.provider())
    seed_reviews(factory, service, [5, 4, 4])

    aggregate = RatingService(db).recompute_service_rating(service.id)
    db.commit()

    assert (aggregate.average, aggregate.count) == (4.3, 3)
    db.expire_all()
    assert db.get(Service, service.id).rating_average == 4.3
    assert db.get(Service, service.id).rating_count == 3


@pytest.mark.integration
def test_hidden_reviews_are_excluded(db, factory):
    provider = factory.provider()
    service = factory.service(provider)
    seed_reviews(factory, service, [5, 5])
    seed_reviews(factory, service, [1, 1, 1], visible=False)

    aggregate = RatingService(db).recompute_provider_rating(provider.id)

    assert aggregate.as_dict() == {"average": 5.0, "count": 2}


@pytest.mark.integration
def test_no_visible_reviews_resets_to_zero(db, factory):
    service = factory.service(factory.provider())
    seed_reviews(factory, service, [3], visible=False)
    db.execute(update(Service).where(Service.id == service.id).values(rating_average=3.0, rating_count=1))
    db.commit()

    aggregate = RatingService(db).recompute_service_rating(service.id)

    assert (aggregate.average, aggregate.count) == (0.0, 0)


@pytest.mark.integration
def test_recompute_missing_entity_is_skipped(db):
    aggregate = RatingService(db).recompute_service_rating(uuid4())
    assert (aggregate.average, aggregate.count) == (0.0, 0)


@pytest.mark.integration
def test_provider_aggregate_spans_services(db, factory):
    provider = factory.provider()
    cleaning = factory.service(provider, name="Cleaning")
    plumbing = factory.service(provider, name="Plumbing")
    seed_reviews(factory, cleaning, [5])
    seed_reviews(factory, plumbing, [2])

    rating = RatingService(db)

    assert rating.recompute_provider_rating(provider.id).as_dict() == {"average": 3.5, "count": 2}
    assert rating.recompute_service_rating(cleaning.id).average == 5.0
    assert rating.recompute_service_rating(plumbing.id).average == 2.0


@pytest.mark.integration
def test_recalculate_all_overwrites_caches(db, factory):
    provider = factory.provider()
    other = factory.provider()
    service = factory.service(provider)
    idle = factory.service(other)
    seed_reviews(factory, service, [4, 5])
    db.execute(update(Service).values(rating_average=1.0, rating_count=9))
    db.execute(update(Provider).values(rating_average=1.0, rating_count=9))
    db.commit()

    result = RatingService(db).recalculate_all_ratings()

    assert result == {"services_updated": 2, "providers_updated": 2}
    db.expire_all()
    assert (db.get(Service, service.id).rating_average, db.get(Service, service.id).rating_count) == (4.5, 2)
    assert (db.get(Service, idle.id).rating_average, db.get(Service, idle.id).rating_count) == (0.0, 0)
    assert (db.get(Provider, provider.id).rating_average, db.get(Provider, provider.id).rating_count) == (4.5, 2)
    assert (db.get(Provider, other.id).rating_average, db.get(Provider, other.id).rating_count) == (0.0, 0)


@pytest.mark.integration
def test_recalculate_all_is_idempotent(db, factory):
    service = factory.service(factory.provider())
    seed_reviews(factory, service, [1, 2, 2])
    rating = RatingService(db)

    rating.recalculate_all_ratings()
    rating.recalculate_all_ratings()

    db.expire_all()
    assert (db.get(Service, service.id).rating_average, db.get(Service, service.id).rating_count) == (1.7, 3)


# ===== Reads =====

@pytest.mark.integration
def test_get_rating_serves_consistent_cache(db, factory):
    service = factory.service(factory.provider())
    db.execute(update(Service).where(Service.id == service.id).values(rating_average=4.2, rating_count=17))
    db.commit()

    aggregate = RatingService(db).get_service_rating(service.id)

    assert (aggregate.average, aggregate.count) == (4.2, 17)
    assert get_metrics_collector().get_counter_value("rating_cache_repairs_total", {"entity": "service"}) == 0


@pytest.mark.integration
@pytest.mark.parametrize("average,count", [(4.0, 0), (7.5, 3), (2.0, -1)])
def test_corrupt_service_cache_is_repaired_on_read(db, factory, average, count):
    service = factory.service(factory.provider())
    seed_reviews(factory, service, [3, 4])
    db.execute(update(Service).where(Service.id == service.id).values(rating_average=average, rating_count=count))
    db.commit()

    aggregate = RatingService(db).get_service_rating(service.id)

    assert (aggregate.average, aggregate.count) == (3.5, 2)
    db.expire_all()
    assert db.get(Service, service.id).rating_count == 2
    assert get_metrics_collector().get_counter_value("rating_cache_repairs_total", {"entity": "service"}) == 1


@pytest.mark.integration
def test_corrupt_provider_cache_is_repaired_on_read(db, factory):
    provider = factory.provider()
    seed_reviews(factory, factory.service(provider), [5])
    db.execute(update(Provider).where(Provider.id == provider.id).values(rating_average=9.9, rating_count=1))
    db.commit()

    aggregate = RatingService(db).get_provider_rating(provider.id)

    assert (aggregate.average, aggregate.count) == (5.0, 1)


@pytest.mark.integration
def test_get_rating_unknown_entity(db):
    with pytest.raises(NotFound):
        RatingService(db).get_service_rating(uuid4())
    with pytest.raises(NotFound):
        RatingService(db).get_provider_rating(uuid4())


@pytest.mark.integration
def test_rating_distribution(db, factory):
    provider = factory.provider()
    service = factory.service(provider)
    other = factory.service(factory.provider())
    seed_reviews(factory, service, [5, 5, 4, 1])
    seed_reviews(factory, service, [2], visible=False)
    seed_reviews(factory, other, [3])
    rating = RatingService(db)

    assert rating.rating_distribution(service_id=service.id) == {1: 1, 2: 0, 3: 0, 4: 1, 5: 2}
    assert rating.rating_distribution(provider_id=provider.id) == {1: 1, 2: 0, 3: 0, 4: 1, 5: 2}
    assert rating.rating_distribution() == {1: 1, 2: 0, 3: 1, 4: 1, 5: 2}


# ===== Job =====

@pytest.mark.integration
def test_recalculation_job_records_result(db, factory):
    service = factory.service(factory.provider())
    seed_reviews(factory, service, [4])

    job = run_rating_recalculation(db, triggered_by="tester")

    db.expire_all()
    stored = db.get(Job, job.id)
    assert stored.type is JobType.RATING_RECALCULATION
    assert stored.status is JobStatus.DONE
    assert stored.triggered_by == "tester"
    assert stored.result == {"services_updated": 1, "providers_updated": 1}
    assert stored.finished_at is not None
    assert db.get(Service, service.id).rating_average == 4.0


@pytest.mark.integration
def test_recalculation_job_marks_failure(db, monkeypatch):
    def boom(self):
        raise RuntimeError("database went away")

    monkeypatch.setattr(RatingService, "recalculate_all_ratings", boom)

    with pytest.raises(RuntimeError):
        run_rating_recalculation(db)

    db.expire_all()
    job = db.query(Job).one()
    assert job.status is JobStatus.FAILED
    assert job.error == "database went away"
    assert job.triggered_by == "cli"
