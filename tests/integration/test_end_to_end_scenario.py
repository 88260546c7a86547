"""
End-to-end booking scenario: book, confirm, complete, review, rate.

Walks one booking through its whole lifecycle over HTTP and checks the
side effects every step leaves behind.
"""
import pytest

from servicehub.lib.metrics import get_metrics_collector
from servicehub.models import Provider, Service
from tests.helpers import auth_headers, future_date


@pytest.mark.integration
def test_booking_to_rating_flow(client, db, factory):
    provider = factory.provider()
    service = factory.service(provider, name="Sofa Shampoo", base_price=1800.0, duration_minutes=90)
    customer = factory.customer()
    rival = factory.customer()
    as_customer = auth_headers(customer)
    as_provider = auth_headers(provider)

    # 1. Book a slot; the same slot is then unavailable to anyone else
    created = client.post(
        "/bookings",
        json={"service_id": str(service.id), "scheduled_date": future_date(5).isoformat(), "start_time": "11:00"},
        headers=as_customer,
    )
    assert created.status_code == 201
    booking_id = created.json()["id"]

    clash = client.post(
        "/bookings",
        json={"service_id": str(service.id), "scheduled_date": future_date(5).isoformat(), "start_time": "11:00"},
        headers=auth_headers(rival),
    )
    assert clash.status_code == 409

    # 2. Nothing to review yet
    assert client.get("/reviews/pending", headers=as_customer).json() == []
    early = client.post(
        "/reviews",
        json={"booking_id": booking_id, "rating": {"overall": 5}, "comment": "Too soon"},
        headers=as_customer,
    )
    assert early.status_code == 400

    # 3. Provider confirms, starts and completes the job
    for target in ("confirmed", "in_progress", "completed"):
        step = client.put(f"/bookings/{booking_id}/status", json={"status": target}, headers=as_provider)
        assert step.status_code == 200

    # 4. The completed booking now awaits a review
    pending = client.get("/reviews/pending", headers=as_customer).json()
    assert [b["id"] for b in pending] == [booking_id]

    # 5. Review it; aggregates follow immediately
    review = client.post(
        "/reviews",
        json={
            "booking_id": booking_id,
            "rating": {"overall": 4, "quality": 4, "punctuality": 5},
            "comment": "Sofa looks new",
            "would_recommend": True,
        },
        headers=as_customer,
    )
    assert review.status_code == 201

    assert client.get("/reviews/pending", headers=as_customer).json() == []
    booking = client.get(f"/bookings/{booking_id}", headers=as_customer).json()
    assert booking["is_reviewed"] is True

    listed = client.get(f"/services?provider_id={provider.id}").json()
    assert listed[0]["rating"] == {"average": 4.0, "count": 1}
    assert listed[0]["total_bookings"] == 1

    db.expire_all()
    assert db.get(Provider, provider.id).completed_services == 1
    assert db.get(Provider, provider.id).rating_average == 4.0
    assert db.get(Service, service.id).rating_count == 1

    # 6. Counters recorded along the way
    metrics = get_metrics_collector()
    assert metrics.get_counter_value("bookings_created_total") == 1
    assert metrics.get_counter_value("slot_conflicts_total") == 1
    assert metrics.get_counter_value(
        "booking_transitions_total",
        {"from_status": "in_progress", "to_status": "completed", "role": "provider"},
    ) == 1
    assert metrics.get_counter_value("reviews_total", {"action": "created"}) == 1
