"""
Integration tests for the Reviews API and the admin moderation endpoints.
"""
from uuid import uuid4

import pytest

from servicehub.models.bookings import BookingStatus
from tests.helpers import auth_headers, future_date


@pytest.fixture
def completed(factory):
    provider = factory.provider()
    service = factory.service(provider)
    customer = factory.customer()
    booking = factory.booking(customer, service, status=BookingStatus.COMPLETED, scheduled_date=future_date(-1))
    return provider, service, customer, booking


def post_review(client, customer, booking, overall=5, **extra):
    payload = {
        "booking_id": str(booking.id),
        "rating": {"overall": overall},
        "comment": "Spotless kitchen, arrived on time",
        **extra,
    }
    return client.post("/reviews", json=payload, headers=auth_headers(customer))


@pytest.mark.integration
def test_create_review(client, completed):
    provider, service, customer, booking = completed

    response = post_review(
        client, customer, booking, overall=4,
        rating={"overall": 4, "quality": 5, "value": 3},
        pros=["Punctual"],
    )

    assert response.status_code == 201
    data = response.json()
    assert data["booking_id"] == str(booking.id)
    assert data["customer_id"] == str(customer.id)
    assert data["rating"] == {"overall": 4, "quality": 5, "punctuality": None, "communication": None, "value": 3}
    assert data["detailed_average"] == 4.0
    assert data["pros"] == ["Punctual"]
    assert data["is_editable"] is True

    rating = client.get(f"/services/{service.id}/rating").json()
    assert (rating["average"], rating["count"]) == (4.0, 1)
    assert client.get(f"/providers/{provider.id}/rating").json()["count"] == 1


@pytest.mark.integration
def test_duplicate_review_conflicts(client, completed):
    _, _, customer, booking = completed
    assert post_review(client, customer, booking).status_code == 201

    response = post_review(client, customer, booking)

    assert response.status_code == 409
    assert response.json()["code"] == "already_reviewed"


@pytest.mark.integration
def test_review_of_pending_booking_rejected(client, factory):
    service = factory.service(factory.provider())
    customer = factory.customer()
    booking = factory.booking(customer, service)

    response = post_review(client, customer, booking)

    assert response.status_code == 400
    assert response.json()["code"] == "not_completed"


@pytest.mark.integration
@pytest.mark.parametrize("rating", [{"overall": 0}, {"overall": 6}, {"overall": 5, "quality": 7}, {}])
def test_review_rating_range(client, completed, rating):
    _, _, customer, booking = completed
    response = post_review(client, customer, booking, rating=rating)
    assert response.status_code == 422


@pytest.mark.integration
def test_only_customers_write_reviews(client, completed):
    provider, _, _, booking = completed
    assert post_review(client, provider, booking).status_code == 403


@pytest.mark.integration
def test_other_customer_cannot_review(client, completed, factory):
    _, _, _, booking = completed
    response = post_review(client, factory.customer(), booking)

    assert response.status_code == 403


@pytest.mark.integration
def test_edit_review(client, completed):
    _, service, customer, booking = completed
    review_id = post_review(client, customer, booking, overall=5).json()["id"]

    response = client.put(
        f"/reviews/{review_id}",
        json={"rating": {"overall": 3}, "comment": "Good, not great"},
        headers=auth_headers(customer),
    )

    assert response.status_code == 200
    assert response.json()["rating"]["overall"] == 3
    assert response.json()["comment"] == "Good, not great"
    assert client.get(f"/services/{service.id}/rating").json()["average"] == 3.0


@pytest.mark.integration
def test_edit_someone_elses_review(client, completed, factory):
    _, _, customer, booking = completed
    review_id = post_review(client, customer, booking).json()["id"]

    response = client.put(
        f"/reviews/{review_id}", json={"comment": "Mine now"}, headers=auth_headers(factory.customer())
    )
    assert response.status_code == 404


@pytest.mark.integration
def test_pending_reviews(client, completed, factory):
    _, service, customer, booking = completed
    second = factory.booking(customer, service, status=BookingStatus.COMPLETED, start_time="14:00")

    before = client.get("/reviews/pending", headers=auth_headers(customer)).json()
    assert {b["id"] for b in before} == {str(booking.id), str(second.id)}

    post_review(client, customer, booking)

    after = client.get("/reviews/pending", headers=auth_headers(customer)).json()
    assert [b["id"] for b in after] == [str(second.id)]


@pytest.mark.integration
def test_listing_hides_anonymous_reviewer(client, completed, factory):
    provider, service, customer, booking = completed
    post_review(client, customer, booking, is_anonymous=True)
    other = factory.customer()
    second = factory.booking(other, service, status=BookingStatus.COMPLETED, start_time="15:00")
    post_review(client, other, second, overall=3)

    data = client.get(f"/reviews/service/{service.id}?sort=rating_high").json()

    assert data["total"] == 2
    assert data["reviews"][0]["is_anonymous"] is True
    assert data["reviews"][0]["customer_id"] is None
    assert data["reviews"][1]["customer_id"] == str(other.id)

    by_provider = client.get(f"/reviews/provider/{provider.id}?rating=3").json()
    assert [r["rating"]["overall"] for r in by_provider["reviews"]] == [3]


@pytest.mark.integration
def test_listing_rejects_unknown_sort(client):
    response = client.get(f"/reviews/service/{uuid4()}?sort=random")
    assert response.status_code == 422


# ===== Helpful votes and provider responses =====

@pytest.mark.integration
def test_helpful_vote_round_trip(client, completed, factory):
    _, _, customer, booking = completed
    review_id = post_review(client, customer, booking).json()["id"]
    voter = auth_headers(factory.customer())

    marked = client.post(f"/reviews/{review_id}/helpful", headers=voter)
    again = client.post(f"/reviews/{review_id}/helpful", headers=voter)
    removed = client.delete(f"/reviews/{review_id}/helpful", headers=voter)

    assert marked.status_code == 200
    assert marked.json() == {"review_id": review_id, "helpful_count": 1}
    assert again.json()["helpful_count"] == 1
    assert removed.json()["helpful_count"] == 0


@pytest.mark.integration
def test_helpful_vote_requires_login(client, completed):
    _, _, customer, booking = completed
    review_id = post_review(client, customer, booking).json()["id"]

    assert client.post(f"/reviews/{review_id}/helpful").status_code in (401, 403)
    assert client.post(f"/reviews/{uuid4()}/helpful", headers=auth_headers(customer)).status_code == 404


@pytest.mark.integration
def test_provider_reply_shown_in_listing(client, completed):
    provider, service, customer, booking = completed
    review_id = post_review(client, customer, booking, overall=3).json()["id"]

    response = client.post(
        f"/reviews/{review_id}/response",
        json={"message": "Thanks, we have retrained the team"},
        headers=auth_headers(provider),
    )

    assert response.status_code == 200
    reply = response.json()["provider_response"]
    assert reply["message"] == "Thanks, we have retrained the team"
    assert reply["is_public"] is True
    assert reply["responded_at"] is not None
    listed = client.get(f"/reviews/service/{service.id}").json()["reviews"][0]
    assert listed["provider_response"]["message"] == "Thanks, we have retrained the team"


@pytest.mark.integration
def test_private_provider_reply_hidden_from_listing(client, completed):
    provider, service, customer, booking = completed
    review_id = post_review(client, customer, booking).json()["id"]

    response = client.post(
        f"/reviews/{review_id}/response",
        json={"message": "Glad you liked it", "is_public": False},
        headers=auth_headers(provider),
    )

    assert response.json()["provider_response"]["is_public"] is False
    assert client.get(f"/reviews/service/{service.id}").json()["reviews"][0]["provider_response"] is None


@pytest.mark.integration
def test_only_reviewed_provider_can_reply(client, completed, factory):
    _, _, customer, booking = completed
    review_id = post_review(client, customer, booking).json()["id"]

    other = client.post(
        f"/reviews/{review_id}/response", json={"message": "Hello"}, headers=auth_headers(factory.provider())
    )
    blank = client.post(f"/reviews/{review_id}/response", json={"message": ""}, headers=auth_headers(customer))

    assert other.status_code == 403
    assert other.json()["code"] == "forbidden"
    assert blank.status_code == 422


# ===== Admin moderation =====

@pytest.mark.integration
def test_admin_hides_and_restores_review(client, completed, factory):
    _, service, customer, booking = completed
    review_id = post_review(client, customer, booking, overall=2).json()["id"]
    admin = auth_headers(factory.admin())

    hidden = client.put(f"/admin/reviews/{review_id}/visibility", json={"is_visible": False}, headers=admin)

    assert hidden.status_code == 200
    assert hidden.json()["is_visible"] is False
    assert client.get(f"/services/{service.id}/rating").json()["count"] == 0
    assert client.get(f"/reviews/service/{service.id}").json()["total"] == 0

    client.put(f"/admin/reviews/{review_id}/visibility", json={"is_visible": True}, headers=admin)
    assert client.get(f"/services/{service.id}/rating").json()["average"] == 2.0


@pytest.mark.integration
def test_admin_deletes_review(client, completed, factory):
    _, service, customer, booking = completed
    review_id = post_review(client, customer, booking).json()["id"]

    response = client.delete(f"/admin/reviews/{review_id}", headers=auth_headers(factory.admin()))

    assert response.status_code == 204
    assert client.get(f"/services/{service.id}/rating").json()["count"] == 0
    pending = client.get("/reviews/pending", headers=auth_headers(customer)).json()
    assert [b["id"] for b in pending] == [str(booking.id)]


@pytest.mark.integration
def test_customer_cannot_moderate(client, completed):
    _, _, customer, booking = completed
    review_id = post_review(client, customer, booking).json()["id"]

    response = client.delete(f"/admin/reviews/{review_id}", headers=auth_headers(customer))
    assert response.status_code == 403


@pytest.mark.integration
def test_admin_recalculates_ratings(client, completed, factory):
    provider, service, customer, booking = completed
    factory.review(booking, 3)
    admin = factory.admin()

    response = client.post("/admin/ratings/recalculate", headers=auth_headers(admin))

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "done"
    assert data["services_updated"] == 1
    assert data["providers_updated"] == 1
    assert data["finished_at"] is not None
    assert client.get(f"/services/{service.id}/rating").json() == {
        "average": 3.0,
        "count": 1,
        "distribution": {"1": 0, "2": 0, "3": 1, "4": 0, "5": 0},
    }
