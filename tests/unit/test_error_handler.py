"""
Tests for error handler middleware, the exception hierarchy and the typed booking errors.
"""
from datetime import date, datetime, timezone
from uuid import uuid4

import pytest
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from servicehub.api.middleware.error_handler import (
    AppException,
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
    app_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from servicehub.services.errors import (
    AlreadyReviewed,
    Forbidden,
    NotCompleted,
    NotEditable,
    NotFound,
    PastDate,
    SelfBooking,
    SlotConflict,
    WindowExpired,
)


def make_app() -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    return app


@pytest.mark.unit
def test_not_found_exception():
    """Test NotFoundException creation."""
    exc = NotFoundException("Booking", "123")

    assert exc.message == "Booking with id '123' not found"
    assert exc.status_code == 404
    assert exc.code == "not_found"
    assert exc.details == {"resource": "Booking", "resource_id": "123"}


@pytest.mark.unit
def test_not_found_exception_without_id():
    exc = NotFoundException("Booking")

    assert exc.message == "Booking not found"
    assert exc.status_code == 404


@pytest.mark.unit
@pytest.mark.parametrize(
    "exc,status_code",
    [
        (UnauthorizedException(), 401),
        (ForbiddenException("Access denied"), 403),
        (BadRequestException("Invalid input"), 400),
        (ConflictException("Already exists"), 409),
    ],
)
def test_base_exception_status_codes(exc, status_code):
    assert exc.status_code == status_code


@pytest.mark.unit
def test_slot_conflict_details():
    provider_id = uuid4()
    exc = SlotConflict(provider_id, date(2030, 1, 5), "10:00")

    assert isinstance(exc, ConflictException)
    assert exc.status_code == 409
    assert exc.code == "slot_conflict"
    assert exc.details == {
        "provider_id": str(provider_id),
        "scheduled_date": "2030-01-05",
        "start_time": "10:00",
    }


@pytest.mark.unit
def test_window_expired_details():
    deadline = datetime(2030, 1, 5, 8, 0, tzinfo=timezone.utc)
    exc = WindowExpired("cancelled", "confirmed", deadline)

    assert exc.status_code == 400
    assert exc.message == "Booking can no longer be cancelled"
    assert exc.details == {
        "action": "cancelled",
        "current_status": "confirmed",
        "deadline": deadline.isoformat(),
    }


@pytest.mark.unit
def test_window_expired_without_deadline():
    assert WindowExpired("modified", "completed", None).details["deadline"] is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "exc,status_code,code",
    [
        (PastDate(datetime(2020, 1, 1, tzinfo=timezone.utc), datetime(2021, 1, 1, tzinfo=timezone.utc)), 400, "past_date"),
        (SelfBooking(uuid4()), 400, "self_booking"),
        (AlreadyReviewed(uuid4()), 409, "already_reviewed"),
        (NotCompleted(uuid4(), "confirmed"), 400, "not_completed"),
        (NotEditable(uuid4(), None), 400, "not_editable"),
        (NotFound("Review", uuid4()), 404, "not_found"),
        (Forbidden("Access denied"), 403, "forbidden"),
    ],
)
def test_typed_errors(exc, status_code, code):
    assert exc.status_code == status_code
    assert exc.code == code


@pytest.mark.integration
def test_typed_error_rendered_with_details():
    """Typed errors keep their context in the response instead of becoming a 500."""
    app = make_app()
    provider_id = uuid4()

    @app.get("/conflict")
    async def conflict():
        raise SlotConflict(provider_id, date(2030, 1, 5), "10:00")

    client = TestClient(app, raise_server_exceptions=False)
    response = client.get("/conflict")

    assert response.status_code == 409
    data = response.json()
    assert data["error"] == "This time slot is already booked"
    assert data["code"] == "slot_conflict"
    assert data["details"]["provider_id"] == str(provider_id)
    assert "correlation_id" in data


@pytest.mark.integration
def test_validation_error_handler():
    """Test Pydantic validation error handler."""
    app = make_app()

    class SlotModel(BaseModel):
        start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
        rating: int = Field(..., ge=1, le=5)

    @app.post("/test-validation")
    async def test_validation(data: SlotModel):
        return {"ok": True}

    client = TestClient(app)
    response = client.post("/test-validation", json={"start_time": "10am", "rating": 9})

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "Validation error"
    assert data["code"] == "validation_error"
    assert len(data["details"]["errors"]) == 2


@pytest.mark.integration
def test_http_exception_handler():
    app = make_app()

    @app.get("/test-http-error")
    async def test_http_error():
        raise StarletteHTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})

    client = TestClient(app)
    response = client.get("/test-http-error")

    assert response.status_code == 401
    assert response.json()["error"] == "Not authenticated"
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.integration
def test_unhandled_exception_handler():
    """Unexpected errors become a generic 500."""
    app = make_app()

    @app.get("/test-unhandled")
    async def test_unhandled():
        raise ValueError("Unexpected error")

    client = TestClient(app, raise_server_exceptions=False)
    response = client.get("/test-unhandled")

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "Internal server error"
    assert data["code"] == "internal_error"


@pytest.mark.integration
def test_exception_with_correlation_id():
    """Test that correlation ID is included in error response."""
    app = make_app()

    @app.get("/test-correlation")
    async def test_correlation(request: Request):
        request.state.correlation_id = "test-correlation-123"
        raise BadRequestException("Test error")

    client = TestClient(app)
    response = client.get("/test-correlation")

    assert response.status_code == 400
    assert response.json()["correlation_id"] == "test-correlation-123"


@pytest.mark.integration
def test_unauthorized_exception_asks_for_bearer():
    app = make_app()

    @app.get("/private")
    async def private():
        raise UnauthorizedException("Invalid authentication token")

    response = TestClient(app).get("/private")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.json() == {
        "error": "Invalid authentication token",
        "code": "unauthorized",
        "correlation_id": "unknown",
    }
