"""
FastAPI application entry point with health check route.
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.exceptions import RequestValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from servicehub.api.routes import admin, bookings, providers, reviews, services
from servicehub.api.middleware.error_handler import (
    AppException,
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)
from servicehub.lib.logging import get_logger, set_correlation_id
from servicehub.lib.metrics import get_metrics_collector
from servicehub.lib.settings import settings

logger = get_logger(__name__)


# Correlation ID middleware
class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation_id to all requests for distributed tracing.
    Accepts X-Correlation-ID from incoming requests or generates a new one.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

        # Request state for the error handlers, context var for every log line
        request.state.correlation_id = correlation_id
        set_correlation_id(correlation_id)

        logger.info(
            "Incoming request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client": request.client.host if request.client else None,
            }
        )

        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id

        logger.info(
            "Response sent",
            extra={
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup/shutdown events.
    """
    logger.info(f"{settings.app_name} starting up...")
    yield
    logger.info(f"{settings.app_name} shutting down...")


app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Booking lifecycle, reviews and rating aggregation for the service marketplace",
    lifespan=lifespan,
)


# CORS middleware - origins come from CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Correlation ID middleware
app.add_middleware(CorrelationIdMiddleware)


# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


# Include routers
app.include_router(bookings.router)
app.include_router(reviews.router)
app.include_router(services.router)
app.include_router(providers.router)
app.include_router(admin.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics_endpoint():
    """
    Prometheus-compatible metrics endpoint.

    Metrics exposed:
    - bookings_created_total, slot_conflicts_total
    - booking_transitions_total by from_status, to_status and role
    - reviews_total by action
    - rating_recomputes_total and rating_cache_repairs_total by entity

    Returns:
        Prometheus text format metrics
    """
    return PlainTextResponse(
        content=get_metrics_collector().export_prometheus(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
