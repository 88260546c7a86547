"""
Error handler middleware and custom exceptions.

Every error leaves the API in the same envelope:

    {"error": <message>, "code": <machine code>, "correlation_id": ..., "details": {...}}

`details` is omitted when empty. The booking and review outcomes in
servicehub.services.errors derive from the exceptions below, so they are
rendered here with their context instead of as a generic 500.
"""
import logging
from typing import Optional, Dict, Any
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from servicehub.lib.logging import get_logger

logger = get_logger(__name__)


# Custom exception classes
class AppException(Exception):
    """Base application exception; `code` is the machine-readable error kind."""

    code = "app_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.details = details or {}
        self.headers = headers
        super().__init__(message)


class NotFoundException(AppException):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(message, details={"resource": resource, "resource_id": resource_id})


class UnauthorizedException(AppException):
    """Missing or unusable credentials; asks the client for a bearer token."""

    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenException(AppException):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class BadRequestException(AppException):
    code = "bad_request"
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictException(AppException):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


def error_response(
    request: Request,
    status_code: int,
    message: str,
    code: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Render the error envelope for a request."""
    content = {
        "error": message,
        "code": code,
        "correlation_id": _correlation_id(request),
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _request_context(request: Request) -> Dict[str, Any]:
    return {
        "correlation_id": _correlation_id(request),
        "path": request.url.path,
        "method": request.method,
    }


# Exception handlers
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Expected outcomes (< 500) are logged at WARNING, anything else at ERROR.
    """
    logger.log(
        logging.WARNING if exc.status_code < 500 else logging.ERROR,
        f"Application error: {exc.message}",
        extra={
            **_request_context(request),
            "error_code": exc.code,
            "status_code": exc.status_code,
            "details": exc.details,
        },
    )
    return error_response(request, exc.status_code, exc.message, exc.code, exc.details, exc.headers)


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Request body / query validation failures, one entry per offending field."""
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    logger.warning("Validation error", extra={**_request_context(request), "errors": errors})
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "validation_error",
        {"errors": errors},
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Framework HTTP errors (missing bearer token, unknown route, wrong method)."""
    logger.warning(
        f"HTTP exception: {exc.detail}",
        extra={**_request_context(request), "status_code": exc.status_code},
    )
    return error_response(
        request,
        exc.status_code,
        exc.detail,
        "http_error",
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler for unhandled exceptions.

    Logs full stack trace and returns generic error message.
    """
    logger.error(
        f"Unhandled exception: {exc}",
        extra=_request_context(request),
        exc_info=exc,
    )
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        "internal_error",
    )
