"""
API middleware module: the error envelope and the exceptions rendered into it.
"""
from servicehub.api.middleware.error_handler import (
    AppException,
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
    app_exception_handler,
    error_response,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)

__all__ = [
    "AppException",
    "BadRequestException",
    "ConflictException",
    "ForbiddenException",
    "NotFoundException",
    "UnauthorizedException",
    "app_exception_handler",
    "error_response",
    "http_exception_handler",
    "unhandled_exception_handler",
    "validation_exception_handler",
]
