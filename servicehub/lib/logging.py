"""
Structured logging with JSON formatter and correlation ID support.

Every record passes through CorrelationIdFilter, so both the JSON and the
plain-text format carry the id of the request that produced it. Context is
attached with `extra=`; keys must not collide with LogRecord attributes
("message", "args", "module", ...).
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional
from contextvars import ContextVar

from servicehub.lib.settings import settings


# Context variable to store correlation_id per request
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# Attributes present on every LogRecord; anything else came in through `extra=`
_RESERVED_ATTRS = (
    set(vars(logging.LogRecord("", 0, "", 0, "", (), None)))
    | {"message", "asctime", "correlation_id"}
)

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"

_QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "uvicorn.access")


class CorrelationIdFilter(logging.Filter):
    """Stamp the current correlation id (or "-") onto records that lack one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = correlation_id_var.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, then context."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id and correlation_id != "-":
            log_data["correlation_id"] = correlation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and key not in log_data
        )
        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure the root logger with a single stdout handler.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines when True, otherwise TEXT_FORMAT
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Bind the correlation id for the current request context."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


# Initialize logging on module import
setup_logging(
    level="DEBUG" if settings.debug else settings.log_level,
    json_format=settings.log_json,
)
