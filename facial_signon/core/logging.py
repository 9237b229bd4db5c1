"""Logging configuration using structlog."""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict

APP_NAME = "facial-signon-service"


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the service name to every log entry."""
    event_dict["app"] = APP_NAME
    return event_dict


def redact(value: str | None, keep: int = 6) -> str | None:
    """Shorten a one-time token so only a recognisable prefix reaches the logs."""
    if not value:
        return value
    return f"{value[:keep]}..." if len(value) > keep else "***"


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured logging with JSON output.

    Sets up:
    - JSON output rendered through the stdlib root handler
    - ISO timestamps in UTC
    - Request ID correlation via contextvars (bound by RequestIDMiddleware)
    - Exception formatting with stack traces
    - Consistent rendering for third-party loggers (uvicorn, httpx, sqlalchemy)

    Args:
        log_level: The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    logging.getLogger("uvicorn").setLevel(numeric_level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    # httpx logs every vendor request line at INFO, including query strings
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structlog logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("push_notification_sent", client_id="cid_123")
    """
    return structlog.get_logger(name)
