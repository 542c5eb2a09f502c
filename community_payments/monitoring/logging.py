"""
Structured logging configuration.

Uses structlog for JSON-formatted logs with request ids bound per HTTP request.
"""
import logging
import sys
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from community_payments.config import get_settings

ACCOUNT_NUMBER_KEYS = frozenset({"account_number", "bank_account_number"})
SECRET_MARKERS = ("secret", "authorization", "signature", "password")


def add_app_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Add application context to log events.

    Args:
        logger: Logger instance
        method_name: Log method name
        event_dict: Event dictionary

    Returns:
        dict[str, Any]: Enhanced event dictionary
    """
    settings = get_settings()
    event_dict["app_name"] = settings.app_name
    event_dict["app_env"] = settings.app_env
    event_dict["paystack_mode"] = "test" if settings.is_test_mode else "live"
    return event_dict


def mask_account_number(value: Any) -> str:
    """Keep the last four digits of a bank account number."""
    text = str(value)
    if len(text) <= 4:
        return "*" * len(text)
    return "*" * (len(text) - 4) + text[-4:]


def redact_sensitive(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Mask account numbers and drop credentials before rendering."""
    for key in list(event_dict):
        lowered = key.lower()
        if lowered in ACCOUNT_NUMBER_KEYS:
            event_dict[key] = mask_account_number(event_dict[key])
        elif any(marker in lowered for marker in SECRET_MARKERS):
            event_dict[key] = "[REDACTED]"
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging with JSON formatter.

    Safe to call more than once; the root handler is replaced each time.
    """
    settings = get_settings()

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_app_context,
            redact_sensitive,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Add JSON handler for stdout
    json_handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        rename_fields={
            "timestamp": "@timestamp",
            "level": "level",
            "name": "logger",
            "message": "message",
        },
    )
    json_handler.setFormatter(formatter)
    root_logger.addHandler(json_handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )

    logger = structlog.get_logger(__name__)
    logger.info(
        "logging_configured",
        log_level=settings.log_level,
        app_env=settings.app_env,
    )


def bind_request_context(request_id: str, method: str, path: str, user_id: str | None = None) -> None:
    """
    Bind per-request fields so every log line of the request carries them.

    Args:
        request_id: Request id echoed in the X-Request-ID response header
        method: HTTP method
        path: Request path
        user_id: Caller id from the identity header, when present
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=method,
        path=path,
    )
    if user_id:
        structlog.contextvars.bind_contextvars(user_id=user_id)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
