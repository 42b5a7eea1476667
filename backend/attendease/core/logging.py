"""
structlog setup for the booking service.

Console output in development, one JSON object per line in production.
Request middleware binds request_id/method/path; booking_context() adds the
booking, seat and user ids so every event inside a lifecycle operation can
be grouped by booking without repeating the ids at each call site.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from attendease.core.config import get_settings

# Never written to logs: credentials and the QR token that admits a student
REDACTED_KEYS = frozenset({"password", "hashed_password", "access_token", "token", "qr_data", "qr_code"})

NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "passlib")


def redact_secrets(logger, method_name: str, event_dict: dict) -> dict:
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def add_service_info(logger, method_name: str, event_dict: dict) -> dict:
    settings = get_settings()
    event_dict.setdefault("service", "attendease")
    event_dict.setdefault("env", settings.ENVIRONMENT)
    return event_dict


@contextmanager
def booking_context(
    booking_id: Optional[int] = None,
    seat_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> Iterator[None]:
    """Bind the ids of the booking being worked on for the duration of the block."""
    ids = {
        key: value
        for key, value in (("booking_id", booking_id), ("seat_id", seat_id), ("user_id", user_id))
        if value is not None
    }
    with structlog.contextvars.bound_contextvars(**ids):
        yield


def setup_logging() -> None:
    settings = get_settings()
    production = settings.ENVIRONMENT == "production"

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
    ]
    if production:
        shared_processors += [add_service_info, structlog.processors.format_exc_info]
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    # Replace handlers so repeated startups (tests, reloads) don't duplicate output
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
