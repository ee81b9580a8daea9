"""
structlog setup.

All request and job context lives in structlog's own contextvars, so anything
bound here (request_id, user_id, provider, task) is merged into every event
logged afterwards in the same request or arq job. Development renders to the
console; every other environment emits one JSON object per line.
"""

import logging
import sys
from typing import Any, cast

import structlog
from structlog.types import Processor

from starter.config import settings

# Loggers that are chatty at INFO and add nothing to our own events
NOISY_LOGGERS = ("sqlalchemy.engine", "httpx")


def configure_logging() -> None:
    """Configure structlog and route it through the stdlib root logger."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.ENVIRONMENT == "development":
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if settings.ENVIRONMENT != "development":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Example:
        logger = get_logger(__name__)
        logger.info("refresh_token_rotated", user_id=user.id)
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def set_request_context(request_id: str) -> None:
    """Start a fresh log context for one HTTP request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def set_user_context(user_id: str) -> None:
    structlog.contextvars.bind_contextvars(user_id=user_id)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def bind_context(**kwargs: Any) -> None:
    """Add key/value pairs to every later event in this request or job."""
    structlog.contextvars.bind_contextvars(**kwargs)
