"""Structured logging for the Rendezvous engine.

Every record is a structlog event. Records carry the application name and
environment, plus the viewing profile when a viewer is bound to the
current context (sessions bind one at login).
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from rendezvous.config import settings

# Libraries that log every query or request at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "uvicorn.access", "httpx")


def _add_app_context(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("app", settings.APP_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def configure_logging(level: Optional[str] = None) -> None:
    """
    Route stdlib logging through `structlog`.

    Development gets the console renderer, every other environment gets
    one JSON object per line.

    Args:
        level (Optional[str]): Log level name; defaults to `LOG_LEVEL`.
    """
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", level=log_level, stream=sys.stdout)
    if not settings.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_app_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.ENVIRONMENT.lower() == "development":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Get a module logger, optionally with values bound to every record."""
    return structlog.get_logger(name).bind(**initial_values)  # type: ignore


def bind_viewer(viewer_id: str) -> None:
    """Attach the viewing profile id to every record logged from this context."""
    structlog.contextvars.bind_contextvars(viewer_id=viewer_id)


def unbind_viewer() -> None:
    structlog.contextvars.unbind_contextvars("viewer_id")


@contextmanager
def viewer_context(viewer_id: str, **values: Any) -> Iterator[None]:
    """Bind a viewer (and any extra values) for the duration of a block."""
    with structlog.contextvars.bound_contextvars(viewer_id=viewer_id, **values):
        yield


def log_error(
    logger: structlog.stdlib.BoundLogger,
    error: Exception,
    message: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log an error with its type, message and traceback.

    Rendezvous errors also contribute their `details` mapping and HTTP
    status code.

    Args:
        logger (structlog.stdlib.BoundLogger): The logger instance to use.
        error (Exception): The exception to log.
        message (Optional[str], optional): Custom message. Defaults to "An error occurred".
        extra (Optional[Dict[str, Any]], optional): Additional context to log.
    """
    context = dict(extra or {})
    context["error_type"] = error.__class__.__name__
    context["error_message"] = str(error)

    details = getattr(error, "details", None)
    if details is not None:
        context["error_details"] = details
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        context["error_status"] = status_code

    logger.error(message or "An error occurred", **context, exc_info=error)
