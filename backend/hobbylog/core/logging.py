"""Structured logging configuration using structlog.

Every log line carries the application name and, while a request is being
served, the request context bound by :func:`bind_request_context`
(``request_id``, ``method``, ``path`` and ``user_id``).
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from hobbylog.core.config import settings

# Loggers whose level follows settings.log_level
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _add_app_name(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict.setdefault("app", settings.app_name)
    return event_dict


def setup_logging() -> None:
    """Configure structlog and the stdlib root logger for the service."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[Any] = [
        # Request context first so event kwargs can override it
        structlog.contextvars.merge_contextvars,
        _add_app_name,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.debug:
        renderer: list[Any] = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        renderer = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]

    structlog.configure(
        processors=shared_processors + renderer,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    # SQL echo is noisy outside debug sessions
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )
    for name in SERVER_LOGGERS:
        logging.getLogger(name).setLevel(log_level)


def bind_request_context(
    request_id: str,
    method: str,
    path: str,
    user_id: str | None = None,
) -> None:
    """Bind per-request fields to every log line emitted while serving it.

    Any context left over from a previous request on the same task is
    discarded first.
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


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Optional logger name, usually ``__name__``.

    Returns:
        A bound structlog logger instance.
    """
    return structlog.get_logger(name)
