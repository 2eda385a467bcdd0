"""Structured logging setup."""

import logging
import sys

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

from goaltrack.config import settings

__all__ = ["configure_logging", "get_logger", "bind_contextvars", "clear_contextvars"]


def configure_logging() -> None:
    """Configure structlog and the stdlib root logger.

    Debug mode renders human-readable console output, everything else is
    emitted as one JSON object per line.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.debug
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """Get a structured logger bound to a module name."""
    return structlog.get_logger(name)
