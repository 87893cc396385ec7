"""Logging configuration.

API requests bind ``request_id`` and ``client`` into structlog's context
variables, so lead, attribution and error events logged while serving a
request can be traced back to it.
"""

import logging
import sys

import structlog

from leadfunnel.settings import settings

# Chatty below WARNING
QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")


def configure_logging() -> None:
    """Configure structured logging."""
    level_name = settings.log_level.upper()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
    ]
    if settings.log_format == "json":
        processors += [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors += [
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level_name)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # Standard logging for SQLAlchemy, uvicorn and slowapi
    level = getattr(logging, level_name)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_request_context(request_id: str, client: str) -> None:
    """Attach request identifiers to every log line until cleared."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, client=client)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
