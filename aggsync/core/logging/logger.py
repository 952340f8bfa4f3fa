"""
Structured Logging

structlog over stdlib logging. Every coordination step logs a ``stage``
field (``LOCK.ACQUIRE``, ``WARM.POPULATE``, ...) and, when the caller set
one, the ``correlation_id`` of the read or write that triggered it, so a
single operation can be followed across lock, warm and increment steps.

The correlation ID lives in structlog's contextvars and is merged into
every event; concurrent tasks each see their own value.
"""

import logging
import sys

import structlog

from aggsync.core.config.settings import get_settings


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure structlog and the stdlib root handler.

    STAGE-L: Logging initialization

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (default from settings)
        log_format: 'json' or 'console' (default from settings)
    """
    settings = get_settings()
    log_level = (log_level or settings.logging.LOG_LEVEL).upper()
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level))

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: str) -> None:
    """Tag every log line of the current task with ``correlation_id``."""
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def get_correlation_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("correlation_id")


def clear_correlation_id() -> None:
    structlog.contextvars.unbind_contextvars("correlation_id")


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log ``message`` at ``level`` with a ``stage`` field.

    ``stage`` may be a ``Stage`` member or a plain string.

    Usage:
        log_stage(logger, Stage.WARM_POPULATE, "Hash populated", cache_key="counts:agent:policies")
    """
    getattr(logger, level.lower())(message, stage=str(getattr(stage, "value", stage)), **kwargs)
