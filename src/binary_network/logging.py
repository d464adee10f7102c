from __future__ import annotations

from logging.config import dictConfig
from threading import Lock
from typing import TYPE_CHECKING, Any

import structlog
import structlog.types
from structlog.contextvars import merge_contextvars
from structlog.stdlib import BoundLogger
from structlog.stdlib import get_logger as get_structlog_logger

from .config import get_settings

SERVICE_NAME = "binary-network"

_LOGGING_INITIALISED = False
_LOGGING_LOCK = Lock()


def _stack_info_renderer() -> structlog.types.Processor:
    """Return StackInfoRenderer with omit_if_debug kwarg if supported."""
    if TYPE_CHECKING:
        return structlog.processors.StackInfoRenderer()

    try:
        return structlog.processors.StackInfoRenderer(omit_if_debug=True)
    except TypeError:
        return structlog.processors.StackInfoRenderer()


def configure_logging(level: str | None = None, *, force: bool = False) -> None:
    """Configure structlog + stdlib logging once per process.

    ``level`` defaults to the configured ``log_level`` setting.
    """

    global _LOGGING_INITIALISED
    if _LOGGING_INITIALISED and not force:
        return

    with _LOGGING_LOCK:
        if _LOGGING_INITIALISED and not force:
            return

        level = (level or get_settings().log_level).upper()
        dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "structlog": {
                        "()": structlog.stdlib.ProcessorFormatter,
                        "processor": structlog.processors.JSONRenderer(),
                    }
                },
                "handlers": {
                    "default": {
                        "level": level,
                        "class": "logging.StreamHandler",
                        "formatter": "structlog",
                    }
                },
                "loggers": {
                    "": {"handlers": ["default"], "level": level},
                    "sqlalchemy.engine": {
                        "handlers": ["default"],
                        "level": "WARNING",
                        "propagate": False,
                    },
                },
            }
        )

        processors: list[structlog.types.Processor] = [
            merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            _stack_info_renderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ]

        structlog.configure(
            processors=processors,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        structlog.contextvars.bind_contextvars(service=SERVICE_NAME)
        _LOGGING_INITIALISED = True


def get_logger(name: str | None = None) -> BoundLogger:
    """Helper returning a structured logger bound to *name*."""
    return get_structlog_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)
