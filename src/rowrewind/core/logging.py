"""structlog setup for RowRewind.

Log lines are key/value events. Context bound with LoggingContext (a
revert id, a table name) or bind_correlation_id() is merged into every
line logged in the same task.
"""

import logging
import sys
import uuid
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from rowrewind.core.config import Settings, get_settings


def add_correlation_id(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Give uncorrelated lines a fresh ``cid_`` id."""
    event_dict.setdefault("correlation_id", f"cid_{uuid.uuid4().hex[:12]}")
    return event_dict


def add_logger_name(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["logger"] = getattr(logger, "name", None) or "rowrewind"
    return event_dict


def rename_message_field(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Emit the event text under ``message``."""
    if "event" in event_dict:
        event_dict["message"] = event_dict.pop("event")
    return event_dict


def _renderer(settings: Settings) -> tuple[Processor, bool]:
    # Returns (renderer, cache_logger_on_first_use)
    if settings.is_development or settings.log_format == "console":
        return (
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
            False,
        )
    return structlog.processors.JSONRenderer(), True


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the standard logging module.

    JSON lines in production and testing, a colored console renderer in
    development or when ``log_format`` is ``console``. Standard logging
    (SQLAlchemy echo, aiosqlite) goes to stdout at the same level.

    Args:
        settings: Settings to use; loaded from the environment if omitted.
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)
    renderer, cache_loggers = _renderer(settings)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_correlation_id,
        rename_message_field,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=cache_loggers,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for a module, usually ``get_logger(__name__)``."""
    return structlog.get_logger(name or "rowrewind")


class LoggingContext:
    """Bind key/values to every line logged inside the block.

    Example:
        with LoggingContext(revert_id="rv_0a1b2c3d4e5f", table_name="orders"):
            logger.info("Revert requested")
    """

    def __init__(self, **context: Any) -> None:
        self.context = context

    def __enter__(self) -> "LoggingContext":
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context)


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_context() -> None:
    """Drop everything bound to the current logging context."""
    structlog.contextvars.clear_contextvars()
