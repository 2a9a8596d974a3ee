"""Structured logging for the Archetype Manager.

Every engine module logs through ``get_logger(__name__)`` with key/value
fields (slug, class tag, counts). A host calls ``configure_logging`` once
at start-up; until then structlog's defaults apply.

Apply, remove and restore run inside ``operation_context`` so every entry
they emit, including entries from the stores they call, carries the
operation, holder and slug.

Example:
    >>> from archetype_manager.core.logging import get_logger, operation_context
    >>> logger = get_logger(__name__)
    >>> with operation_context(operation="apply", slug="two-handed-fighter"):
    ...     logger.info("Archetype applied", class_tag="fighter")
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor


if TYPE_CHECKING:
    from structlog.types import EventDict, WrappedLogger

    from archetype_manager.core.config import Settings


APP_NAME = "archetype_manager"

STDLIB_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def add_app_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Tag log entries with the application name."""
    event_dict.setdefault("app", APP_NAME)
    return event_dict


def drop_none_fields(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Drop fields whose value is None.

    Optional context such as the slug of a restore or the tier of a
    missed override lookup stays out of the rendered line.
    """
    return {key: value for key, value in event_dict.items() if value is not None}


def build_processors(*, json_format: bool) -> list[Processor]:
    """Build the structlog processor chain.

    Args:
        json_format: Render JSON lines instead of the colored console format.

    Returns:
        The processors, renderer last.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        drop_none_fields,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)
        )
    return processors


def configure_logging(
    settings: Settings | None = None,
    *,
    level: str | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Configure application-wide logging.

    Explicit arguments win over ``settings.log_level`` and
    ``settings.json_logs``.

    Args:
        settings: Settings to read defaults from; the singleton when omitted.
        level: The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: If True, output logs in JSON format.
        log_file: Optional path to a log file for the stdlib handlers.

    Example:
        >>> configure_logging(level="DEBUG", json_format=False)
    """
    if settings is None:
        from archetype_manager.core.config import get_settings

        settings = get_settings()

    level_name = (level or settings.log_level).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    if json_format is None:
        json_format = settings.json_logs

    structlog.configure(
        processors=build_processors(json_format=json_format),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # sqlite3 and pydantic-settings report through the standard library
    logging.basicConfig(format=STDLIB_FORMAT, level=numeric_level, stream=sys.stdout, force=True)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(STDLIB_FORMAT))
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger, typically with ``__name__``."""
    return structlog.get_logger(name)


@contextmanager
def operation_context(**kwargs: Any) -> Iterator[None]:
    """Bind fields to every entry logged inside the block.

    Bindings live in context variables, so concurrent tasks working on
    different holders never see each other's fields.

    Example:
        >>> with operation_context(operation="remove", holder="item-1"):
        ...     ...
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


def bind_context(**kwargs: Any) -> None:
    """Bind fields to all subsequent entries of the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


__all__ = [
    "add_app_context",
    "bind_context",
    "build_processors",
    "clear_context",
    "configure_logging",
    "drop_none_fields",
    "get_logger",
    "operation_context",
]
