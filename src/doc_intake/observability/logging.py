"""Structured logging configuration for doc-intake.

This module provides a human-readable, machine-parseable logging setup using
structlog with logfmt-style output. It supports:
- Configurable log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- Per-invocation context (invocation ID, stage, document key) via contextvars
- Colorized console output for development (TTY detection)
- ISO 8601 timestamps in UTC
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextvars import ContextVar
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog
from structlog.contextvars import (
    bind_contextvars,
    clear_contextvars,
    merge_contextvars,
)
from structlog.processors import TimeStamper, add_log_level


if TYPE_CHECKING:
    from collections.abc import Sequence

    from structlog.typing import EventDict, WrappedLogger

__all__ = [
    "LogLevel",
    "bind_invocation_context",
    "clear_invocation_context",
    "configure_logging",
    "generate_invocation_id",
    "get_invocation_id",
    "get_logger",
]


class LogLevel(StrEnum):
    """Supported log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_stdlib_level(self) -> int:
        """Convert to stdlib logging level.

        Returns:
            The corresponding logging module level constant.
        """
        level: int = getattr(logging, self.name)
        return level


_invocation_id_var: ContextVar[str | None] = ContextVar(
    "invocation_id",
    default=None,
)


def generate_invocation_id() -> str:
    """Generate a new unique invocation ID.

    Returns:
        A short UUID-based ID (first 8 characters).
    """
    return uuid.uuid4().hex[:8]


def get_invocation_id() -> str | None:
    """Get the current invocation ID from context.

    Returns:
        The current invocation ID, or None if not set.
    """
    return _invocation_id_var.get()


def bind_invocation_context(
    invocation_id: str | None = None,
    **context: object,
) -> str:
    """Start a stage invocation's logging context.

    Clears anything left over from a previous invocation on this task,
    then binds the invocation ID and any extra keys (typically ``stage``
    and ``document_key``) so every log line carries them.

    Args:
        invocation_id: ID to use. If None, generates a new one.
        **context: Additional key-value pairs to bind.

    Returns:
        The invocation ID that was bound.
    """
    if invocation_id is None:
        invocation_id = generate_invocation_id()

    clear_contextvars()
    _invocation_id_var.set(invocation_id)
    bind_contextvars(invocation_id=invocation_id, **context)
    return invocation_id


def clear_invocation_context() -> None:
    """Clear the invocation ID and all structlog contextvars."""
    _invocation_id_var.set(None)
    clear_contextvars()


def add_invocation_id(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add invocation_id to the event dict if present and not already set.

    Args:
        logger: The wrapped logger object (unused but required by protocol).
        method_name: The name of the log method called (unused but required).
        event_dict: The event dictionary to process.

    Returns:
        The event dictionary with invocation_id added if available.
    """
    del logger, method_name
    if "invocation_id" not in event_dict:
        invocation_id = get_invocation_id()
        if invocation_id is not None:
            event_dict["invocation_id"] = invocation_id
    return event_dict


_LOGFMT_KEY_ORDER = (
    "timestamp",
    "level",
    "event",
    "invocation_id",
    "stage",
    "document_key",
)


def _create_renderer(
    *,
    colors: bool = True,
    key_order: Sequence[str] | None = None,
) -> structlog.dev.ConsoleRenderer | structlog.processors.LogfmtRenderer:
    """Console output on a terminal, logfmt everywhere else."""
    if colors:
        return structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )
    return structlog.processors.LogfmtRenderer(
        key_order=list(key_order or _LOGFMT_KEY_ORDER),
        drop_missing=True,
        bool_as_flag=False,
    )


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    *,
    force_colors: bool | None = None,
) -> None:
    """Configure structlog (and stdlib logging) for the process.

    Log lines go to stderr with UTC ISO timestamps and whatever invocation
    context is bound. Colors follow the TTY unless ``force_colors`` says
    otherwise. Safe to call again; the CLI does so once settings are
    loaded.

    Example:
        >>> configure_logging(level="debug", force_colors=False)
    """
    if isinstance(level, str):
        level = LogLevel(level.lower())

    stream = sys.stderr
    use_colors = (
        force_colors
        if force_colors is not None
        else bool(stream is not None and hasattr(stream, "isatty") and stream.isatty())
    )

    structlog.configure(
        processors=[
            merge_contextvars,
            add_invocation_id,
            add_log_level,
            TimeStamper(fmt="iso", utc=True, key="timestamp"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            _create_renderer(colors=use_colors),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level.to_stdlib_level()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    # botocore and asyncpg log through the stdlib
    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=level.to_stdlib_level(),
        force=True,
    )


def get_logger(
    name: str | None = None,
    **initial_context: object,
) -> structlog.BoundLogger:
    """Return a structlog logger, optionally pre-bound with context.

    Example:
        >>> logger = get_logger(__name__, stage="ingest")
        >>> logger.info("page_uploaded", key="page-1_scan.pdf")
    """
    log: structlog.BoundLogger = structlog.get_logger(name)
    return log.bind(**initial_context) if initial_context else log
