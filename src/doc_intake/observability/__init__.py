"""Observability module (structured logging)."""

from __future__ import annotations

from doc_intake.observability.logging import (
    LogLevel,
    bind_invocation_context,
    clear_invocation_context,
    configure_logging,
    generate_invocation_id,
    get_invocation_id,
    get_logger,
)


__all__ = [
    "LogLevel",
    "bind_invocation_context",
    "clear_invocation_context",
    "configure_logging",
    "generate_invocation_id",
    "get_invocation_id",
    "get_logger",
]
