"""Routing of storage triggers to stage handlers.

Stages register against location patterns (``fnmatch`` syntax). A trigger
for a location is delivered to the first handler whose pattern matches.
"""

from __future__ import annotations

from fnmatch import fnmatchcase
from typing import TYPE_CHECKING, Any

from doc_intake.observability import (
    bind_invocation_context,
    clear_invocation_context,
    get_logger,
)
from doc_intake.pipeline.models import StageTrigger
from doc_intake.workers.exceptions import UnknownTriggerLocationError


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from doc_intake.pipeline.models import StageResult

    StageHandler = Callable[[StageTrigger], Awaitable[StageResult]]


__all__ = ["StageRegistry"]


class StageRegistry:
    """Maps location patterns to stage handlers.

    Example:
        ```python
        registry = StageRegistry()
        registry.register_stage_handler("input", ingest_stage)
        registry.register_stage_handler("classified-*", ocr_stage)
        result = await registry.dispatch("classified-invoice", "page-1_scan.pdf")
        ```
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._handlers: list[tuple[str, StageHandler]] = []
        self._logger = get_logger(__name__)

    @property
    def patterns(self) -> list[str]:
        """Registered location patterns, in registration order."""
        return [pattern for pattern, _ in self._handlers]

    def register_stage_handler(
        self,
        location_pattern: str,
        handler: StageHandler,
    ) -> None:
        """Register a handler for locations matching a pattern.

        Args:
            location_pattern: ``fnmatch`` pattern such as ``classified-*``.
            handler: Async callable taking a :class:`StageTrigger`.

        Raises:
            ValueError: If the pattern is already registered.
        """
        if location_pattern in self.patterns:
            msg = f"Handler already registered for {location_pattern!r}"
            raise ValueError(msg)
        self._handlers.append((location_pattern, handler))
        self._logger.debug(
            "stage_handler_registered",
            pattern=location_pattern,
            handler=_handler_name(handler),
        )

    def matches(self, location: str) -> bool:
        """Return whether any handler is registered for a location."""
        return any(fnmatchcase(location, pattern) for pattern, _ in self._handlers)

    def resolve(self, location: str) -> StageHandler:
        """Return the handler for a location.

        Raises:
            UnknownTriggerLocationError: If no pattern matches.
        """
        for pattern, handler in self._handlers:
            if fnmatchcase(location, pattern):
                return handler
        raise UnknownTriggerLocationError(location)

    async def dispatch(
        self,
        location: str,
        key: str | None,
        payload: Any = None,
    ) -> StageResult:
        """Deliver a trigger to its handler.

        The invocation's log context (invocation ID, stage, document key) is
        bound for the duration of the call.

        Raises:
            UnknownTriggerLocationError: If no handler matches ``location``.
        """
        handler = self.resolve(location)
        bind_invocation_context(
            stage=_handler_name(handler),
            document_key=key,
            location=location,
        )
        try:
            return await handler(StageTrigger(location=location, key=key, payload=payload))
        finally:
            clear_invocation_context()


def _handler_name(handler: Any) -> str:
    name = getattr(handler, "name", None)
    if name is not None:
        return str(name)
    return getattr(handler, "__name__", type(handler).__name__)
