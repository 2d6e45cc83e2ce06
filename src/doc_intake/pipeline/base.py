"""Shared plumbing for stage handlers."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from doc_intake.intelligence import CapabilityInvocationError
from doc_intake.observability import get_logger
from doc_intake.pipeline.models import StageName, StageOutcome, StageResult
from doc_intake.pipeline.payload import coerce_payload


if TYPE_CHECKING:
    from doc_intake.pipeline.models import StageTrigger


__all__ = ["Stage", "error_details"]


def error_details(exc: BaseException) -> dict[str, Any]:
    """Collect diagnostic fields for logs and error records.

    Includes the HTTP status and body when the error carries a service
    response.
    """
    details: dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }
    if isinstance(exc, CapabilityInvocationError):
        response = exc.response_details()
        if response is not None:
            details["response"] = response
    cause = exc.__cause__
    if cause is not None:
        details["cause"] = f"{type(cause).__name__}: {cause}"
    return details


class Stage(ABC):
    """Base class for stage handlers.

    Subclasses implement :meth:`_process`. :meth:`process` wraps it with
    timing and the failure boundary: an exception escaping ``_process`` is
    logged with its stack, handed to :meth:`_on_failure`, and reported as a
    FAILED result. Handlers therefore never raise.
    """

    name: StageName

    def __init__(self) -> None:
        """Initialize the stage."""
        self._logger = get_logger(__name__).bind(stage=self.name.value)

    async def __call__(self, trigger: StageTrigger) -> StageResult:
        """Run the stage for a trigger."""
        return await self.process(trigger)

    async def process(self, trigger: StageTrigger) -> StageResult:
        """Run the stage for a trigger and report the outcome.

        Args:
            trigger: The object that landed in the stage's trigger location.

        Returns:
            The outcome. Never raises.
        """
        start_time = time.monotonic()
        try:
            result = await self._process(trigger)
        except Exception as exc:
            details = error_details(exc)
            self._logger.exception(
                f"{self.name.value}_failed",
                key=trigger.key,
                location=trigger.location,
                **details,
            )
            await self._on_failure(trigger, exc, details)
            result = self._result(
                trigger,
                StageOutcome.FAILED,
                detail=f"{self.name.value} failed",
                error=str(exc),
            )
        result.processing_time_seconds = time.monotonic() - start_time
        self._logger.info(
            f"{self.name.value}_finished",
            key=trigger.key,
            outcome=result.outcome.value,
            processing_time_seconds=result.processing_time_seconds,
        )
        return result

    @abstractmethod
    async def _process(self, trigger: StageTrigger) -> StageResult:
        """Run the stage's steps. May raise."""

    async def _on_failure(
        self,
        trigger: StageTrigger,
        exc: Exception,
        details: dict[str, Any],
    ) -> None:
        """Record a failure. Must not raise."""

    def _result(
        self,
        trigger: StageTrigger,
        outcome: StageOutcome,
        *,
        detail: str = "",
        error: str | None = None,
        **data: Any,
    ) -> StageResult:
        return StageResult(
            stage=self.name,
            key=trigger.key,
            outcome=outcome,
            detail=detail,
            error=error,
            data=data,
        )

    def _skip(self, trigger: StageTrigger, reason: str) -> StageResult:
        self._logger.warning(
            f"{self.name.value}_skipped",
            key=trigger.key,
            location=trigger.location,
            reason=reason,
        )
        return self._result(trigger, StageOutcome.SKIPPED, detail=reason)

    def _coerce(self, trigger: StageTrigger) -> bytes | None:
        """Return the trigger payload as bytes, or None if it is unusable."""
        try:
            return coerce_payload(trigger.payload)
        except TypeError as exc:
            self._logger.error(  # noqa: TRY400
                "payload_coercion_failed",
                key=trigger.key,
                payload_type=type(trigger.payload).__name__,
                error=str(exc),
            )
            return None
