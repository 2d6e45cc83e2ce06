"""Data models for the processing pipeline.

This module defines the dataclasses and enums that pass between trigger
sources, stage handlers and the splitter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


__all__ = [
    "PageArtifact",
    "StageName",
    "StageOutcome",
    "StageResult",
    "StageTrigger",
]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class StageName(StrEnum):
    """Names of the pipeline stages."""

    INGEST = "ingest"
    CLASSIFICATION = "classification"
    OCR = "ocr"


class StageOutcome(StrEnum):
    """How a stage invocation ended.

    Attributes:
        COMPLETED: All required steps succeeded.
        SKIPPED: Nothing to do (missing key, object already gone,
            unusable payload).
        REJECTED: Input was not a PDF and was set aside.
        FAILED: A required step failed; an error record was written.
    """

    COMPLETED = "completed"
    SKIPPED = "skipped"
    REJECTED = "rejected"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Stage I/O
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class PageArtifact:
    """A single page extracted from an uploaded PDF.

    Attributes:
        file_name: ``page-{n}_{originalName}``.
        page_index: 1-based position of the page in the original document.
        data: Self-contained single-page PDF.
    """

    file_name: str
    page_index: int
    data: bytes

    @property
    def size_bytes(self) -> int:
        """Size of the page PDF."""
        return len(self.data)


@dataclass(frozen=True, slots=True)
class StageTrigger:
    """An object landing in a trigger location.

    Attributes:
        location: Location the object landed in.
        key: Object key; may be empty when the trigger source lost it.
        payload: Object content when the trigger source supplies it.
    """

    location: str
    key: str | None
    payload: Any = None


@dataclass
class StageResult:
    """Outcome of one stage invocation.

    Stage handlers report failures through this object and never raise.

    Attributes:
        stage: Stage that ran.
        key: Object key the stage ran for.
        outcome: How the invocation ended.
        detail: Short human-readable summary.
        error: Error message when the outcome is FAILED.
        processing_time_seconds: Wall-clock duration.
        created_at: When the result was created.
        data: Stage-specific fields (page keys, document type, ...).
    """

    stage: StageName
    key: str | None
    outcome: StageOutcome
    detail: str = ""
    error: str | None = None
    processing_time_seconds: float = 0.0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        """Return True unless the invocation failed."""
        return self.outcome != StageOutcome.FAILED

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for logs and CLI output.

        Returns:
            Dictionary representation of the result.
        """
        return {
            "stage": self.stage.value,
            "key": self.key,
            "outcome": self.outcome.value,
            "detail": self.detail,
            "error": self.error,
            "processing_time_seconds": self.processing_time_seconds,
            "created_at": self.created_at.isoformat(),
            "data": self.data,
        }
