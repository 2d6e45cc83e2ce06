"""Pipeline record models and merge rules.

A pipeline record tracks one document instance (one page artifact)
through classification and OCR. Stages write partial records; the store
merges each partial write into what it already holds using
:func:`merge_records`.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


__all__ = [
    "ClassificationInfo",
    "ErrorStage",
    "OcrInfo",
    "PipelineRecord",
    "PipelineStage",
    "ProcessingErrorRecord",
    "RecordMetadata",
    "furthest_stage",
    "merge_records",
    "resolve_stage",
]


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PipelineStage(StrEnum):
    """Processing stage of a pipeline record.

    Attributes:
        PENDING: Known but not yet classified.
        CLASSIFIED: Classification stored, waiting for OCR.
        OCR_COMPLETED: Text extracted; terminal success state.
        ERROR: A stage failed; see ``error_message``.
    """

    PENDING = "pending"
    CLASSIFIED = "classified"
    OCR_COMPLETED = "ocr-completed"
    ERROR = "error"


class ErrorStage(StrEnum):
    """Stage named on a processing error record."""

    PREPROCESSING = "preprocessing"
    CLASSIFICATION = "classification"
    OCR = "ocr"


_STAGE_RANK = {
    PipelineStage.PENDING: 0,
    PipelineStage.CLASSIFIED: 1,
    PipelineStage.OCR_COMPLETED: 2,
}


# ---------------------------------------------------------------------------
# Record Models
# ---------------------------------------------------------------------------


class RecordBaseModel(BaseModel):
    """Base model for persisted records."""

    model_config = ConfigDict(
        extra="ignore",
        protected_namespaces=(),
    )


class ClassificationInfo(RecordBaseModel):
    """Outcome of the classification stage.

    Attributes:
        document_type: Classified type, or ``"unknown"``.
        confidence: Classifier confidence in [0, 1].
        model_id: Classifier that produced the result.
        classified_at: When the result was stored.
        raw_result: The untouched classifier payload.
        location: Storage location the page was moved to.
        selected_ocr_model: OCR model chosen for this document type.
    """

    document_type: str
    confidence: float = Field(ge=0.0, le=1.0)
    model_id: str
    classified_at: datetime = Field(default_factory=_utcnow)
    raw_result: Any = None
    location: str
    selected_ocr_model: str


class OcrInfo(RecordBaseModel):
    """Outcome of the OCR stage."""

    extracted_text: str
    raw_result: Any = None
    processed_at: datetime = Field(default_factory=_utcnow)
    model_id: str


class RecordMetadata(RecordBaseModel):
    """Provenance of the page a record describes."""

    original_size_bytes: int = 0
    source: str = ""
    processed_at: datetime = Field(default_factory=_utcnow)


class PipelineRecord(RecordBaseModel):
    """Everything known about one document instance.

    Only the fields a writer sets explicitly take part in a merge, so a
    stage can upsert a partial record (for example only ``id``, ``stage``
    and ``ocr``) without clobbering the rest.

    Attributes:
        id: Stable document identifier (the page artifact's file name).
        source_file_name: Name of the page artifact.
        stage: Current processing stage.
        classification: Set once by the classification stage.
        ocr: Set by the OCR stage.
        metadata: Provenance of the page.
        error_message: Why the record is in the error stage.
    """

    id: str
    source_file_name: str = ""
    stage: PipelineStage = PipelineStage.PENDING
    classification: ClassificationInfo | None = None
    ocr: OcrInfo | None = None
    metadata: RecordMetadata = Field(default_factory=RecordMetadata)
    error_message: str | None = None


class ProcessingErrorRecord(RecordBaseModel):
    """Append-only entry in the processing error log."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    document_id: str
    error_message: str
    error_type: str
    stage: ErrorStage
    timestamp: datetime = Field(default_factory=_utcnow)
    details: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Merge Rules
# ---------------------------------------------------------------------------


def resolve_stage(
    current: PipelineStage,
    requested: PipelineStage,
    reached: PipelineStage = PipelineStage.PENDING,
) -> PipelineStage:
    """Return the stage a record ends up in after a write.

    Stages only move forward (pending, classified, ocr-completed). Any
    stage may move to error. A record in error may leave it only for a
    stage at or beyond ``reached``, the furthest stage it has completed,
    and never for pending. A regressing request keeps ``current``.

    Args:
        current: Stage the record is in.
        requested: Stage the writer asked for.
        reached: Furthest non-error stage the record has completed.

    Returns:
        The resulting stage.
    """
    if requested == PipelineStage.ERROR:
        return PipelineStage.ERROR
    if current == PipelineStage.ERROR:
        if requested == PipelineStage.PENDING:
            return current
        if _STAGE_RANK[requested] < _STAGE_RANK[reached]:
            return current
        return requested
    if _STAGE_RANK[requested] >= _STAGE_RANK[current]:
        return requested
    return current


def furthest_stage(record: PipelineRecord) -> PipelineStage:
    """Furthest stage a record has completed, judged by the data it holds."""
    if record.ocr is not None:
        return PipelineStage.OCR_COMPLETED
    if record.classification is not None:
        return PipelineStage.CLASSIFIED
    return PipelineStage.PENDING


def merge_records(
    existing: PipelineRecord | None,
    incoming: PipelineRecord,
) -> PipelineRecord:
    """Merge a (possibly partial) write into the stored record.

    Rules:
        - ``stage`` follows :func:`resolve_stage`; a record leaving error
          never drops below the furthest stage its data shows.
        - ``classification`` is write-once: the first one stored is kept.
        - Every other field the writer set explicitly replaces the stored
          value; unset fields are left alone.
        - ``error_message`` is cleared when the record leaves the error
          stage.

    Args:
        existing: Stored record, or None for a first write.
        incoming: The write.

    Returns:
        The merged record (a new object; inputs are not modified).
    """
    if existing is None:
        merged = incoming.model_copy(deep=True)
    else:
        updates: dict[str, Any] = {}
        for name in incoming.model_fields_set:
            if name in {"id", "stage", "classification"}:
                continue
            updates[name] = getattr(incoming, name)

        if existing.classification is None and incoming.classification is not None:
            updates["classification"] = incoming.classification

        if "stage" in incoming.model_fields_set:
            updates["stage"] = resolve_stage(
                existing.stage,
                incoming.stage,
                furthest_stage(existing),
            )

        merged = existing.model_copy(update=updates, deep=True)

    if merged.stage != PipelineStage.ERROR and merged.error_message is not None:
        merged = merged.model_copy(update={"error_message": None})
    return merged
