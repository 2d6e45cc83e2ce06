"""Pipeline records, merge rules and record store backends."""

from __future__ import annotations

from doc_intake.records.base import RecordBackend, RecordUpdater
from doc_intake.records.exceptions import RecordStoreError
from doc_intake.records.memory import InMemoryRecordBackend
from doc_intake.records.models import (
    ClassificationInfo,
    ErrorStage,
    OcrInfo,
    PipelineRecord,
    PipelineStage,
    ProcessingErrorRecord,
    RecordMetadata,
    furthest_stage,
    merge_records,
    resolve_stage,
)
from doc_intake.records.postgres import PostgresRecordBackend
from doc_intake.records.store import PipelineRecordStore


__all__ = [
    "ClassificationInfo",
    "ErrorStage",
    "InMemoryRecordBackend",
    "OcrInfo",
    "PipelineRecord",
    "PipelineRecordStore",
    "PipelineStage",
    "PostgresRecordBackend",
    "ProcessingErrorRecord",
    "RecordBackend",
    "RecordMetadata",
    "RecordStoreError",
    "RecordUpdater",
    "furthest_stage",
    "merge_records",
    "resolve_stage",
]
