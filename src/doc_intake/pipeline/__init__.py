"""Document intake pipeline.

Three stages, each triggered independently by an object landing in a
storage location:

- :class:`IngestStage` (``input``): validate, back up and split uploads.
- :class:`ClassificationStage` (``splitted``): classify each page and move
  it to ``classified-{type}``.
- :class:`OCRStage` (``classified-*``): extract text from each page.

Stages hand data to each other only through storage locations and the
pipeline record store.
"""

from __future__ import annotations

from doc_intake.pipeline.base import Stage, error_details
from doc_intake.pipeline.classification import ClassificationStage
from doc_intake.pipeline.exceptions import (
    MalformedDocumentError,
    NoClassificationDataError,
    PipelineError,
    StageError,
)
from doc_intake.pipeline.ingest import IngestStage
from doc_intake.pipeline.interpretation import (
    UNKNOWN_DOC_TYPE,
    Classification,
    flatten_text,
    interpret_classification,
    location_safe_doc_type,
)
from doc_intake.pipeline.models import (
    PageArtifact,
    StageName,
    StageOutcome,
    StageResult,
    StageTrigger,
)
from doc_intake.pipeline.ocr import OCRStage
from doc_intake.pipeline.payload import coerce_payload
from doc_intake.pipeline.splitter import (
    PDF_SIGNATURE,
    PageSplitter,
    has_pdf_signature,
    page_file_name,
)


__all__ = [
    "PDF_SIGNATURE",
    "UNKNOWN_DOC_TYPE",
    "Classification",
    "ClassificationStage",
    "IngestStage",
    "MalformedDocumentError",
    "NoClassificationDataError",
    "OCRStage",
    "PageArtifact",
    "PageSplitter",
    "PipelineError",
    "Stage",
    "StageError",
    "StageName",
    "StageOutcome",
    "StageResult",
    "StageTrigger",
    "coerce_payload",
    "error_details",
    "flatten_text",
    "has_pdf_signature",
    "interpret_classification",
    "location_safe_doc_type",
    "page_file_name",
]
