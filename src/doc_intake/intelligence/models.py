"""Pydantic models for document-understanding service responses."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


__all__ = [
    "AnalyzeResult",
    "DocumentLine",
    "DocumentPage",
    "OperationState",
    "OperationStatus",
]


class OperationState(StrEnum):
    """States of a long-running analyze or classify operation."""

    NOT_STARTED = "notStarted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        """Whether polling can stop."""
        return self in {
            OperationState.SUCCEEDED,
            OperationState.FAILED,
            OperationState.CANCELED,
        }


class IntelligenceBaseModel(BaseModel):
    """Base model for service payloads (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        protected_namespaces=(),
    )


class OperationStatus(IntelligenceBaseModel):
    """Body returned when polling an operation URL.

    Attributes:
        status: Current operation state.
        analyze_result: Result payload, present once the operation succeeded.
        error: Error object, present once the operation failed.
    """

    status: OperationState
    created_date_time: str | None = None
    last_updated_date_time: str | None = None
    analyze_result: dict[str, Any] | None = None
    error: dict[str, Any] | None = None


class DocumentLine(IntelligenceBaseModel):
    """A line of text recognised on a page."""

    content: str = ""


class DocumentPage(IntelligenceBaseModel):
    """A page of an analyze result, with its lines in reading order."""

    page_number: int = 0
    lines: list[DocumentLine] = Field(default_factory=list)


class AnalyzeResult(IntelligenceBaseModel):
    """Page-structured text extraction returned by an OCR model.

    Attributes:
        model_id: Model that produced the result.
        content: Full concatenated content, when the service provides it.
        pages: Pages in document order.
        raw: The untouched result payload, kept for persistence.
    """

    model_id: str | None = None
    content: str | None = None
    pages: list[DocumentPage] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AnalyzeResult:
        """Build a result from the service's ``analyzeResult`` object."""
        result = cls.model_validate(payload)
        result.raw = payload
        return result
