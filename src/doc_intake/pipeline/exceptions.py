"""Pipeline-specific exceptions.

This module defines exceptions raised while ingesting, classifying and
reading documents.
"""

from __future__ import annotations


__all__ = [
    "MalformedDocumentError",
    "NoClassificationDataError",
    "PipelineError",
    "StageError",
]


class PipelineError(Exception):
    """Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            cause: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        """Return string representation."""
        return self.message


class MalformedDocumentError(PipelineError):
    """Raised when input is not a usable PDF.

    Covers a missing ``%PDF-`` signature, a container that cannot be
    opened, and a document from which no page could be extracted.
    """


class NoClassificationDataError(PipelineError):
    """Raised when OCR is triggered for a document that was never classified.

    Attributes:
        document_id: The document whose record is missing or incomplete.
    """

    def __init__(self, document_id: str) -> None:
        """Initialize the exception.

        Args:
            document_id: The document whose record is missing or incomplete.
        """
        super().__init__(f"No classification data found for {document_id}")
        self.document_id = document_id


class StageError(PipelineError):
    """Raised when a required step of a stage fails.

    Attributes:
        stage: Name of the stage.
        step: Step that failed (e.g. ``"upload_pages"``).
    """

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        step: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            stage: Name of the stage.
            step: Step that failed.
            cause: The underlying exception that caused this error.
        """
        super().__init__(message, cause=cause)
        self.stage = stage
        self.step = step

    def __str__(self) -> str:
        """Return string representation with stage and step."""
        where = f"{self.stage}.{self.step}" if self.step else self.stage
        return f"{self.message} ({where})"
