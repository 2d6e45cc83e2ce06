"""Record store exceptions."""

from __future__ import annotations


__all__ = ["RecordStoreError"]


class RecordStoreError(Exception):
    """Raised when a record backend cannot read or write.

    Attributes:
        message: Human-readable error description.
        document_id: Record the operation concerned, if any.
        cause: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        *,
        document_id: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            document_id: Record the operation concerned, if any.
            cause: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.document_id = document_id
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        """Return string representation with the document ID if available."""
        if self.document_id is not None:
            return f"{self.message} (document_id={self.document_id})"
        return self.message
