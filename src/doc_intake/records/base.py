"""Abstract record backend interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING

from doc_intake.records.models import PipelineRecord


if TYPE_CHECKING:
    from doc_intake.records.models import PipelineStage, ProcessingErrorRecord


__all__ = ["RecordBackend", "RecordUpdater"]


RecordUpdater = Callable[[PipelineRecord | None], PipelineRecord]


class RecordBackend(ABC):
    """Persistence for pipeline records and the processing error log.

    ``update`` is the only write path for records. Backends must run the
    read, the callback and the write for one id as a critical section so
    concurrent writers to the same record never lose each other's fields.
    """

    async def open(self) -> None:  # noqa: B027
        """Acquire backend resources. Optional."""

    async def close(self) -> None:  # noqa: B027
        """Release backend resources. Optional."""

    @abstractmethod
    async def read(self, document_id: str) -> PipelineRecord | None:
        """Return the stored record, or None."""

    @abstractmethod
    async def update(
        self,
        document_id: str,
        updater: RecordUpdater,
    ) -> PipelineRecord:
        """Replace a record with ``updater(stored_or_none)`` atomically."""

    @abstractmethod
    async def query(
        self,
        *,
        stage: PipelineStage | None = None,
        limit: int = 100,
    ) -> list[PipelineRecord]:
        """List records, optionally filtered by stage."""

    @abstractmethod
    async def append_error(self, error: ProcessingErrorRecord) -> None:
        """Append an entry to the error log."""

    @abstractmethod
    async def list_errors(
        self,
        *,
        document_id: str | None = None,
        limit: int = 100,
    ) -> list[ProcessingErrorRecord]:
        """List error log entries, newest first."""
