"""Pipeline record store.

The single owner of pipeline records and the processing error log. Stages
never write records directly; they hand partial records to
:meth:`PipelineRecordStore.upsert`, which merges them under the backend's
per-record critical section.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from doc_intake.observability import get_logger
from doc_intake.records.models import (
    ErrorStage,
    PipelineRecord,
    PipelineStage,
    ProcessingErrorRecord,
    merge_records,
)


if TYPE_CHECKING:
    from doc_intake.records.base import RecordBackend


__all__ = ["PipelineRecordStore"]


class PipelineRecordStore:
    """Reads, merges and logs pipeline state through a backend.

    Example:
        ```python
        store = PipelineRecordStore(InMemoryRecordBackend())
        await store.upsert(PipelineRecord(id="page-1_scan.pdf"))
        record = await store.get("page-1_scan.pdf")
        ```
    """

    def __init__(self, backend: RecordBackend) -> None:
        """Initialize the store.

        Args:
            backend: Persistence backend.
        """
        self.backend = backend
        self._logger = get_logger(__name__)

    async def open(self) -> None:
        """Open the backend."""
        await self.backend.open()

    async def close(self) -> None:
        """Close the backend."""
        await self.backend.close()

    async def get(self, document_id: str) -> PipelineRecord | None:
        """Return the record for a document, or None."""
        return await self.backend.read(document_id)

    async def upsert(self, record: PipelineRecord) -> PipelineRecord:
        """Merge a (possibly partial) record into the stored one.

        See :func:`~doc_intake.records.models.merge_records` for the rules.

        Args:
            record: The write. Only explicitly set fields are applied.

        Returns:
            The stored record after the merge.
        """

        def _merge(current: PipelineRecord | None) -> PipelineRecord:
            return merge_records(current, record)

        merged = await self.backend.update(record.id, _merge)
        self._logger.debug(
            "record_upserted",
            document_id=record.id,
            stage=merged.stage.value,
        )
        return merged

    async def mark_error(self, document_id: str, message: str) -> PipelineRecord | None:
        """Move an existing record to the error stage.

        Args:
            document_id: Record to update.
            message: Stored as ``error_message``.

        Returns:
            The updated record, or None if no record exists.
        """
        if await self.backend.read(document_id) is None:
            return None
        return await self.upsert(
            PipelineRecord(
                id=document_id,
                stage=PipelineStage.ERROR,
                error_message=message,
            ),
        )

    async def query(
        self,
        *,
        stage: PipelineStage | None = None,
        limit: int = 100,
    ) -> list[PipelineRecord]:
        """List records, optionally only those in one stage."""
        return await self.backend.query(stage=stage, limit=limit)

    async def log_error(
        self,
        document_id: str,
        error: BaseException | str,
        stage: ErrorStage,
        details: dict[str, Any] | None = None,
    ) -> ProcessingErrorRecord | None:
        """Append a processing error record.

        Best-effort: if the backend cannot write, the failure is logged and
        None is returned. Never raises.

        Args:
            document_id: Document the error concerns.
            error: The exception, or a message.
            stage: Stage the error occurred in.
            details: Extra diagnostic fields.

        Returns:
            The appended entry, or None if it could not be written.
        """
        if isinstance(error, BaseException):
            message = str(error) or type(error).__name__
            error_type = type(error).__name__
        else:
            message = error
            error_type = "Error"

        entry = ProcessingErrorRecord(
            document_id=document_id,
            error_message=message,
            error_type=error_type,
            stage=stage,
            details=details or {},
        )
        try:
            await self.backend.append_error(entry)
        except Exception:
            self._logger.exception(
                "error_record_write_failed",
                document_id=document_id,
                error_stage=stage.value,
            )
            return None
        return entry

    async def list_errors(
        self,
        document_id: str | None = None,
        *,
        limit: int = 100,
    ) -> list[ProcessingErrorRecord]:
        """List error log entries, newest first."""
        return await self.backend.list_errors(document_id=document_id, limit=limit)
