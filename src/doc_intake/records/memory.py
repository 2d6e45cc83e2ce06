"""Process-local record backend for development and tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import TYPE_CHECKING

from doc_intake.records.base import RecordBackend


if TYPE_CHECKING:
    from doc_intake.records.base import RecordUpdater
    from doc_intake.records.models import (
        PipelineRecord,
        PipelineStage,
        ProcessingErrorRecord,
    )


__all__ = ["InMemoryRecordBackend"]


class InMemoryRecordBackend(RecordBackend):
    """Keeps records in dictionaries, one ``asyncio.Lock`` per record id.

    Stored records are copied on the way in and out, so callers can never
    mutate what the backend holds.
    """

    def __init__(self) -> None:
        """Initialize an empty backend."""
        self._records: dict[str, PipelineRecord] = {}
        self._errors: list[ProcessingErrorRecord] = []
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def read(self, document_id: str) -> PipelineRecord | None:
        """Return a copy of the stored record, or None."""
        record = self._records.get(document_id)
        return record.model_copy(deep=True) if record is not None else None

    async def update(
        self,
        document_id: str,
        updater: RecordUpdater,
    ) -> PipelineRecord:
        """Apply ``updater`` under the record's lock."""
        async with self._locks[document_id]:
            current = await self.read(document_id)
            updated = updater(current)
            self._records[document_id] = updated.model_copy(deep=True)
            return updated

    async def query(
        self,
        *,
        stage: PipelineStage | None = None,
        limit: int = 100,
    ) -> list[PipelineRecord]:
        """List records in insertion order."""
        matches = [
            record.model_copy(deep=True)
            for record in self._records.values()
            if stage is None or record.stage == stage
        ]
        return matches[:limit]

    async def append_error(self, error: ProcessingErrorRecord) -> None:
        """Append an error log entry."""
        self._errors.append(error.model_copy(deep=True))

    async def list_errors(
        self,
        *,
        document_id: str | None = None,
        limit: int = 100,
    ) -> list[ProcessingErrorRecord]:
        """List error log entries, newest first."""
        matches = [
            error.model_copy(deep=True)
            for error in reversed(self._errors)
            if document_id is None or error.document_id == document_id
        ]
        return matches[:limit]
