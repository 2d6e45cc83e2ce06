"""Ingest stage: validate, back up and split uploaded PDFs.

Triggered by objects landing in the input location. A valid upload is
copied to the backup location, split into single-page PDFs that are
written to the splitted location, and then removed from the input
location. Non-PDF uploads are set aside in the invalid location.
"""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

from doc_intake.pipeline.base import Stage
from doc_intake.pipeline.exceptions import MalformedDocumentError, StageError
from doc_intake.pipeline.models import StageName, StageOutcome, StageResult
from doc_intake.pipeline.splitter import PageSplitter, has_pdf_signature
from doc_intake.records import ErrorStage


if TYPE_CHECKING:
    from doc_intake.config import LocationsConfig
    from doc_intake.pipeline.models import PageArtifact, StageTrigger
    from doc_intake.records import PipelineRecordStore
    from doc_intake.storage import StorageRelocator


__all__ = ["IngestStage"]


class IngestStage(Stage):
    """Turns one uploaded PDF into per-page artifacts.

    Re-delivery is safe: page keys are derived from the upload name, so a
    repeated run overwrites the same objects. The upload is only removed
    from the input location once every page has been written.

    Example:
        ```python
        stage = IngestStage(relocator=relocator, records=store, locations=locations)
        result = await stage(StageTrigger("input", "scan.pdf", pdf_bytes))
        print(result.data["pages"])
        ```
    """

    name = StageName.INGEST

    def __init__(
        self,
        *,
        relocator: StorageRelocator,
        records: PipelineRecordStore,
        locations: LocationsConfig,
        splitter: PageSplitter | None = None,
    ) -> None:
        """Initialize the stage.

        Args:
            relocator: Storage operations.
            records: Record store, used for the error log.
            locations: Storage location names.
            splitter: Page splitter (default: a new PageSplitter).
        """
        super().__init__()
        self.relocator = relocator
        self.records = records
        self.locations = locations
        self.splitter = splitter or PageSplitter()

    async def _process(self, trigger: StageTrigger) -> StageResult:
        key = trigger.key
        if not key:
            return self._skip(trigger, "missing object key")

        if trigger.payload is not None:
            data = self._coerce(trigger)
            if data is None:
                return self._skip(trigger, "payload is not convertible to bytes")
        else:
            data = await self.relocator.download(self.locations.input, key)
            if data is None:
                return self._skip(trigger, "object no longer in input location")

        log = self._logger.bind(key=key, size_bytes=len(data))
        log.info("ingest_started")

        if not has_pdf_signature(data):
            try:
                await self.relocator.upload(self.locations.invalid, key, data)
                await self.relocator.delete(self.locations.input, key)
            except Exception as exc:  # noqa: BLE001
                log.warning(
                    "ingest_set_aside_failed",
                    location=self.locations.invalid,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
            else:
                log.warning("ingest_rejected_not_pdf", location=self.locations.invalid)
            return self._result(
                trigger,
                StageOutcome.REJECTED,
                detail="not a PDF",
                location=self.locations.invalid,
            )

        try:
            await self.relocator.upload(self.locations.backup, key, data)
        except Exception as exc:  # noqa: BLE001
            log.warning(
                "ingest_backup_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            log.debug("ingest_backup_written", location=self.locations.backup)

        try:
            pages = await self._split(key, data)
        except MalformedDocumentError as exc:
            log.exception("ingest_split_failed", error=str(exc))
            await self.records.log_error(
                key,
                exc,
                ErrorStage.PREPROCESSING,
                {"size_bytes": len(data)},
            )
            return self._result(
                trigger,
                StageOutcome.FAILED,
                detail="split failed",
                error=str(exc),
            )

        written = await self._upload_pages(key, pages)

        removed = await self.relocator.delete(self.locations.input, key)
        log.info("ingest_source_deleted", was_present=removed)

        return self._result(
            trigger,
            StageOutcome.COMPLETED,
            detail=f"split into {len(written)} pages",
            pages=written,
            page_count=len(written),
        )

    async def _split(self, key: str, data: bytes) -> list[PageArtifact]:
        """Stage the upload in a scratch directory and split it there."""
        with tempfile.TemporaryDirectory(prefix="doc-intake-ingest-") as scratch:
            path = Path(scratch) / (Path(key).name or "upload.pdf")
            await asyncio.to_thread(path.write_bytes, data)
            return await asyncio.to_thread(self.splitter.split_file, path)

    async def _upload_pages(self, key: str, pages: list[PageArtifact]) -> list[str]:
        """Write every page; the first failure aborts the remaining uploads.

        Pages already written are left in place and the upload stays in the
        input location, so a re-delivery rewrites every page.
        """
        written: list[str] = []
        for page in pages:
            try:
                await self.relocator.upload(
                    self.locations.splitted,
                    page.file_name,
                    page.data,
                )
            except Exception as exc:
                msg = f"Failed to upload {page.file_name}"
                raise StageError(
                    msg,
                    stage=self.name.value,
                    step="upload_pages",
                    cause=exc,
                ) from exc
            written.append(page.file_name)
            self._logger.debug(
                "ingest_page_uploaded",
                key=key,
                page=page.page_index,
                page_key=page.file_name,
            )
        return written

    async def _on_failure(
        self,
        trigger: StageTrigger,
        exc: Exception,
        details: dict[str, Any],
    ) -> None:
        if trigger.key:
            await self.records.log_error(
                trigger.key,
                exc,
                ErrorStage.PREPROCESSING,
                details,
            )
