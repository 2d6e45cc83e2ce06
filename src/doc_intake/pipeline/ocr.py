"""OCR stage: extract text from classified pages.

Triggered by objects landing in any classified location. The page is
read with the OCR model recorded at classification time and the
flattened text is stored on its pipeline record.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from doc_intake.pipeline.base import Stage
from doc_intake.pipeline.exceptions import NoClassificationDataError, StageError
from doc_intake.pipeline.interpretation import flatten_text
from doc_intake.pipeline.models import StageName, StageOutcome, StageResult
from doc_intake.records import ErrorStage, OcrInfo, PipelineRecord, PipelineStage


if TYPE_CHECKING:
    from doc_intake.intelligence import DocumentIntelligenceClient
    from doc_intake.pipeline.models import StageTrigger
    from doc_intake.records import PipelineRecordStore
    from doc_intake.storage import StorageRelocator


__all__ = ["OCRStage"]


class OCRStage(Stage):
    """Runs OCR on classified pages.

    Failures are written to the error log and move the page's record to
    the error stage. A page whose text is already stored is skipped, so
    re-delivery never repeats the service call or undoes a completed
    record.
    """

    name = StageName.OCR

    def __init__(
        self,
        *,
        client: DocumentIntelligenceClient,
        relocator: StorageRelocator,
        records: PipelineRecordStore,
    ) -> None:
        """Initialize the stage.

        Args:
            client: Document-understanding client.
            relocator: Storage operations.
            records: Record store.
        """
        super().__init__()
        self.client = client
        self.relocator = relocator
        self.records = records

    async def _process(self, trigger: StageTrigger) -> StageResult:
        key = trigger.key
        if not key:
            return self._skip(trigger, "missing object key")

        payload: bytes | None = None
        if trigger.payload is not None:
            payload = self._coerce(trigger)
            if payload is None:
                return self._skip(trigger, "payload is not convertible to bytes")

        record = await self.records.get(key)
        if _already_read(record):
            return self._skip(trigger, "text already extracted")
        if record is None or record.classification is None:
            raise NoClassificationDataError(key)
        classification = record.classification

        data = await self._load(trigger, classification.location, payload)
        model_id = classification.selected_ocr_model

        log = self._logger.bind(key=key, model_id=model_id)
        log.info("ocr_started", size_bytes=len(data))

        result = await self.client.analyze(model_id, data)
        text = flatten_text(result)

        await self.records.upsert(
            PipelineRecord(
                id=key,
                stage=PipelineStage.OCR_COMPLETED,
                ocr=OcrInfo(
                    extracted_text=text,
                    raw_result=result.raw,
                    model_id=model_id,
                ),
            ),
        )
        log.info("ocr_completed", pages=len(result.pages), characters=len(text))

        return self._result(
            trigger,
            StageOutcome.COMPLETED,
            detail=f"extracted {len(text)} characters",
            model_id=model_id,
            pages=len(result.pages),
            characters=len(text),
        )

    async def _load(
        self,
        trigger: StageTrigger,
        recorded_location: str,
        payload: bytes | None,
    ) -> bytes:
        """Read the page from its recorded location, then the fallbacks."""
        key = trigger.key or ""
        data = await self.relocator.download(recorded_location, key)
        if data is None and trigger.location != recorded_location:
            data = await self.relocator.download(trigger.location, key)
        if data is None:
            data = payload
        if data is None:
            msg = f"Page {key} not found in {recorded_location}"
            raise StageError(msg, stage=self.name.value, step="load_page")
        return data

    async def _on_failure(
        self,
        trigger: StageTrigger,
        exc: Exception,
        details: dict[str, Any],
    ) -> None:
        if not trigger.key:
            return
        await self.records.log_error(trigger.key, exc, ErrorStage.OCR, details)
        try:
            if _already_read(await self.records.get(trigger.key)):
                return
            await self.records.mark_error(trigger.key, str(exc))
        except Exception:
            self._logger.exception("ocr_mark_error_failed", key=trigger.key)


def _already_read(record: PipelineRecord | None) -> bool:
    return (
        record is not None
        and record.stage == PipelineStage.OCR_COMPLETED
        and record.ocr is not None
    )
