"""Classification stage: classify a page and route it by document type.

Triggered by objects landing in the splitted location. The page is sent
to the classifier, the result is stored on the page's pipeline record
together with the OCR model chosen for its type, and the page is moved to
``{classified_prefix}{doc_type}``, which triggers OCR.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from doc_intake.pipeline.base import Stage
from doc_intake.pipeline.interpretation import (
    interpret_classification,
    location_safe_doc_type,
)
from doc_intake.pipeline.models import StageName, StageOutcome, StageResult
from doc_intake.records import (
    ClassificationInfo,
    ErrorStage,
    PipelineRecord,
    PipelineStage,
    RecordMetadata,
)
from doc_intake.storage import RelocationOutcome


if TYPE_CHECKING:
    from doc_intake.config import LocationsConfig, OCRConfig
    from doc_intake.intelligence import DocumentIntelligenceClient
    from doc_intake.pipeline.models import StageTrigger
    from doc_intake.records import PipelineRecordStore
    from doc_intake.storage import StorageRelocator


__all__ = ["ClassificationStage"]


class ClassificationStage(Stage):
    """Classifies single-page PDFs.

    The record id is the page's storage key, so the OCR stage can find the
    record from the key it is triggered with. The classification stored
    first wins: a re-delivered page is moved to the location recorded the
    first time even if the classifier answers differently.
    """

    name = StageName.CLASSIFICATION

    def __init__(
        self,
        *,
        client: DocumentIntelligenceClient,
        relocator: StorageRelocator,
        records: PipelineRecordStore,
        locations: LocationsConfig,
        ocr: OCRConfig,
        model_id: str,
    ) -> None:
        """Initialize the stage.

        Args:
            client: Document-understanding client.
            relocator: Storage operations.
            records: Record store.
            locations: Storage location names.
            ocr: OCR model selection settings.
            model_id: Classifier model identifier.
        """
        super().__init__()
        self.client = client
        self.relocator = relocator
        self.records = records
        self.locations = locations
        self.ocr = ocr
        self.model_id = model_id

    async def _process(self, trigger: StageTrigger) -> StageResult:
        key = trigger.key
        if not key:
            return self._skip(trigger, "missing object key")

        source = self.locations.splitted
        data = await self.relocator.download(source, key)
        if data is None:
            return self._skip(trigger, "object no longer in splitted location")

        log = self._logger.bind(key=key, model_id=self.model_id)
        log.info("classification_started", size_bytes=len(data))

        raw_result = await self.client.classify(self.model_id, data)
        interpreted = interpret_classification(raw_result)
        destination = self.locations.classified(
            location_safe_doc_type(interpreted.doc_type),
        )
        log.info(
            "document_classified",
            doc_type=interpreted.doc_type,
            confidence=interpreted.confidence,
            matched_shape=interpreted.source,
        )

        info = ClassificationInfo(
            document_type=interpreted.doc_type,
            confidence=interpreted.confidence,
            model_id=self.model_id,
            raw_result=raw_result,
            location=destination,
            selected_ocr_model=self.ocr.model_for(interpreted.doc_type),
        )
        stored = await self.records.upsert(
            PipelineRecord(
                id=key,
                source_file_name=key,
                stage=PipelineStage.CLASSIFIED,
                classification=info,
                metadata=RecordMetadata(
                    original_size_bytes=len(data),
                    source=source,
                ),
            ),
        )
        classification = stored.classification or info
        if classification.document_type != interpreted.doc_type:
            log.warning(
                "classification_already_recorded",
                recorded_doc_type=classification.document_type,
            )

        outcome = await self.relocator.relocate(source, classification.location, key)
        if outcome == RelocationOutcome.NOT_FOUND:
            log.warning("classification_page_already_moved")

        return self._result(
            trigger,
            StageOutcome.COMPLETED,
            detail=f"classified as {classification.document_type}",
            doc_type=classification.document_type,
            confidence=classification.confidence,
            location=classification.location,
            ocr_model=classification.selected_ocr_model,
            relocation=outcome.value,
        )

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
                ErrorStage.CLASSIFICATION,
                {**details, "model_id": self.model_id},
            )
