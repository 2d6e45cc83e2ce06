"""Pipeline runtime: builds and owns every long-lived collaborator.

The runtime turns :class:`~doc_intake.config.Settings` into a blob store,
a record store, a document-understanding client and the three stages, and
registers the stages against their trigger locations. Resources are
opened on enter and closed on exit; nothing is created at import time.

Stages are built on demand, so a deployment that only ingests does not
need classifier credentials. Building a stage whose settings are missing
raises :class:`~doc_intake.config.MissingConfigurationError`.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Self

from doc_intake.config import BlobBackend, RecordBackend
from doc_intake.intelligence import DocumentIntelligenceClient
from doc_intake.observability import get_logger
from doc_intake.pipeline import (
    ClassificationStage,
    IngestStage,
    OCRStage,
    Stage,
    StageName,
)
from doc_intake.records import (
    InMemoryRecordBackend,
    PipelineRecordStore,
    PostgresRecordBackend,
)
from doc_intake.storage import LocalBlobStore, S3BlobStore, StorageRelocator
from doc_intake.workers import JobQueue, LocationPoller, StageRegistry


if TYPE_CHECKING:
    from collections.abc import Iterable

    from doc_intake.config import Settings
    from doc_intake.pipeline import StageResult
    from doc_intake.records import RecordBackend as RecordBackendImpl
    from doc_intake.storage import BlobStore


__all__ = ["PipelineRuntime", "build_blob_store", "build_record_backend"]


def build_blob_store(settings: Settings) -> BlobStore:
    """Create the configured blob store backend."""
    if settings.storage.backend == BlobBackend.S3:
        return S3BlobStore.from_config(settings.storage.connection)
    return LocalBlobStore(settings.storage.root)


def build_record_backend(settings: Settings) -> RecordBackendImpl:
    """Create the configured record backend.

    Raises:
        MissingConfigurationError: If the postgres backend has no DSN.
    """
    settings.require_record_store()
    if settings.records.backend == RecordBackend.POSTGRES:
        return PostgresRecordBackend(
            settings.records.dsn or "",
            records_table=settings.records.records_table,
            errors_table=settings.records.errors_table,
        )
    return InMemoryRecordBackend()


class PipelineRuntime:
    """Owns the collaborators of a running pipeline.

    Example:
        ```python
        async with PipelineRuntime(settings) as runtime:
            runtime.register_stages()
            await runtime.run(stop_event)
        ```

    Attributes:
        settings: Application settings.
        relocator: Storage operations.
        records: Record store.
        registry: Stage handlers by location pattern.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        blob_store: BlobStore | None = None,
        record_backend: RecordBackendImpl | None = None,
        client: DocumentIntelligenceClient | None = None,
    ) -> None:
        """Initialize the runtime.

        Args:
            settings: Application settings.
            blob_store: Blob store to use instead of the configured one.
            record_backend: Record backend to use instead of the configured one.
            client: Document-understanding client to use instead of building
                one from settings.
        """
        self.settings = settings
        self._blob_store = blob_store or build_blob_store(settings)
        self.relocator = StorageRelocator(self._blob_store)
        self.records = PipelineRecordStore(
            record_backend or build_record_backend(settings),
        )
        self.registry = StageRegistry()
        self._client = client
        self._owns_client = client is None
        self._stages: dict[StageName, Stage] = {}
        self._logger = get_logger(__name__)

    async def __aenter__(self) -> Self:
        """Open storage and the record store."""
        await self._blob_store.open()
        await self.records.open()
        self._logger.info(
            "runtime_opened",
            storage=self.settings.storage.backend.value,
            records=self.settings.records.backend.value,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Close the client, the record store and storage."""
        if self._client is not None and self._owns_client:
            await self._client.close()
        await self.records.close()
        await self._blob_store.close()
        self._logger.info("runtime_closed")

    # -------------------------------------------------------------------------
    # Stage Construction
    # -------------------------------------------------------------------------

    def intelligence_client(self) -> DocumentIntelligenceClient:
        """Return the document-understanding client, building it once.

        Raises:
            MissingConfigurationError: If the endpoint or key is unset.
        """
        if self._client is None:
            self.settings.require(
                "document-understanding client",
                "intelligence.endpoint",
                "intelligence.api_key",
            )
            self._client = DocumentIntelligenceClient.from_config(
                self.settings.intelligence,
            )
        return self._client

    def stage(self, name: StageName) -> Stage:
        """Return a stage, building it on first use.

        Raises:
            MissingConfigurationError: If the stage's settings are incomplete.
        """
        if name not in self._stages:
            self._stages[name] = self._build_stage(name)
        return self._stages[name]

    def _build_stage(self, name: StageName) -> Stage:
        locations = self.settings.locations
        if name == StageName.INGEST:
            return IngestStage(
                relocator=self.relocator,
                records=self.records,
                locations=locations,
            )
        if name == StageName.CLASSIFICATION:
            self.settings.require("classification stage", "classification.model_id")
            return ClassificationStage(
                client=self.intelligence_client(),
                relocator=self.relocator,
                records=self.records,
                locations=locations,
                ocr=self.settings.ocr,
                model_id=self.settings.classification.model_id or "",
            )
        return OCRStage(
            client=self.intelligence_client(),
            relocator=self.relocator,
            records=self.records,
        )

    def trigger_pattern(self, name: StageName) -> str:
        """Location pattern that triggers a stage."""
        locations = self.settings.locations
        return {
            StageName.INGEST: locations.input,
            StageName.CLASSIFICATION: locations.splitted,
            StageName.OCR: locations.classified_pattern,
        }[name]

    def register_stages(self, names: Iterable[StageName] | None = None) -> None:
        """Build stages and register them against their trigger locations.

        Args:
            names: Stages to register (default: all three). Stages already
                registered are skipped.
        """
        for name in names or list(StageName):
            pattern = self.trigger_pattern(name)
            if pattern in self.registry.patterns:
                continue
            self.registry.register_stage_handler(pattern, self.stage(name))

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def ensure_trigger_locations(self) -> None:
        """Create the fixed trigger locations so uploads have somewhere to land."""
        for location in (self.settings.locations.input, self.settings.locations.splitted):
            await self.relocator.ensure_location(location)

    async def submit(self, path: Path | str, *, key: str | None = None) -> str:
        """Upload a local file into the input location.

        Returns:
            The key the file was stored under.
        """
        path = Path(path)
        data = await asyncio.to_thread(path.read_bytes)
        object_key = key or path.name
        await self.relocator.upload(self.settings.locations.input, object_key, data)
        self._logger.info("document_submitted", key=object_key, size_bytes=len(data))
        return object_key

    async def default_location(self, name: StageName, key: str) -> str:
        """Location a stage would be triggered from for a key.

        For OCR this is the location recorded at classification time.
        """
        locations = self.settings.locations
        if name == StageName.INGEST:
            return locations.input
        if name == StageName.CLASSIFICATION:
            return locations.splitted
        record = await self.records.get(key)
        if record is not None and record.classification is not None:
            return record.classification.location
        return locations.classified("unknown")

    async def invoke(
        self,
        name: StageName,
        key: str,
        *,
        location: str | None = None,
    ) -> StageResult:
        """Run one stage once for a key, as if its trigger had fired."""
        self.register_stages([name])
        trigger_location = location or await self.default_location(name, key)
        return await self.registry.dispatch(trigger_location, key)

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Register every stage and poll trigger locations until stopped."""
        self.register_stages()
        await self.ensure_trigger_locations()
        async with JobQueue(config=self.settings.jobs) as queue:
            poller = LocationPoller.from_config(
                self.settings.triggers,
                relocator=self.relocator,
                registry=self.registry,
                queue=queue,
            )
            await poller.run(stop)
