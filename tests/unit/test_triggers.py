"""Unit tests for stage routing and location polling."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
import structlog

from doc_intake.config import TriggersConfig
from doc_intake.observability import get_invocation_id
from doc_intake.pipeline import StageName, StageOutcome, StageResult, StageTrigger
from doc_intake.workers import (
    JobQueue,
    LocationPoller,
    StageRegistry,
    UnknownTriggerLocationError,
)


if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from doc_intake.storage import StorageRelocator


class RecordingHandler:
    """Stage handler that records triggers and returns a fixed outcome."""

    def __init__(
        self,
        name: StageName = StageName.OCR,
        outcome: StageOutcome = StageOutcome.COMPLETED,
    ) -> None:
        self.name = name
        self.outcome = outcome
        self.triggers: list[StageTrigger] = []
        self.contexts: list[dict[str, object]] = []

    async def __call__(self, trigger: StageTrigger) -> StageResult:
        self.triggers.append(trigger)
        self.contexts.append(dict(structlog.contextvars.get_contextvars()))
        return StageResult(stage=self.name, key=trigger.key, outcome=self.outcome)


@pytest.fixture
async def queue() -> AsyncGenerator[JobQueue, None]:
    """Running job queue."""
    async with JobQueue(workers=2, timeout=5) as q:
        yield q


async def drain(queue: JobQueue) -> None:
    """Wait for every submitted job to finish."""
    for job in await queue.list_jobs(limit=1000):
        await queue.wait(job.id, timeout=5.0)


# ---------------------------------------------------------------------------
# StageRegistry
# ---------------------------------------------------------------------------


class TestStageRegistry:
    """Tests for StageRegistry."""

    def test_patterns_in_registration_order(self) -> None:
        """Patterns are listed as registered."""
        registry = StageRegistry()
        registry.register_stage_handler("input", RecordingHandler())
        registry.register_stage_handler("classified-*", RecordingHandler())

        assert registry.patterns == ["input", "classified-*"]

    def test_duplicate_pattern_rejected(self) -> None:
        """A pattern can only be registered once."""
        registry = StageRegistry()
        registry.register_stage_handler("input", RecordingHandler())

        with pytest.raises(ValueError, match="already registered"):
            registry.register_stage_handler("input", RecordingHandler())

    def test_resolve_glob(self) -> None:
        """Glob patterns match classified locations."""
        ocr = RecordingHandler()
        registry = StageRegistry()
        registry.register_stage_handler("classified-*", ocr)

        assert registry.resolve("classified-invoice") is ocr
        assert registry.matches("classified-unknown")
        assert not registry.matches("splitted")

    def test_resolve_unknown_location(self) -> None:
        """Unmatched locations raise UnknownTriggerLocationError."""
        registry = StageRegistry()
        with pytest.raises(UnknownTriggerLocationError) as exc_info:
            registry.resolve("backup")
        assert exc_info.value.location == "backup"

    async def test_dispatch_binds_context(self) -> None:
        """Handlers run with the invocation context bound, then cleared."""
        handler = RecordingHandler(StageName.CLASSIFICATION)
        registry = StageRegistry()
        registry.register_stage_handler("splitted", handler)

        result = await registry.dispatch("splitted", "p.pdf", b"%PDF-")

        assert result.outcome == StageOutcome.COMPLETED
        assert handler.triggers == [StageTrigger("splitted", "p.pdf", b"%PDF-")]
        context = handler.contexts[0]
        assert context["stage"] == "classification"
        assert context["document_key"] == "p.pdf"
        assert context["location"] == "splitted"
        assert "invocation_id" in context
        assert get_invocation_id() is None
        assert structlog.contextvars.get_contextvars() == {}


# ---------------------------------------------------------------------------
# LocationPoller
# ---------------------------------------------------------------------------


class TestLocationPoller:
    """Tests for LocationPoller."""

    def make_poller(
        self,
        relocator: StorageRelocator,
        registry: StageRegistry,
        queue: JobQueue,
        **kwargs: float,
    ) -> LocationPoller:
        """Poller with fast defaults."""
        return LocationPoller(
            relocator=relocator,
            registry=registry,
            queue=queue,
            interval_seconds=kwargs.get("interval_seconds", 0.01),
            redelivery_seconds=kwargs.get("redelivery_seconds", 300.0),
            batch_size=int(kwargs.get("batch_size", 50)),
        )

    async def test_from_config(
        self, relocator: StorageRelocator, queue: JobQueue
    ) -> None:
        """Settings map onto poller options."""
        poller = LocationPoller.from_config(
            TriggersConfig(interval_seconds=2, redelivery_seconds=60, batch_size=5),
            relocator=relocator,
            registry=StageRegistry(),
            queue=queue,
        )
        assert poller.interval_seconds == 2
        assert poller.redelivery_seconds == 60
        assert poller.batch_size == 5

    async def test_watches_matching_locations(
        self, relocator: StorageRelocator, queue: JobQueue
    ) -> None:
        """Only locations with a handler are watched."""
        registry = StageRegistry()
        registry.register_stage_handler("classified-*", RecordingHandler())
        for location in ("backup", "classified-invoice", "splitted"):
            await relocator.ensure_location(location)

        poller = self.make_poller(relocator, registry, queue)

        assert await poller.watched_locations() == ["classified-invoice"]

    async def test_delivers_each_key(
        self, relocator: StorageRelocator, queue: JobQueue
    ) -> None:
        """Every key present is delivered to its handler."""
        handler = RecordingHandler()
        registry = StageRegistry()
        registry.register_stage_handler("classified-*", handler)
        await relocator.upload("classified-invoice", "a.pdf", b"x")
        await relocator.upload("classified-receipt", "b.pdf", b"x")
        poller = self.make_poller(relocator, registry, queue)

        submitted = await poller.poll_once()
        await drain(queue)

        assert submitted == 2
        assert sorted((t.location, t.key) for t in handler.triggers) == [
            ("classified-invoice", "a.pdf"),
            ("classified-receipt", "b.pdf"),
        ]
        assert poller.in_flight == frozenset()

    async def test_successful_key_not_redelivered(
        self, relocator: StorageRelocator, queue: JobQueue
    ) -> None:
        """A key handled successfully is not delivered again while present."""
        handler = RecordingHandler()
        registry = StageRegistry()
        registry.register_stage_handler("classified-*", handler)
        await relocator.upload("classified-invoice", "a.pdf", b"x")
        poller = self.make_poller(relocator, registry, queue, redelivery_seconds=0)

        await poller.poll_once()
        await drain(queue)
        assert await poller.poll_once() == 0

    async def test_failed_key_redelivered(
        self, relocator: StorageRelocator, queue: JobQueue
    ) -> None:
        """A failed delivery is retried once the redelivery delay passed."""
        handler = RecordingHandler(outcome=StageOutcome.FAILED)
        registry = StageRegistry()
        registry.register_stage_handler("splitted", handler)
        await relocator.upload("splitted", "a.pdf", b"x")
        poller = self.make_poller(relocator, registry, queue, redelivery_seconds=0)

        await poller.poll_once()
        await drain(queue)
        assert await poller.poll_once() == 1
        await drain(queue)

        assert len(handler.triggers) == 2

    async def test_failed_key_waits_for_redelivery_delay(
        self, relocator: StorageRelocator, queue: JobQueue
    ) -> None:
        """A failed key is not retried before the delay."""
        registry = StageRegistry()
        registry.register_stage_handler(
            "splitted",
            RecordingHandler(outcome=StageOutcome.FAILED),
        )
        await relocator.upload("splitted", "a.pdf", b"x")
        poller = self.make_poller(relocator, registry, queue, redelivery_seconds=300)

        await poller.poll_once()
        await drain(queue)

        assert await poller.poll_once() == 0

    async def test_no_duplicate_in_flight(
        self, relocator: StorageRelocator, queue: JobQueue
    ) -> None:
        """A key is not delivered while its previous delivery runs."""
        release = asyncio.Event()
        calls = 0

        async def slow(trigger: StageTrigger) -> StageResult:
            nonlocal calls
            calls += 1
            await release.wait()
            return StageResult(stage=StageName.INGEST, key=trigger.key, outcome=StageOutcome.FAILED)

        registry = StageRegistry()
        registry.register_stage_handler("input", slow)
        await relocator.upload("input", "a.pdf", b"x")
        poller = self.make_poller(relocator, registry, queue, redelivery_seconds=0)

        await poller.poll_once()
        assert await poller.poll_once() == 0
        assert poller.in_flight == frozenset({("input", "a.pdf")})

        release.set()
        await drain(queue)
        assert calls == 1

    async def test_batch_size_limits_delivery(
        self, relocator: StorageRelocator, queue: JobQueue
    ) -> None:
        """At most batch_size keys per location are delivered per poll."""
        registry = StageRegistry()
        registry.register_stage_handler("splitted", RecordingHandler())
        for i in range(5):
            await relocator.upload("splitted", f"page-{i}.pdf", b"x")
        poller = self.make_poller(relocator, registry, queue, batch_size=2)

        assert await poller.poll_once() == 2
        await drain(queue)
        assert await poller.poll_once() == 2

    async def test_run_until_stopped(
        self, relocator: StorageRelocator, queue: JobQueue
    ) -> None:
        """run() polls repeatedly and returns once stop is set."""
        handler = RecordingHandler()
        registry = StageRegistry()
        registry.register_stage_handler("input", handler)
        poller = self.make_poller(relocator, registry, queue)
        stop = asyncio.Event()

        task = asyncio.create_task(poller.run(stop))
        await relocator.upload("input", "late.pdf", b"x")
        for _ in range(200):
            if handler.triggers:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=2.0)

        assert [t.key for t in handler.triggers] == ["late.pdf"]
