"""Location polling: the local trigger source.

Lists every location that has a registered stage handler and submits one
job per key found. A key is delivered once per appearance in a location.
If that delivery fails (the job errors, or the stage reports FAILED) and
the key is still present ``redelivery_seconds`` later, it is delivered
again. A key is never delivered while a previous delivery of it is still
running.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING

from doc_intake.observability import get_logger
from doc_intake.pipeline.models import StageOutcome, StageResult
from doc_intake.workers.exceptions import JobQueueFullError
from doc_intake.workers.models import JobStatus


if TYPE_CHECKING:
    from doc_intake.config import TriggersConfig
    from doc_intake.storage import StorageRelocator
    from doc_intake.workers.models import Job
    from doc_intake.workers.queue import JobQueue
    from doc_intake.workers.registry import StageRegistry


__all__ = ["LocationPoller"]


class LocationPoller:
    """Polls trigger locations and feeds the job queue.

    Attributes:
        interval_seconds: Time between polls.
        redelivery_seconds: Minimum time before a key is delivered again.
        batch_size: Maximum keys delivered per location per poll.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        relocator: StorageRelocator,
        registry: StageRegistry,
        queue: JobQueue,
        interval_seconds: float = 5.0,
        redelivery_seconds: float = 300.0,
        batch_size: int = 50,
    ) -> None:
        """Initialize the poller.

        Args:
            relocator: Storage operations used to list locations and keys.
            registry: Stage handlers; decides which locations are watched.
            queue: Queue the invocations run on.
            interval_seconds: Time between polls.
            redelivery_seconds: Minimum time before a key is delivered again.
            batch_size: Maximum keys delivered per location per poll.
        """
        self.relocator = relocator
        self.registry = registry
        self.queue = queue
        self.interval_seconds = interval_seconds
        self.redelivery_seconds = redelivery_seconds
        self.batch_size = batch_size
        self._in_flight: set[tuple[str, str]] = set()
        self._delivered_at: dict[tuple[str, str], float] = {}
        self._settled: set[tuple[str, str]] = set()
        self._logger = get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        config: TriggersConfig,
        *,
        relocator: StorageRelocator,
        registry: StageRegistry,
        queue: JobQueue,
    ) -> LocationPoller:
        """Create a poller from the ``triggers`` settings section."""
        return cls(
            relocator=relocator,
            registry=registry,
            queue=queue,
            interval_seconds=config.interval_seconds,
            redelivery_seconds=config.redelivery_seconds,
            batch_size=config.batch_size,
        )

    @property
    def in_flight(self) -> frozenset[tuple[str, str]]:
        """(location, key) pairs with a delivery still running."""
        return frozenset(self._in_flight)

    async def watched_locations(self) -> list[str]:
        """Existing locations that have a registered handler."""
        return [
            location
            for location in await self.relocator.list_locations()
            if self.registry.matches(location)
        ]

    async def poll_once(self) -> int:
        """List every watched location once and submit due keys.

        Returns:
            Number of jobs submitted.
        """
        submitted = 0
        for location in await self.watched_locations():
            keys = await self.relocator.list(location)
            self._forget_missing(location, set(keys))
            try:
                submitted += await self._deliver(location, keys)
            except JobQueueFullError:
                self._logger.warning("poll_queue_full", location=location)
                break
        return submitted

    async def _deliver(self, location: str, keys: list[str]) -> int:
        now = time.monotonic()
        count = 0
        for key in keys:
            if count >= self.batch_size:
                break
            ident = (location, key)
            if ident in self._in_flight or ident in self._settled:
                continue
            last = self._delivered_at.get(ident)
            if last is not None and now - last < self.redelivery_seconds:
                continue

            self._in_flight.add(ident)
            self._delivered_at[ident] = now
            try:
                await self.queue.submit(
                    self.registry.dispatch(location, key),
                    location=location,
                    key=key,
                    on_done=self._on_done,
                )
            except Exception:
                self._in_flight.discard(ident)
                self._delivered_at.pop(ident, None)
                raise
            self._logger.debug(
                "trigger_delivered",
                location=location,
                key=key,
                redelivery=last is not None,
            )
            count += 1
        return count

    def _on_done(self, job: Job) -> None:
        if job.location is None or job.key is None:
            return
        ident = (job.location, job.key)
        self._in_flight.discard(ident)
        if _succeeded(job):
            self._settled.add(ident)

    def _forget_missing(self, location: str, present: set[str]) -> None:
        stale = [
            ident
            for ident in self._delivered_at
            if ident[0] == location and ident[1] not in present
        ]
        for ident in stale:
            del self._delivered_at[ident]
        self._settled = {
            ident
            for ident in self._settled
            if ident[0] != location or ident[1] in present
        }

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Poll until ``stop`` is set (or forever).

        Errors during a poll are logged and the next poll proceeds.
        """
        stop = stop or asyncio.Event()
        self._logger.info(
            "poller_started",
            interval_seconds=self.interval_seconds,
            patterns=self.registry.patterns,
        )
        while not stop.is_set():
            try:
                submitted = await self.poll_once()
            except Exception:
                self._logger.exception("poll_failed")
            else:
                if submitted:
                    self._logger.info("poll_submitted", jobs=submitted)
            await self.queue.cleanup_completed(max_age_seconds=self.redelivery_seconds)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=self.interval_seconds)
        self._logger.info("poller_stopped")


def _succeeded(job: Job) -> bool:
    """Whether a finished delivery needs no retry."""
    if job.status != JobStatus.COMPLETED or job.result is None:
        return False
    value = job.result.value
    if isinstance(value, StageResult):
        return value.outcome != StageOutcome.FAILED
    return True
