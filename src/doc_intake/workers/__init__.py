"""Stage dispatch, concurrent execution and the local trigger source.

Example:
    ```python
    from doc_intake.workers import JobQueue, LocationPoller, StageRegistry

    registry = StageRegistry()
    registry.register_stage_handler("input", ingest_stage)

    async with JobQueue(workers=4, timeout=900) as queue:
        poller = LocationPoller(relocator=relocator, registry=registry, queue=queue)
        await poller.run(stop_event)
    ```
"""

from __future__ import annotations

from doc_intake.workers.exceptions import (
    JobError,
    JobNotFoundError,
    JobQueueFullError,
    JobTimeoutError,
    UnknownTriggerLocationError,
)
from doc_intake.workers.models import Job, JobResult, JobStatus
from doc_intake.workers.polling import LocationPoller
from doc_intake.workers.queue import JobQueue
from doc_intake.workers.registry import StageRegistry


__all__ = [
    "Job",
    "JobError",
    "JobNotFoundError",
    "JobQueue",
    "JobQueueFullError",
    "JobResult",
    "JobStatus",
    "JobTimeoutError",
    "LocationPoller",
    "StageRegistry",
    "UnknownTriggerLocationError",
]
