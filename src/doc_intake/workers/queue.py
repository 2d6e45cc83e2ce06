"""Bounded concurrent execution of stage invocations."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Self

import aiojobs
import structlog

from doc_intake.workers.exceptions import (
    JobError,
    JobNotFoundError,
    JobQueueFullError,
    JobTimeoutError,
)
from doc_intake.workers.models import Job, JobResult, JobStatus


if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from doc_intake.config import JobsConfig


__all__ = ["JobQueue"]


class JobQueue:
    """Runs stage invocations on an ``aiojobs.Scheduler``.

    At most ``workers`` invocations run at once; the rest wait in the
    scheduler's pending queue. Each invocation is bounded by a timeout and
    tracked as a :class:`Job`. An optional ``on_done`` callback fires when
    a job reaches a terminal status, whatever the outcome.

    Example:
        ```python
        async with JobQueue(workers=4, timeout=900) as queue:
            job = await queue.submit(
                registry.dispatch("splitted", "page-1_scan.pdf"),
                location="splitted",
                key="page-1_scan.pdf",
            )
            done = await queue.wait(job.id)
            print(done.result.value.outcome)
        ```

    Attributes:
        workers: Maximum number of concurrent jobs.
        timeout: Default timeout per job in seconds.
    """

    DEFAULT_WORKERS = 4
    DEFAULT_TIMEOUT = 900.0
    DEFAULT_PENDING_LIMIT = 10000

    def __init__(
        self,
        *,
        workers: int | None = None,
        timeout: float | None = None,
        pending_limit: int | None = None,
        config: JobsConfig | None = None,
    ) -> None:
        """Initialize the queue.

        Args:
            workers: Maximum concurrent jobs. Overrides config if provided.
            timeout: Default job timeout in seconds. Overrides config if provided.
            pending_limit: Maximum waiting jobs.
            config: ``jobs`` settings section supplying defaults.
        """
        default_workers = config.workers if config else self.DEFAULT_WORKERS
        default_timeout = float(config.timeout) if config else self.DEFAULT_TIMEOUT
        self.workers = workers if workers is not None else default_workers
        self.timeout = float(timeout) if timeout is not None else default_timeout
        self._pending_limit = pending_limit or self.DEFAULT_PENDING_LIMIT
        self._scheduler: aiojobs.Scheduler | None = None
        self._jobs: dict[str, Job] = {}
        self._lock = asyncio.Lock()
        self._logger = structlog.get_logger(__name__)

    @property
    def is_running(self) -> bool:
        """Return True if the queue accepts jobs."""
        return self._scheduler is not None and not self._scheduler.closed

    @property
    def active_count(self) -> int:
        """Number of running jobs."""
        return 0 if self._scheduler is None else int(self._scheduler.active_count)

    @property
    def pending_count(self) -> int:
        """Number of jobs waiting for a worker."""
        return 0 if self._scheduler is None else int(self._scheduler.pending_count)

    async def __aenter__(self) -> Self:
        """Start the queue."""
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Stop the queue."""
        await self.stop()

    async def start(self) -> None:
        """Create the scheduler. Calling twice is harmless."""
        if self.is_running:
            return
        self._scheduler = aiojobs.Scheduler(
            limit=self.workers,
            pending_limit=self._pending_limit,
            close_timeout=10.0,
        )
        self._logger.info(
            "job_queue_started",
            workers=self.workers,
            timeout=self.timeout,
        )

    async def stop(self, *, timeout: float | None = None) -> None:  # noqa: ASYNC109
        """Wait for jobs to finish, then close the scheduler.

        Jobs still unfinished after ``timeout`` seconds are cancelled.
        """
        if self._scheduler is None or self._scheduler.closed:
            return
        self._logger.info(
            "job_queue_stopping",
            active_count=self.active_count,
            pending_count=self.pending_count,
        )
        await self._scheduler.wait_and_close(timeout=timeout)
        async with self._lock:
            for job in self._jobs.values():
                if not job.is_terminal:
                    job.finish(
                        JobStatus.CANCELLED,
                        JobResult(error_message="Queue stopped"),
                    )
        self._scheduler = None
        self._logger.info("job_queue_stopped")

    async def submit(  # noqa: PLR0913
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        name: str = "",
        location: str | None = None,
        key: str | None = None,
        timeout: float | None = None,  # noqa: ASYNC109
        on_done: Callable[[Job], None] | None = None,
    ) -> Job:
        """Queue a coroutine.

        Args:
            coro: The invocation to run.
            name: Human-readable job name.
            location: Trigger location, for tracking.
            key: Object key, for tracking.
            timeout: Job-specific timeout (overrides default).
            on_done: Called with the job once it is terminal.

        Returns:
            The tracked job, initially PENDING.

        Raises:
            JobQueueFullError: If the pending limit is reached.
            JobError: If the queue is not running.
        """
        if self._scheduler is None or self._scheduler.closed:
            coro.close()
            msg = "Job queue is not running"
            raise JobError(msg)
        if self._scheduler.pending_count >= self._pending_limit:
            coro.close()
            raise JobQueueFullError(self._pending_limit)

        job = Job(name=name or f"{location}/{key}", location=location, key=key)
        limit = timeout if timeout is not None else self.timeout

        async with self._lock:
            self._jobs[job.id] = job
            await self._scheduler.spawn(self._run(job, coro, limit, on_done))

        self._logger.debug(
            "job_submitted",
            job_id=job.id,
            location=location,
            key=key,
            timeout=limit,
        )
        return job

    async def _run(
        self,
        job: Job,
        coro: Coroutine[Any, Any, Any],
        timeout: float,  # noqa: ASYNC109
        on_done: Callable[[Job], None] | None,
    ) -> None:
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now(UTC)
        log = self._logger.bind(job_id=job.id, location=job.location, key=job.key)
        try:
            value = await asyncio.wait_for(coro, timeout=timeout)
        except TimeoutError:
            job.finish(
                JobStatus.FAILED,
                JobResult(
                    error=JobTimeoutError(job.id, timeout),
                    error_message=f"Job timed out after {timeout}s",
                ),
            )
            log.warning("job_timeout", timeout=timeout)
        except asyncio.CancelledError:
            job.finish(JobStatus.CANCELLED, JobResult(error_message="Job was cancelled"))
            log.info("job_cancelled")
            raise
        except Exception as exc:
            job.finish(JobStatus.FAILED, JobResult(error=exc, error_message=str(exc)))
            log.exception("job_failed", error=str(exc), error_type=type(exc).__name__)
        else:
            job.finish(JobStatus.COMPLETED, JobResult(value=value))
            log.debug("job_completed", duration_seconds=job.duration_seconds)
        finally:
            if on_done is not None:
                on_done(job)

    async def get(self, job_id: str) -> Job:
        """Return a job by ID.

        Raises:
            JobNotFoundError: If no job with this ID exists.
        """
        async with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def wait(
        self,
        job_id: str,
        *,
        timeout: float | None = None,  # noqa: ASYNC109
        poll_interval: float = 0.05,
    ) -> Job:
        """Wait until a job is terminal.

        Raises:
            JobNotFoundError: If no job with this ID exists.
            TimeoutError: If ``timeout`` elapses first.
        """
        job = await self.get(job_id)

        async def _poll() -> Job:
            while not job.is_terminal:
                await asyncio.sleep(poll_interval)
            return job

        return await asyncio.wait_for(_poll(), timeout=timeout)

    async def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        key: str | None = None,
        limit: int = 100,
    ) -> list[Job]:
        """List jobs, newest first, optionally filtered."""
        async with self._lock:
            jobs = list(self._jobs.values())
        jobs = [
            job
            for job in jobs
            if (status is None or job.status == status)
            and (key is None or job.key == key)
        ]
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return jobs[:limit]

    async def cleanup_completed(self, *, max_age_seconds: float = 3600) -> int:
        """Forget terminal jobs older than ``max_age_seconds``.

        Returns:
            Number of jobs removed.
        """
        now = datetime.now(UTC)
        async with self._lock:
            stale = [
                job.id
                for job in self._jobs.values()
                if job.is_terminal
                and job.completed_at is not None
                and (now - job.completed_at).total_seconds() > max_age_seconds
            ]
            for job_id in stale:
                del self._jobs[job_id]
        if stale:
            self._logger.debug("jobs_cleaned_up", count=len(stale))
        return len(stale)
