"""Unit tests for the job queue module."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from doc_intake.config import JobsConfig
from doc_intake.workers import (
    Job,
    JobError,
    JobNotFoundError,
    JobQueue,
    JobQueueFullError,
    JobResult,
    JobStatus,
    JobTimeoutError,
)


if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def queue() -> AsyncGenerator[JobQueue, None]:
    """Create a test job queue."""
    async with JobQueue(workers=2, timeout=0.5) as q:
        yield q


# ---------------------------------------------------------------------------
# TestJob
# ---------------------------------------------------------------------------


class TestJob:
    """Tests for Job dataclass."""

    def test_job_default_values(self) -> None:
        """Test Job default initialization."""
        job = Job()
        assert len(job.id) == 12
        assert job.status == JobStatus.PENDING
        assert job.location is None
        assert job.key is None
        assert job.result is None
        assert job.duration_seconds is None

    def test_job_is_terminal(self) -> None:
        """Only completed, failed and cancelled jobs are terminal."""
        job = Job()
        for status, terminal in [
            (JobStatus.PENDING, False),
            (JobStatus.RUNNING, False),
            (JobStatus.COMPLETED, True),
            (JobStatus.FAILED, True),
            (JobStatus.CANCELLED, True),
        ]:
            job.status = status
            assert job.is_terminal is terminal

    def test_job_to_dict(self) -> None:
        """Test Job.to_dict() method."""
        job = Job(name="splitted/p.pdf", location="splitted", key="p.pdf")
        job.finish(JobStatus.COMPLETED, JobResult(value={"pages": 1}))
        data = job.to_dict()

        assert data["id"] == job.id
        assert data["location"] == "splitted"
        assert data["key"] == "p.pdf"
        assert data["status"] == "completed"
        assert data["value"] == {"pages": 1}


class TestJobResult:
    """Tests for JobResult dataclass."""

    def test_success_result(self) -> None:
        """A returned value is a success."""
        assert JobResult(value=1).success

    def test_failed_result(self) -> None:
        """An error or message marks failure."""
        assert not JobResult(error=ValueError("x")).success
        assert not JobResult(error_message="x").success


# ---------------------------------------------------------------------------
# TestJobQueue - Lifecycle and Submission
# ---------------------------------------------------------------------------


class TestJobQueueLifecycle:
    """Tests for queue start/stop."""

    async def test_start_stop(self) -> None:
        """The queue reports whether it is running."""
        queue = JobQueue(workers=1)
        assert not queue.is_running
        await queue.start()
        assert queue.is_running
        await queue.stop()
        assert not queue.is_running

    async def test_defaults_from_config(self) -> None:
        """The jobs settings section supplies defaults."""
        queue = JobQueue(config=JobsConfig(workers=7, timeout=42))
        assert queue.workers == 7
        assert queue.timeout == 42.0

    async def test_explicit_values_override_config(self) -> None:
        """Constructor arguments win over configuration."""
        queue = JobQueue(workers=2, config=JobsConfig(workers=7))
        assert queue.workers == 2

    async def test_submit_to_stopped_queue_raises(self) -> None:
        """Submitting without a running queue fails and closes the coroutine."""
        queue = JobQueue()

        async def task() -> None:
            pass

        coro = task()
        with pytest.raises(JobError, match="not running"):
            await queue.submit(coro)
        assert coro.cr_frame is None

    async def test_pending_limit(self) -> None:
        """Jobs beyond the pending limit are refused."""
        release = asyncio.Event()

        async def blocker() -> None:
            await release.wait()

        async with JobQueue(workers=1, pending_limit=1) as queue:
            await queue.submit(blocker())
            await queue.submit(blocker())
            with pytest.raises(JobQueueFullError):
                await queue.submit(blocker())
            release.set()


# ---------------------------------------------------------------------------
# TestJobQueue - Execution
# ---------------------------------------------------------------------------


class TestJobExecution:
    """Tests for job execution."""

    async def test_job_completes_successfully(self, queue: JobQueue) -> None:
        """Return values are kept on the job."""

        async def task() -> str:
            return "done"

        job = await queue.submit(task(), location="input", key="a.pdf")
        finished = await queue.wait(job.id, timeout=2.0)

        assert finished.status == JobStatus.COMPLETED
        assert finished.result is not None
        assert finished.result.value == "done"
        assert finished.name == "input/a.pdf"
        assert finished.duration_seconds is not None

    async def test_job_fails_with_exception(self, queue: JobQueue) -> None:
        """Exceptions mark the job failed."""

        async def task() -> None:
            msg = "boom"
            raise RuntimeError(msg)

        job = await queue.submit(task())
        finished = await queue.wait(job.id, timeout=2.0)

        assert finished.status == JobStatus.FAILED
        assert finished.result is not None
        assert finished.result.error_message == "boom"

    async def test_job_times_out(self, queue: JobQueue) -> None:
        """Jobs exceeding their timeout fail with JobTimeoutError."""

        async def slow() -> None:
            await asyncio.sleep(5)

        job = await queue.submit(slow(), timeout=0.05)
        finished = await queue.wait(job.id, timeout=2.0)

        assert finished.status == JobStatus.FAILED
        assert finished.result is not None
        assert isinstance(finished.result.error, JobTimeoutError)

    async def test_on_done_called_for_every_outcome(self, queue: JobQueue) -> None:
        """The completion callback fires for success and failure."""
        seen: list[JobStatus] = []

        async def ok() -> None:
            pass

        async def bad() -> None:
            raise ValueError

        for coro in (ok(), bad()):
            job = await queue.submit(coro, on_done=lambda j: seen.append(j.status))
            await queue.wait(job.id, timeout=2.0)

        assert seen == [JobStatus.COMPLETED, JobStatus.FAILED]

    async def test_respects_worker_limit(self) -> None:
        """Test that worker limit is respected."""
        async with JobQueue(workers=2) as queue:
            running_count = 0
            max_concurrent = 0

            async def tracked_task() -> None:
                nonlocal running_count, max_concurrent
                running_count += 1
                max_concurrent = max(max_concurrent, running_count)
                await asyncio.sleep(0.05)
                running_count -= 1

            jobs = [await queue.submit(tracked_task()) for _ in range(5)]
            for job in jobs:
                await queue.wait(job.id, timeout=2.0)

            assert max_concurrent == 2


# ---------------------------------------------------------------------------
# TestJobQueue - Lookup and Cleanup
# ---------------------------------------------------------------------------


class TestJobLookup:
    """Tests for job lookup and listing."""

    async def test_get_nonexistent_raises(self, queue: JobQueue) -> None:
        """Unknown job ids raise JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            await queue.get("missing")

    async def test_list_jobs_with_filters(self, queue: JobQueue) -> None:
        """Jobs can be filtered by key and status."""

        async def task() -> None:
            pass

        first = await queue.submit(task(), location="splitted", key="a.pdf")
        second = await queue.submit(task(), location="splitted", key="b.pdf")
        await queue.wait(first.id, timeout=2.0)
        await queue.wait(second.id, timeout=2.0)

        by_key = await queue.list_jobs(key="a.pdf")
        assert [job.id for job in by_key] == [first.id]
        completed = await queue.list_jobs(status=JobStatus.COMPLETED)
        assert {job.id for job in completed} == {first.id, second.id}

    async def test_cleanup_completed(self, queue: JobQueue) -> None:
        """Test cleanup of old completed jobs."""

        async def task() -> None:
            pass

        job = await queue.submit(task())
        await queue.wait(job.id)

        removed = await queue.cleanup_completed(max_age_seconds=0)
        assert removed == 1

        with pytest.raises(JobNotFoundError):
            await queue.get(job.id)


# ---------------------------------------------------------------------------
# TestExceptions
# ---------------------------------------------------------------------------


class TestExceptions:
    """Tests for exception classes."""

    def test_job_error_str(self) -> None:
        """Test JobError string representation."""
        err = JobError("Something failed", job_id="abc123")
        assert str(err) == "Something failed (job_id=abc123)"
        assert str(JobError("Something failed")) == "Something failed"

    def test_job_queue_full_error(self) -> None:
        """Test JobQueueFullError."""
        err = JobQueueFullError(1000)
        assert err.pending_limit == 1000
        assert "1000" in str(err)

    def test_job_timeout_error(self) -> None:
        """Test JobTimeoutError."""
        err = JobTimeoutError("abc", 60.0)
        assert err.job_id == "abc"
        assert "60" in str(err)
