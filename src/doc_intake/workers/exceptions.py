"""Exceptions for stage dispatch and the job queue."""

from __future__ import annotations


__all__ = [
    "JobError",
    "JobNotFoundError",
    "JobQueueFullError",
    "JobTimeoutError",
    "UnknownTriggerLocationError",
]


class JobError(Exception):
    """Base exception for job queue errors.

    Attributes:
        message: Human-readable error description.
        job_id: Job the error concerns, if any.
    """

    def __init__(self, message: str, *, job_id: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            job_id: Job the error concerns.
        """
        super().__init__(message)
        self.message = message
        self.job_id = job_id

    def __str__(self) -> str:
        """Return string representation with job ID if available."""
        if self.job_id is None:
            return self.message
        return f"{self.message} (job_id={self.job_id})"


class JobNotFoundError(JobError):
    """Raised when looking up an unknown job."""

    def __init__(self, job_id: str) -> None:
        """Initialize the exception."""
        super().__init__(f"Job not found: {job_id}", job_id=job_id)


class JobQueueFullError(JobError):
    """Raised when the pending limit is reached.

    Attributes:
        pending_limit: The limit that was reached.
    """

    def __init__(self, pending_limit: int) -> None:
        """Initialize the exception."""
        super().__init__(f"Job queue full: pending_limit={pending_limit}")
        self.pending_limit = pending_limit


class JobTimeoutError(JobError):
    """Recorded on a job that exceeded its time limit.

    Attributes:
        timeout: The limit in seconds.
    """

    def __init__(self, job_id: str, timeout: float) -> None:  # noqa: ASYNC109
        """Initialize the exception."""
        super().__init__(f"Job timed out after {timeout}s", job_id=job_id)
        self.timeout = timeout


class UnknownTriggerLocationError(LookupError):
    """Raised when no stage handler is registered for a location.

    Attributes:
        location: The location that matched no pattern.
    """

    def __init__(self, location: str) -> None:
        """Initialize the exception."""
        super().__init__(f"No stage handler registered for location: {location}")
        self.location = location
