"""Models for concurrent stage invocations."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


__all__ = [
    "Job",
    "JobResult",
    "JobStatus",
]


class JobStatus(StrEnum):
    """Status of a queued stage invocation.

    Attributes:
        PENDING: Waiting for a free worker.
        RUNNING: Currently executing.
        COMPLETED: Handler returned (whatever the stage outcome).
        FAILED: Handler raised or timed out.
        CANCELLED: Stopped before completion.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


@dataclass
class JobResult:
    """Return value or failure of a finished job."""

    value: Any = None
    error: BaseException | None = None
    error_message: str | None = None

    @property
    def success(self) -> bool:
        """Return True if the job's coroutine returned normally."""
        return self.error is None and self.error_message is None


@dataclass
class Job:
    """One queued invocation of a stage handler.

    Attributes:
        id: 12-character hex identifier.
        name: Human-readable description.
        location: Trigger location the invocation is for.
        key: Object key the invocation is for.
        status: Current status.
        created_at: Submission time.
        started_at: When a worker picked the job up.
        completed_at: When the job reached a terminal status.
        result: Set once the job is terminal.
    """

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    name: str = ""
    location: str | None = None
    key: str | None = None
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: JobResult | None = None

    @property
    def is_terminal(self) -> bool:
        """Return True once the job can no longer change status."""
        return self.status in _TERMINAL

    @property
    def duration_seconds(self) -> float | None:
        """Run time in seconds, or None if the job has not finished."""
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def finish(self, status: JobStatus, result: JobResult) -> None:
        """Move the job to a terminal status."""
        self.status = status
        self.result = result
        self.completed_at = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        """Convert the job to a dictionary for logs and CLI output."""
        value = self.result.value if self.result else None
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "key": self.key,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "error_message": self.result.error_message if self.result else None,
            "value": value.to_dict() if hasattr(value, "to_dict") else value,
        }
