"""Pydantic models for jobs, queue configuration and statistics."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from jobengine.domain.enums import BackoffKind, JobStatus, QueueName


def utcnow() -> datetime:
    return datetime.now(UTC)


class BackoffPolicy(BaseModel):
    """How long to wait before retrying a failed attempt.

    Attributes:
        kind: exponential (base * 2^(n-1)) or fixed (base).
        base_delay_ms: Delay before the first retry, in milliseconds.
        jitter: Random spread applied to the computed delay (0.2 = +/-20%).
    """

    kind: BackoffKind = BackoffKind.EXPONENTIAL
    base_delay_ms: int = Field(default=2000, ge=0)
    jitter: float = Field(default=0.0, ge=0.0, lt=1.0)


class RetentionPolicy(BaseModel):
    """How many terminal job records a queue keeps."""

    keep_completed: int = Field(default=100, ge=0)
    keep_failed: int = Field(default=50, ge=0)


class QueueOptions(BaseModel):
    """Configuration of a named queue."""

    concurrency: int = Field(default=1, ge=1, description="Max simultaneously active jobs")
    default_max_attempts: int = Field(default=3, ge=1)
    default_backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)
    retention: RetentionPolicy = Field(default_factory=RetentionPolicy)


class EnqueueOptions(BaseModel):
    """Per-job overrides of the queue defaults.

    Attributes:
        max_attempts: Total attempts (first run included).
        backoff: Retry delay policy.
        delay_ms: Initial delay; the job starts in the delayed state.
    """

    max_attempts: int | None = Field(default=None, ge=1)
    backoff: BackoffPolicy | None = None
    delay_ms: int = Field(default=0, ge=0)


class Job(BaseModel):
    """A unit of deferred work."""

    id: str
    queue_name: QueueName
    job_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.WAITING
    attempts_made: int = 0
    max_attempts: int = 3
    backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)
    created_at: datetime = Field(default_factory=utcnow)
    last_attempt_at: datetime | None = None
    next_attempt_at: datetime | None = None
    heartbeat_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    locked_by: str | None = None
    lock_token: str | None = None
    result: dict[str, Any] | None = None
    last_error: str | None = None


class QueueStats(BaseModel):
    """Per-queue job counts.

    The five status counters are counted from the store. ``pruned`` counts
    terminal records removed by retention or age-based cleanup, so that
    waiting + active + delayed + completed + failed + pruned == total_enqueued.
    """

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    dead_letter: int = 0
    total_enqueued: int = 0
    pruned: int = 0

    def status_counts(self) -> dict[str, int]:
        return {
            JobStatus.WAITING.value: self.waiting,
            JobStatus.ACTIVE.value: self.active,
            JobStatus.COMPLETED.value: self.completed,
            JobStatus.FAILED.value: self.failed,
            JobStatus.DELAYED.value: self.delayed,
        }


class DeadLetterEntry(BaseModel):
    """Snapshot of a terminally failed job kept for operator replay."""

    job: Job
    dead_lettered_at: datetime = Field(default_factory=utcnow)


class EnqueueRequest(BaseModel):
    """HTTP body for enqueuing a job."""

    job_type: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    options: EnqueueOptions | None = None


class EnqueueResponse(BaseModel):
    job_id: str
    queue_name: QueueName
    status: JobStatus
