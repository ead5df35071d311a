"""Enums for job engine domain models."""

from enum import Enum


class QueueName(str, Enum):
    """Named queues known to the engine."""

    EMAIL = "email"
    WEBHOOK = "webhook"
    ANALYTICS = "analytics"
    BROADCAST = "broadcast"
    AI = "ai"
    CLEANUP = "cleanup"


class JobStatus(str, Enum):
    """Job lifecycle status.

    waiting -> active -> completed | delayed | failed
    delayed -> waiting (once next_attempt_at has passed)
    """

    WAITING = "waiting"  # Ready to be claimed
    ACTIVE = "active"  # Claimed by exactly one executor
    DELAYED = "delayed"  # Waiting out a retry backoff
    COMPLETED = "completed"  # Terminal: processor succeeded
    FAILED = "failed"  # Terminal: attempts exhausted or permanent error


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class BackoffKind(str, Enum):
    """Retry delay policy."""

    EXPONENTIAL = "exponential"
    FIXED = "fixed"


# Canonical job type per queue
DEFAULT_JOB_TYPES: dict[QueueName, str] = {
    QueueName.EMAIL: "send_email",
    QueueName.WEBHOOK: "trigger_webhook",
    QueueName.ANALYTICS: "process_analytics",
    QueueName.BROADCAST: "send_broadcast",
    QueueName.AI: "process_ai",
    QueueName.CLEANUP: "cleanup_data",
}
