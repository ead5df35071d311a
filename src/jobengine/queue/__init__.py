"""Queue configuration and retry scheduling."""

from jobengine.queue.backoff import RetryDecision, RetryScheduler, compute_delay
from jobengine.queue.registry import QueueHandle, QueueRegistry, coerce_queue_name

__all__ = [
    "QueueHandle",
    "QueueRegistry",
    "RetryDecision",
    "RetryScheduler",
    "coerce_queue_name",
    "compute_delay",
]
