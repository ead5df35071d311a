"""Queue statistics and health reporting."""

from __future__ import annotations

import logging
from typing import Any

from jobengine.domain.models import QueueStats
from jobengine.observability.metrics import QUEUE_SIZE
from jobengine.queue.registry import QueueRegistry
from jobengine.storage.backend import JobStore

logger = logging.getLogger(__name__)


class StatsReporter:
    """Counts jobs per queue and state, and mirrors the counts into gauges."""

    def __init__(self, *, store: JobStore, queues: QueueRegistry) -> None:
        self._store = store
        self._queues = queues

    async def get_queue_stats(self, queue_name: Any) -> QueueStats:
        """Get the counters of one queue.

        Raises:
            QueueNotFoundError: If the queue has not been defined.
            StoreUnavailableError: If the store cannot be reached.
        """
        handle = self._queues.get(queue_name)
        stats = await self._store.count(handle.name)
        for status, value in stats.status_counts().items():
            QUEUE_SIZE.labels(queue=handle.name.value, status=status).set(value)
        QUEUE_SIZE.labels(queue=handle.name.value, status="dead_letter").set(stats.dead_letter)
        return stats

    async def get_all_stats(self) -> dict[str, QueueStats]:
        """Get the counters of every defined queue, keyed by queue name."""
        return {
            handle.name.value: await self.get_queue_stats(handle.name) for handle in self._queues
        }

    async def health(self) -> dict[str, Any]:
        """Report store reachability.

        Returns:
            ``{"status": "healthy" | "unhealthy", "store": bool}``
        """
        try:
            reachable = await self._store.ping()
        except Exception as e:
            logger.warning("Store ping failed: %s", e)
            reachable = False
        return {"status": "healthy" if reachable else "unhealthy", "store": reachable}
