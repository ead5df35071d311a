"""Analytics aggregation processor."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any

from jobengine.domain.models import Job
from jobengine.domain.payloads import AnalyticsPayload

logger = logging.getLogger(__name__)


class MetricsSink(ABC):
    """Destination for accumulated usage metrics."""

    @abstractmethod
    async def accumulate(self, workspace_id: str, metric: str, count: int) -> None:
        pass


class InMemoryMetricsSink(MetricsSink):
    """Keeps running totals per workspace and metric type."""

    def __init__(self) -> None:
        self.totals: dict[tuple[str, str], int] = defaultdict(int)

    async def accumulate(self, workspace_id: str, metric: str, count: int) -> None:
        self.totals[(workspace_id, metric)] += count


class AnalyticsProcessor:
    def __init__(self, sink: MetricsSink | None = None) -> None:
        self.sink = sink or InMemoryMetricsSink()

    async def __call__(self, payload: AnalyticsPayload, job: Job) -> dict[str, Any]:
        logger.info(
            "Processing analytics job %s (workspace=%s, type=%s)",
            job.id,
            payload.workspace_id,
            payload.type,
        )
        await self.sink.accumulate(payload.workspace_id, payload.type, len(payload.data))
        return {"success": True, "processed": len(payload.data)}
