"""Tenant data retention cleanup processor."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from jobengine.domain.models import Job
from jobengine.domain.payloads import CleanupPayload

logger = logging.getLogger(__name__)


class RetentionTarget(ABC):
    """Storage that can delete tenant data older than a cutoff."""

    @abstractmethod
    async def delete_older_than(self, workspace_id: str, data_type: str, cutoff: datetime) -> int:
        """Delete matching records.

        Returns:
            Number of records deleted.
        """
        pass


class NullRetentionTarget(RetentionTarget):
    """Deletes nothing. Used until a real storage target is wired in."""

    async def delete_older_than(self, workspace_id: str, data_type: str, cutoff: datetime) -> int:
        return 0


class CleanupProcessor:
    def __init__(self, target: RetentionTarget | None = None) -> None:
        self.target = target or NullRetentionTarget()

    async def __call__(self, payload: CleanupPayload, job: Job) -> dict[str, Any]:
        logger.info(
            "Processing cleanup job %s (workspace=%s, data_type=%s, older_than=%s)",
            job.id,
            payload.workspace_id,
            payload.data_type,
            payload.older_than.isoformat(),
        )
        deleted = await self.target.delete_older_than(
            payload.workspace_id, payload.data_type, payload.older_than
        )
        return {"success": True, "deleted": deleted}
