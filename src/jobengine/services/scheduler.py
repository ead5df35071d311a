"""Delayed-job promoter, stall sweeper and age-based cleanup.

A single background loop, ticking every ``interval_seconds``, that for each
registered queue:
- moves DELAYED jobs whose ``next_attempt_at`` has passed back to WAITING
- recovers ACTIVE jobs whose heartbeat is older than the stall threshold
- every ``clean_interval_seconds``, removes completed and failed jobs that
  finished longer ago than their maximum age
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from jobengine.domain.enums import JobStatus
from jobengine.domain.models import Job, utcnow
from jobengine.observability.metrics import JOB_STALLED
from jobengine.queue.registry import QueueRegistry
from jobengine.storage.backend import JobStore

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    """Periodic promotion of delayed jobs, recovery of stalled ones and cleanup."""

    def __init__(
        self,
        *,
        store: JobStore,
        queues: QueueRegistry,
        interval_seconds: float = 1.0,
        stall_threshold_seconds: float = 30.0,
        dead_letter_max: int = 1000,
        clean_interval_seconds: float = 3600.0,
        completed_max_age_seconds: float = 24 * 3600.0,
        failed_max_age_seconds: float = 7 * 24 * 3600.0,
    ) -> None:
        self._store = store
        self._queues = queues
        self._interval_seconds = interval_seconds
        self._stall_threshold = timedelta(seconds=stall_threshold_seconds)
        self._dead_letter_max = dead_letter_max
        self._clean_interval = timedelta(seconds=clean_interval_seconds)
        self._completed_max_age = timedelta(seconds=completed_max_age_seconds)
        self._failed_max_age = timedelta(seconds=failed_max_age_seconds)
        self._last_clean: datetime | None = None
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="jobengine-scheduler")
        logger.info(
            "Scheduler started (interval=%.1fs, stall_threshold=%.1fs)",
            self._interval_seconds,
            self._stall_threshold.total_seconds(),
        )

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Scheduler stopped")

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Scheduler tick failed: %s", e)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_seconds)
            except TimeoutError:
                continue

    async def tick(self, now: datetime | None = None) -> None:
        """Run one promotion and sweep pass over every queue, cleaning when due."""
        now = now or utcnow()
        await self.promote_due(now)
        await self.sweep_stalled(now)
        if self._clean_due(now):
            await self.clean_expired(now)
            self._last_clean = now

    def _clean_due(self, now: datetime) -> bool:
        # A zero interval disables periodic cleanup
        if self._clean_interval <= timedelta(0):
            return False
        return self._last_clean is None or now - self._last_clean >= self._clean_interval

    async def promote_due(self, now: datetime | None = None) -> int:
        """Move due delayed jobs to waiting. Returns the number promoted."""
        now = now or utcnow()
        promoted = 0
        for handle in self._queues:
            count = await self._store.promote_delayed(handle.name, now=now)
            if count:
                logger.debug("Promoted %d delayed job(s) on %s", count, handle.name.value)
            promoted += count
        return promoted

    async def sweep_stalled(self, now: datetime | None = None) -> list[Job]:
        """Recover active jobs whose executor stopped heartbeating."""
        now = now or utcnow()
        stalled_before = now - self._stall_threshold
        recovered: list[Job] = []
        for handle in self._queues:
            jobs = await self._store.reclaim_stalled(
                handle.name,
                stalled_before=stalled_before,
                keep_failed=handle.options.retention.keep_failed,
                dead_letter_max=self._dead_letter_max,
            )
            for job in jobs:
                JOB_STALLED.labels(queue=handle.name.value).inc()
                logger.warning(
                    "Stalled job recovered: %s (job_id=%s, attempts=%d/%d, status=%s)",
                    handle.name.value,
                    job.id,
                    job.attempts_made,
                    job.max_attempts,
                    job.status.value,
                )
            recovered.extend(jobs)
        return recovered

    async def clean_expired(
        self,
        now: datetime | None = None,
        *,
        completed_max_age: timedelta | None = None,
        failed_max_age: timedelta | None = None,
    ) -> dict[str, dict[str, int]]:
        """Remove terminal jobs older than their maximum age from every queue.

        Args:
            now: Reference time (default: current time).
            completed_max_age: Override of the completed-job age limit.
            failed_max_age: Override of the failed-job age limit.

        Returns:
            Removed job counts per queue and status.
        """
        now = now or utcnow()
        if completed_max_age is None:
            completed_max_age = self._completed_max_age
        if failed_max_age is None:
            failed_max_age = self._failed_max_age
        cutoffs = {
            JobStatus.COMPLETED: now - completed_max_age,
            JobStatus.FAILED: now - failed_max_age,
        }
        removed: dict[str, dict[str, int]] = {}
        for handle in self._queues:
            counts = {
                status.value: await self._store.clean(handle.name, status, older_than=cutoff)
                for status, cutoff in cutoffs.items()
            }
            if any(counts.values()):
                logger.info(
                    "Cleaned old jobs on %s (completed=%d, failed=%d)",
                    handle.name.value,
                    counts[JobStatus.COMPLETED.value],
                    counts[JobStatus.FAILED.value],
                )
            removed[handle.name.value] = counts
        return removed
