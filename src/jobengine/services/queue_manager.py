"""Engine facade.

``QueueManager`` is built once per process (API or worker) and owns:
- the job store
- the queue registry and processor registry
- one ``WorkerPool`` per queue plus the maintenance scheduler

Producers only ever call ``enqueue``; everything after that happens in the
worker pools.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter

from jobengine.domain.enums import DEFAULT_JOB_TYPES, JobStatus
from jobengine.domain.models import (
    DeadLetterEntry,
    EnqueueOptions,
    Job,
    QueueOptions,
    QueueStats,
    utcnow,
)
from jobengine.domain.payloads import parse_payload
from jobengine.errors import JobNotFoundError, ValidationError
from jobengine.processors.registry import ProcessorHandler, ProcessorRegistry, RegisteredProcessor
from jobengine.queue.backoff import RetryScheduler
from jobengine.queue.registry import QueueHandle, QueueRegistry
from jobengine.services.scheduler import MaintenanceScheduler
from jobengine.services.stats import StatsReporter
from jobengine.services.worker_pool import WorkerPool
from jobengine.storage.backend import JobStore

if TYPE_CHECKING:
    from jobengine.config import Settings

logger = logging.getLogger(__name__)

# Payloads are stored exactly as sent; only values like datetimes become JSON strings
_JSON_OBJECT: TypeAdapter[dict[str, Any]] = TypeAdapter(dict[str, Any])


def generate_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:12]}"


class QueueManager:
    """Queues, processors and workers behind one object."""

    def __init__(
        self,
        *,
        store: JobStore,
        settings: Settings,
        queues: QueueRegistry | None = None,
        processors: ProcessorRegistry | None = None,
        retry_scheduler: RetryScheduler | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._queues = queues if queues is not None else QueueRegistry.with_defaults(settings)
        self._processors = processors if processors is not None else ProcessorRegistry()
        self._retry_scheduler = retry_scheduler or RetryScheduler()
        self._stats = StatsReporter(store=store, queues=self._queues)
        self._pools: dict[str, WorkerPool] = {}
        self._scheduler = MaintenanceScheduler(
            store=store,
            queues=self._queues,
            interval_seconds=settings.scheduler_interval_seconds,
            stall_threshold_seconds=settings.stall_threshold_seconds,
            dead_letter_max=settings.dead_letter_max,
            clean_interval_seconds=settings.clean_interval_seconds,
            completed_max_age_seconds=settings.completed_max_age_seconds,
            failed_max_age_seconds=settings.failed_max_age_seconds,
        )
        self._connected = False

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def queues(self) -> QueueRegistry:
        return self._queues

    @property
    def processors(self) -> ProcessorRegistry:
        return self._processors

    @property
    def pools(self) -> dict[str, WorkerPool]:
        return dict(self._pools)

    @property
    def is_running(self) -> bool:
        return bool(self._pools) or self._scheduler.is_running

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def define_queue(
        self,
        name: Any,
        options: QueueOptions | dict[str, Any] | None = None,
    ) -> QueueHandle:
        """Define a queue or update its options. Idempotent per name."""
        return self._queues.define_queue(name, options)

    def register_processor(
        self,
        queue_name: Any,
        handler: ProcessorHandler,
        *,
        job_types: list[str] | None = None,
    ) -> RegisteredProcessor:
        """Register the processor for a defined queue."""
        handle = self._queues.get(queue_name)
        return self._processors.register_processor(handle.name, handler, job_types=job_types)

    # ------------------------------------------------------------------
    # Producer API
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        queue_name: Any,
        job_type: str | None = None,
        payload: dict[str, Any] | None = None,
        options: EnqueueOptions | None = None,
    ) -> str:
        """Validate a payload and persist it as a new job.

        Args:
            queue_name: Target queue.
            job_type: Job type; defaults to the queue's canonical type.
            payload: Raw payload, validated against the queue's payload model.
            options: Per-job overrides of the queue defaults.

        Returns:
            The new job ID.

        Raises:
            QueueNotFoundError: Unknown or undefined queue.
            ValidationError: Payload or job type rejected.
            StoreUnavailableError: The store could not persist the job.
        """
        handle = self._queues.get(queue_name)
        queue = handle.name
        job_type = job_type or DEFAULT_JOB_TYPES[queue]

        processor = self._processors.get(queue)
        if processor is not None and job_type not in processor.job_types:
            raise ValidationError(
                f"Unsupported job type '{job_type}' for queue '{queue.value}'",
                details={"supported": sorted(processor.job_types)},
            )

        payload = payload or {}
        parse_payload(queue, payload)
        options = options or EnqueueOptions()

        now = utcnow()
        delayed = options.delay_ms > 0
        job = Job(
            id=generate_job_id(),
            queue_name=queue,
            job_type=job_type,
            payload=_JSON_OBJECT.dump_python(payload, mode="json"),
            status=JobStatus.DELAYED if delayed else JobStatus.WAITING,
            max_attempts=options.max_attempts or handle.options.default_max_attempts,
            backoff=options.backoff or handle.options.default_backoff,
            created_at=now,
            next_attempt_at=now + timedelta(milliseconds=options.delay_ms) if delayed else None,
        )
        await self._store.add(job)
        logger.debug(
            "Enqueued %s on %s (type=%s, delay_ms=%d)",
            job.id,
            queue.value,
            job_type,
            options.delay_ms,
        )
        return job.id

    async def get_job(self, job_id: str) -> Job | None:
        return await self._store.get(job_id)

    async def list_jobs(
        self, queue_name: Any, status: JobStatus, *, limit: int = 100
    ) -> list[Job]:
        """List jobs of a queue in one status, oldest first."""
        handle = self._queues.get(queue_name)
        return await self._store.list_jobs(handle.name, status, limit=limit)

    async def clean_old_jobs(
        self,
        *,
        completed_max_age: timedelta | None = None,
        failed_max_age: timedelta | None = None,
    ) -> dict[str, dict[str, int]]:
        """Remove completed and failed jobs past their maximum age on every queue.

        Ages default to ``completed_max_age_seconds`` (24h) and
        ``failed_max_age_seconds`` (7 days). Removed jobs count as pruned.
        """
        return await self._scheduler.clean_expired(
            completed_max_age=completed_max_age,
            failed_max_age=failed_max_age,
        )

    # ------------------------------------------------------------------
    # Stats and dead letters
    # ------------------------------------------------------------------

    async def get_queue_stats(self, queue_name: Any) -> QueueStats:
        return await self._stats.get_queue_stats(queue_name)

    async def get_all_stats(self) -> dict[str, QueueStats]:
        return await self._stats.get_all_stats()

    async def health(self) -> dict[str, Any]:
        report = await self._stats.health()
        report["workers"] = {name: pool.is_running for name, pool in self._pools.items()}
        return report

    async def list_dead_letters(
        self, queue_name: Any, *, limit: int = 100
    ) -> list[DeadLetterEntry]:
        handle = self._queues.get(queue_name)
        return await self._store.list_dead_letters(handle.name, limit=limit)

    async def replay_dead_letter(self, queue_name: Any, job_id: str) -> str:
        """Re-enqueue a dead-lettered job as a fresh job.

        Returns:
            The ID of the new job.

        Raises:
            JobNotFoundError: No dead-letter entry with that job ID.
        """
        queue = self._queues.get(queue_name).name
        entry = await self._store.pop_dead_letter(queue, job_id)
        if entry is None:
            raise JobNotFoundError(f"Dead-letter entry not found: {job_id}")

        original = entry.job
        try:
            new_id = await self.enqueue(
                queue,
                original.job_type,
                original.payload,
                EnqueueOptions(max_attempts=original.max_attempts, backoff=original.backoff),
            )
        except Exception:
            logger.error(
                "Replay of %s failed after its dead-letter entry was removed (payload=%s)",
                job_id,
                original.payload,
            )
            raise
        logger.info("Replayed dead-letter %s on %s as %s", job_id, queue.value, new_id)
        return new_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        if not self._connected:
            await self._store.connect()
            self._connected = True

    async def start(self, *, workers: bool = True) -> None:
        """Connect the store and, optionally, start the pools and scheduler.

        Raises:
            ValueError: If a defined queue has no processor registered.
        """
        await self.connect()
        if not workers or self.is_running:
            return

        missing = self._processors.missing(self._queues.names())
        if missing:
            raise ValueError(
                "No processor registered for queue(s): " + ", ".join(q.value for q in missing)
            )

        for handle in self._queues:
            processor = self._processors.get(handle.name)
            assert processor is not None
            pool = WorkerPool(
                store=self._store,
                queue=handle,
                processor=processor,
                retry_scheduler=self._retry_scheduler,
                claim_timeout_seconds=self._settings.claim_timeout_seconds,
                heartbeat_interval_seconds=self._settings.heartbeat_interval_seconds,
                dead_letter_max=self._settings.dead_letter_max,
                worker_id_prefix=self._settings.worker_id_prefix,
            )
            pool.start()
            self._pools[handle.name.value] = pool

        self._scheduler.start()
        logger.info("QueueManager started %d worker pool(s)", len(self._pools))

    async def stop(self, *, grace_seconds: float = 10.0) -> None:
        """Stop the scheduler and every pool."""
        await self._scheduler.stop()
        for pool in self._pools.values():
            await pool.stop(grace_seconds=grace_seconds)
        self._pools.clear()

    async def close(self) -> None:
        """Stop workers and release the store."""
        await self.stop()
        if self._connected:
            await self._store.close()
            self._connected = False
