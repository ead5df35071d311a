"""Per-queue worker pool.

Runs ``concurrency`` executor tasks for one queue. Each executor blocks on
the store's claim operation, runs the queue's processor, and records the
outcome through the store's atomic transitions.

Design goals:
- Never more than ``concurrency`` active jobs per pool
- A processor's own I/O never blocks the other executors
- Heartbeats while a job runs, so crashed executors are detected by the sweeper
- Executors survive store errors (log, back off, try again)
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any

import structlog

from jobengine.domain.models import Job, utcnow
from jobengine.errors import LockLostError
from jobengine.observability.metrics import JOB_DURATION, JOB_TOTAL, QUEUE_LATENCY
from jobengine.processors.registry import RegisteredProcessor
from jobengine.queue.backoff import RetryScheduler
from jobengine.queue.registry import QueueHandle
from jobengine.storage.backend import JobStore

logger = logging.getLogger(__name__)


class WorkerPool:
    """Executor tasks for a single queue."""

    def __init__(
        self,
        *,
        store: JobStore,
        queue: QueueHandle,
        processor: RegisteredProcessor,
        retry_scheduler: RetryScheduler | None = None,
        claim_timeout_seconds: float = 1.0,
        heartbeat_interval_seconds: float = 5.0,
        dead_letter_max: int = 1000,
        worker_id_prefix: str = "worker",
    ) -> None:
        self._store = store
        self._queue = queue
        self._processor = processor
        self._retry_scheduler = retry_scheduler or RetryScheduler()
        self._claim_timeout_seconds = claim_timeout_seconds
        self._heartbeat_interval_seconds = heartbeat_interval_seconds
        self._dead_letter_max = dead_letter_max
        self._worker_id = f"{worker_id_prefix}-{queue.name.value}-{uuid.uuid4().hex[:8]}"

        self._stop_event = asyncio.Event()
        self._executors: list[asyncio.Task[None]] = []
        self._in_flight: dict[str, Job] = {}

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def queue_name(self) -> str:
        return self._queue.name.value

    @property
    def concurrency(self) -> int:
        return self._queue.options.concurrency

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._executors)

    @property
    def in_flight(self) -> int:
        """Number of jobs this pool is processing right now."""
        return len(self._in_flight)

    def start(self) -> None:
        """Start the executor tasks."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._executors = [
            asyncio.create_task(self._executor_loop(index), name=f"{self._worker_id}-{index}")
            for index in range(self.concurrency)
        ]
        logger.info(
            "WorkerPool started (%s, queue=%s, concurrency=%d)",
            self._worker_id,
            self.queue_name,
            self.concurrency,
        )

    async def stop(self, *, grace_seconds: float = 10.0) -> None:
        """Stop claiming, let in-flight jobs finish, then cancel stragglers.

        Jobs still running after the grace period stay ACTIVE in the store and
        are recovered by the stall sweeper.
        """
        self._stop_event.set()
        if not self._executors:
            return

        _, pending = await asyncio.wait(self._executors, timeout=grace_seconds)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(
                "WorkerPool %s cancelled %d executor(s) with jobs in flight: %s",
                self._worker_id,
                len(pending),
                sorted(self._in_flight),
            )
            await asyncio.gather(*pending, return_exceptions=True)

        self._executors = []
        logger.info("WorkerPool stopped (%s)", self._worker_id)

    async def _executor_loop(self, index: int) -> None:
        """Claim and execute jobs until stopped."""
        executor_id = f"{self._worker_id}:{index}"
        while not self._stop_event.is_set():
            try:
                job = await self._store.claim_next(
                    self._queue.name,
                    worker_id=executor_id,
                    timeout_seconds=self._claim_timeout_seconds,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Executor %s failed to claim a job: %s", executor_id, e)
                await asyncio.sleep(self._claim_timeout_seconds)
                continue

            if job is None:
                continue

            await self.execute(job)

    async def execute(self, job: Job) -> Job | None:
        """Run the processor for a claimed job and record the outcome.

        Returns:
            The job in its new state, or None if the outcome could not be recorded.
        """
        queue = self.queue_name
        if job.attempts_made == 0:
            QUEUE_LATENCY.labels(queue=queue).observe(
                max((utcnow() - job.created_at).total_seconds(), 0.0)
            )

        self._in_flight[job.id] = job
        with structlog.contextvars.bound_contextvars(
            queue=queue, job_id=job.id, job_type=job.job_type
        ):
            heartbeat = asyncio.create_task(self._heartbeat_loop(job))
            start_time = time.monotonic()
            try:
                try:
                    result = await self._processor(job)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    return await self._handle_failure(job, e, start_time)
                return await self._handle_success(job, result, start_time)
            finally:
                heartbeat.cancel()
                self._in_flight.pop(job.id, None)

    async def _handle_success(
        self,
        job: Job,
        result: dict[str, Any] | None,
        start_time: float,
    ) -> Job | None:
        duration = time.monotonic() - start_time
        try:
            updated = await self._store.complete(
                job.id,
                lock_token=job.lock_token or "",
                result=result,
                keep_completed=self._queue.options.retention.keep_completed,
            )
        except LockLostError:
            self._record(job, "lock_lost", duration)
            logger.warning("Job %s completed after its claim was lost; result discarded", job.id)
            return None
        except Exception as e:
            logger.exception("Failed to record completion of job %s: %s", job.id, e)
            return None

        self._record(job, "completed", duration)
        logger.info(
            "Job completed: %s (job_id=%s, job_type=%s, attempt=%d, duration=%.3fs)",
            queue_label(job),
            job.id,
            job.job_type,
            updated.attempts_made,
            duration,
        )
        return updated

    async def _handle_failure(self, job: Job, error: Exception, start_time: float) -> Job | None:
        duration = time.monotonic() - start_time
        message = f"{type(error).__name__}: {error}"
        decision = self._retry_scheduler.decide(job, error)

        try:
            if decision.retry:
                updated = await self._store.retry_later(
                    job.id,
                    lock_token=job.lock_token or "",
                    error=message,
                    next_attempt_at=decision.next_attempt_at(utcnow()),
                )
            else:
                updated = await self._store.fail(
                    job.id,
                    lock_token=job.lock_token or "",
                    error=message,
                    keep_failed=self._queue.options.retention.keep_failed,
                    dead_letter_max=self._dead_letter_max,
                )
        except LockLostError:
            self._record(job, "lock_lost", duration)
            logger.warning("Job %s failed after its claim was lost: %s", job.id, message)
            return None
        except Exception as e:
            logger.exception("Failed to record failure of job %s: %s", job.id, e)
            return None

        if decision.retry:
            self._record(job, "retried", duration)
            logger.warning(
                "Job attempt failed: %s (job_id=%s, attempt=%d/%d, retry_in=%dms): %s",
                queue_label(job),
                job.id,
                updated.attempts_made,
                updated.max_attempts,
                decision.delay_ms,
                message,
            )
        else:
            self._record(job, "failed", duration)
            logger.error(
                "Job failed: %s (job_id=%s, job_type=%s, attempts=%d/%d, reason=%s): %s",
                queue_label(job),
                job.id,
                job.job_type,
                updated.attempts_made,
                updated.max_attempts,
                decision.reason,
                message,
                exc_info=error,
            )
        return updated

    async def _heartbeat_loop(self, job: Job) -> None:
        """Refresh the job's heartbeat until cancelled."""
        while True:
            await asyncio.sleep(self._heartbeat_interval_seconds)
            try:
                owned = await self._store.heartbeat(job.id, lock_token=job.lock_token or "")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Heartbeat for job %s failed: %s", job.id, e)
                continue
            if not owned:
                logger.warning("Job %s lost its claim while running", job.id)
                return

    def _record(self, job: Job, outcome: str, duration: float) -> None:
        JOB_DURATION.labels(queue=self.queue_name, outcome=outcome).observe(duration)
        JOB_TOTAL.labels(queue=self.queue_name, outcome=outcome).inc()


def queue_label(job: Job) -> str:
    return job.queue_name.value
