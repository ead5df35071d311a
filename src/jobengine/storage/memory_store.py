"""In-memory job store.

Single-process substitute for the Redis store, used in tests and for local
development. All transitions run under one ``asyncio.Lock``; idle executors
wait on a per-queue ``asyncio.Condition`` instead of polling.

Limitations:
- Jobs do not survive a process restart
- Not shared across processes
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from jobengine.domain.enums import TERMINAL_STATUSES, JobStatus, QueueName
from jobengine.domain.models import DeadLetterEntry, Job, QueueStats, utcnow
from jobengine.errors import LockLostError
from jobengine.storage.backend import JobStore

logger = logging.getLogger(__name__)


@dataclass
class _QueueState:
    waiting: deque[str] = field(default_factory=deque)
    active: set[str] = field(default_factory=set)
    delayed: set[str] = field(default_factory=set)
    # Insertion order == transition order, so the first keys are the oldest
    completed: OrderedDict[str, None] = field(default_factory=OrderedDict)
    failed: OrderedDict[str, None] = field(default_factory=OrderedDict)
    dead: OrderedDict[str, DeadLetterEntry] = field(default_factory=OrderedDict)
    total_enqueued: int = 0
    pruned: int = 0


class InMemoryJobStore(JobStore):
    """Job store kept in process memory."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._jobs: dict[str, Job] = {}
        self._queues: dict[QueueName, _QueueState] = {}
        self._conditions: dict[QueueName, asyncio.Condition] = {}

    def _state(self, queue_name: QueueName) -> _QueueState:
        state = self._queues.get(queue_name)
        if state is None:
            state = self._queues[queue_name] = _QueueState()
        return state

    def _condition(self, queue_name: QueueName) -> asyncio.Condition:
        cond = self._conditions.get(queue_name)
        if cond is None:
            cond = self._conditions[queue_name] = asyncio.Condition(self._lock)
        return cond

    def _owned(self, job_id: str, lock_token: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.ACTIVE or job.lock_token != lock_token:
            raise LockLostError(
                f"Job {job_id} is no longer owned by this executor",
                details={"job_id": job_id},
            )
        return job

    def _prune(self, state: _QueueState, bucket: OrderedDict[str, None], keep: int) -> None:
        while len(bucket) > keep:
            old_id, _ = bucket.popitem(last=False)
            self._jobs.pop(old_id, None)
            state.pruned += 1

    def _dead_letter(self, state: _QueueState, job: Job, dead_letter_max: int) -> None:
        if dead_letter_max <= 0:
            return
        state.dead[job.id] = DeadLetterEntry(job=job.model_copy(deep=True))
        while len(state.dead) > dead_letter_max:
            state.dead.popitem(last=False)

    async def ping(self) -> bool:
        return True

    async def add(self, job: Job) -> Job:
        cond = self._condition(job.queue_name)
        async with cond:
            stored = job.model_copy(deep=True)
            state = self._state(job.queue_name)
            if stored.next_attempt_at is not None:
                stored.status = JobStatus.DELAYED
                state.delayed.add(stored.id)
            else:
                stored.status = JobStatus.WAITING
                state.waiting.append(stored.id)
                cond.notify()
            self._jobs[stored.id] = stored
            state.total_enqueued += 1
            return stored.model_copy(deep=True)

    async def claim_next(
        self,
        queue_name: QueueName,
        *,
        worker_id: str,
        timeout_seconds: float,
    ) -> Job | None:
        cond = self._condition(queue_name)
        state = self._state(queue_name)
        async with cond:
            if not state.waiting:
                try:
                    await asyncio.wait_for(
                        cond.wait_for(lambda: bool(state.waiting)), timeout_seconds
                    )
                except TimeoutError:
                    return None

            job_id = state.waiting.popleft()
            job = self._jobs[job_id]
            now = utcnow()
            job.status = JobStatus.ACTIVE
            job.locked_by = worker_id
            job.lock_token = uuid.uuid4().hex
            job.heartbeat_at = now
            job.last_attempt_at = now
            state.active.add(job_id)
            return job.model_copy(deep=True)

    async def heartbeat(self, job_id: str, *, lock_token: str) -> bool:
        async with self._lock:
            try:
                job = self._owned(job_id, lock_token)
            except LockLostError:
                return False
            job.heartbeat_at = utcnow()
            return True

    async def complete(
        self,
        job_id: str,
        *,
        lock_token: str,
        result: dict[str, Any] | None,
        keep_completed: int,
    ) -> Job:
        async with self._lock:
            job = self._owned(job_id, lock_token)
            state = self._state(job.queue_name)
            state.active.discard(job_id)
            job.status = JobStatus.COMPLETED
            job.attempts_made += 1
            job.completed_at = utcnow()
            job.result = result
            job.last_error = None
            job.locked_by = None
            job.lock_token = None
            snapshot = job.model_copy(deep=True)
            state.completed[job_id] = None
            self._prune(state, state.completed, keep_completed)
            return snapshot

    async def retry_later(
        self,
        job_id: str,
        *,
        lock_token: str,
        error: str,
        next_attempt_at: datetime,
    ) -> Job:
        async with self._lock:
            job = self._owned(job_id, lock_token)
            state = self._state(job.queue_name)
            state.active.discard(job_id)
            job.status = JobStatus.DELAYED
            job.attempts_made += 1
            job.next_attempt_at = next_attempt_at
            job.last_error = error
            job.locked_by = None
            job.lock_token = None
            state.delayed.add(job_id)
            return job.model_copy(deep=True)

    async def fail(
        self,
        job_id: str,
        *,
        lock_token: str,
        error: str,
        keep_failed: int,
        dead_letter_max: int,
    ) -> Job:
        async with self._lock:
            job = self._owned(job_id, lock_token)
            state = self._state(job.queue_name)
            state.active.discard(job_id)
            job.attempts_made += 1
            self._mark_failed(job, error)
            snapshot = job.model_copy(deep=True)
            self._dead_letter(state, job, dead_letter_max)
            state.failed[job_id] = None
            self._prune(state, state.failed, keep_failed)
            return snapshot

    def _mark_failed(self, job: Job, error: str) -> None:
        job.status = JobStatus.FAILED
        job.failed_at = utcnow()
        job.last_error = error
        job.next_attempt_at = None
        job.locked_by = None
        job.lock_token = None

    async def promote_delayed(self, queue_name: QueueName, *, now: datetime) -> int:
        cond = self._condition(queue_name)
        async with cond:
            state = self._state(queue_name)
            due = [
                self._jobs[job_id]
                for job_id in state.delayed
                if (self._jobs[job_id].next_attempt_at or now) <= now
            ]
            due.sort(key=_sort_key)
            for job in due:
                state.delayed.discard(job.id)
                job.status = JobStatus.WAITING
                job.next_attempt_at = None
                state.waiting.append(job.id)
            if due:
                cond.notify(len(due))
            return len(due)

    async def reclaim_stalled(
        self,
        queue_name: QueueName,
        *,
        stalled_before: datetime,
        keep_failed: int,
        dead_letter_max: int,
    ) -> list[Job]:
        cond = self._condition(queue_name)
        async with cond:
            state = self._state(queue_name)
            recovered: list[Job] = []
            for job_id in list(state.active):
                job = self._jobs[job_id]
                if job.heartbeat_at is not None and job.heartbeat_at >= stalled_before:
                    continue
                state.active.discard(job_id)
                job.attempts_made += 1
                if job.attempts_made >= job.max_attempts:
                    self._mark_failed(job, "Job stalled: executor stopped sending heartbeats")
                    recovered.append(job.model_copy(deep=True))
                    self._dead_letter(state, job, dead_letter_max)
                    state.failed[job_id] = None
                    self._prune(state, state.failed, keep_failed)
                else:
                    job.status = JobStatus.WAITING
                    job.locked_by = None
                    job.lock_token = None
                    state.waiting.append(job_id)
                    cond.notify()
                    recovered.append(job.model_copy(deep=True))
            return recovered

    async def clean(
        self,
        queue_name: QueueName,
        status: JobStatus,
        *,
        older_than: datetime,
        limit: int = 1000,
    ) -> int:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Only terminal jobs can be cleaned, got '{status.value}'")
        async with self._lock:
            state = self._state(queue_name)
            bucket = state.completed if status == JobStatus.COMPLETED else state.failed
            expired = [
                job_id for job_id in bucket if _finished_at(self._jobs[job_id]) < older_than
            ][:limit]
            for job_id in expired:
                del bucket[job_id]
                self._jobs.pop(job_id, None)
            state.pruned += len(expired)
            return len(expired)

    async def get(self, job_id: str) -> Job | None:
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    async def list_jobs(
        self,
        queue_name: QueueName,
        status: JobStatus,
        *,
        limit: int = 100,
    ) -> list[Job]:
        async with self._lock:
            state = self._state(queue_name)
            ids: list[str]
            if status == JobStatus.WAITING:
                ids = list(state.waiting)
            elif status == JobStatus.COMPLETED:
                ids = list(state.completed)
            elif status == JobStatus.FAILED:
                ids = list(state.failed)
            else:
                bucket = state.active if status == JobStatus.ACTIVE else state.delayed
                ids = [j.id for j in sorted((self._jobs[i] for i in bucket), key=_sort_key)]
            return [self._jobs[i].model_copy(deep=True) for i in ids[:limit]]

    async def count(self, queue_name: QueueName) -> QueueStats:
        async with self._lock:
            state = self._state(queue_name)
            return QueueStats(
                waiting=len(state.waiting),
                active=len(state.active),
                completed=len(state.completed),
                failed=len(state.failed),
                delayed=len(state.delayed),
                dead_letter=len(state.dead),
                total_enqueued=state.total_enqueued,
                pruned=state.pruned,
            )

    async def list_dead_letters(
        self,
        queue_name: QueueName,
        *,
        limit: int = 100,
    ) -> list[DeadLetterEntry]:
        async with self._lock:
            entries = list(reversed(self._state(queue_name).dead.values()))
            return [e.model_copy(deep=True) for e in entries[:limit]]

    async def pop_dead_letter(self, queue_name: QueueName, job_id: str) -> DeadLetterEntry | None:
        async with self._lock:
            return self._state(queue_name).dead.pop(job_id, None)


def _sort_key(job: Job) -> datetime:
    return job.next_attempt_at or job.last_attempt_at or job.created_at


def _finished_at(job: Job) -> datetime:
    return job.completed_at or job.failed_at or job.created_at
