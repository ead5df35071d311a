"""Tests for delayed-job promotion and stall recovery."""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import make_job
from prometheus_client import REGISTRY

from jobengine.domain.enums import JobStatus, QueueName
from jobengine.domain.models import utcnow
from jobengine.queue.registry import QueueRegistry
from jobengine.services.scheduler import MaintenanceScheduler
from jobengine.storage.memory_store import InMemoryJobStore


def _stalled_count() -> float:
    value = REGISTRY.get_sample_value("jobengine_jobs_stalled_total", {"queue": "email"})
    return value or 0.0


def _scheduler(store: InMemoryJobStore, queues: QueueRegistry) -> MaintenanceScheduler:
    return MaintenanceScheduler(
        store=store, queues=queues, interval_seconds=0.01, stall_threshold_seconds=30.0
    )


@pytest.mark.asyncio
async def test_promotes_only_due_jobs(store: InMemoryJobStore, queues: QueueRegistry) -> None:
    now = utcnow()
    due = await store.add(make_job(next_attempt_at=now - timedelta(seconds=1)))
    later = await store.add(make_job(next_attempt_at=now + timedelta(minutes=10)))

    assert await _scheduler(store, queues).promote_due(now) == 1

    assert (await store.get(due.id)).status == JobStatus.WAITING  # type: ignore[union-attr]
    assert (await store.get(later.id)).status == JobStatus.DELAYED  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_stalled_job_is_requeued_exactly_once_then_failed(
    store: InMemoryJobStore, queues: QueueRegistry
) -> None:
    scheduler = _scheduler(store, queues)
    job = await store.add(make_job(max_attempts=2))
    before = _stalled_count()

    # Executor claims the job and dies without heartbeating
    await store.claim_next(QueueName.EMAIL, worker_id="crashed", timeout_seconds=0.1)

    assert await scheduler.sweep_stalled(utcnow() + timedelta(seconds=10)) == []

    recovered = await scheduler.sweep_stalled(utcnow() + timedelta(seconds=31))
    assert [(j.id, j.status) for j in recovered] == [(job.id, JobStatus.WAITING)]
    assert await scheduler.sweep_stalled(utcnow() + timedelta(seconds=31)) == []

    await store.claim_next(QueueName.EMAIL, worker_id="crashed-again", timeout_seconds=0.1)
    recovered = await scheduler.sweep_stalled(utcnow() + timedelta(seconds=62))
    assert [j.status for j in recovered] == [JobStatus.FAILED]

    final = await store.get(job.id)
    assert final is not None
    assert final.status == JobStatus.FAILED
    assert final.attempts_made == 2
    assert _stalled_count() - before == 2
    assert len(await store.list_dead_letters(QueueName.EMAIL)) == 1


@pytest.mark.asyncio
async def test_background_loop_promotes(store: InMemoryJobStore, queues: QueueRegistry) -> None:
    scheduler = _scheduler(store, queues)
    job = await store.add(make_job(next_attempt_at=utcnow()))

    scheduler.start()
    try:
        claimed = await store.claim_next(QueueName.EMAIL, worker_id="w", timeout_seconds=1.0)
    finally:
        await scheduler.stop()

    assert claimed is not None and claimed.id == job.id
    assert scheduler.is_running is False


async def _complete_one(store: InMemoryJobStore) -> str:
    job = await store.add(make_job())
    claimed = await store.claim_next(QueueName.EMAIL, worker_id="w", timeout_seconds=0.1)
    assert claimed is not None
    await store.complete(
        job.id, lock_token=claimed.lock_token or "", result=None, keep_completed=10
    )
    return job.id


@pytest.mark.asyncio
async def test_tick_cleans_jobs_past_their_max_age(
    store: InMemoryJobStore, queues: QueueRegistry
) -> None:
    scheduler = _scheduler(store, queues)
    job_id = await _complete_one(store)

    await scheduler.tick(utcnow() + timedelta(hours=1))
    assert await store.get(job_id) is not None

    # Cleanup already ran in the previous tick; the next one waits for the interval
    await scheduler.tick(utcnow() + timedelta(hours=1, minutes=1))
    assert await store.get(job_id) is not None

    await scheduler.tick(utcnow() + timedelta(hours=25))
    assert await store.get(job_id) is None
    assert (await store.count(QueueName.EMAIL)).pruned == 1


@pytest.mark.asyncio
async def test_clean_expired_reports_counts_and_honors_overrides(
    store: InMemoryJobStore, queues: QueueRegistry
) -> None:
    scheduler = MaintenanceScheduler(store=store, queues=queues, clean_interval_seconds=0)
    await _complete_one(store)

    # A zero interval disables cleanup in the periodic tick
    await scheduler.tick(utcnow() + timedelta(days=30))
    assert (await store.count(QueueName.EMAIL)).completed == 1

    removed = await scheduler.clean_expired(
        utcnow() + timedelta(seconds=5), completed_max_age=timedelta(0)
    )
    assert removed == {"email": {"completed": 1, "failed": 0}}
