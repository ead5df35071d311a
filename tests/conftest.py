"""Pytest configuration and fixtures for jobengine tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio

from jobengine.config import Settings
from jobengine.domain.enums import DEFAULT_JOB_TYPES, QueueName
from jobengine.domain.models import BackoffPolicy, Job, QueueOptions, RetentionPolicy
from jobengine.queue.registry import QueueRegistry
from jobengine.services.queue_manager import QueueManager, generate_job_id
from jobengine.storage.memory_store import InMemoryJobStore

EMAIL_PAYLOAD: dict[str, Any] = {"to": "user@example.com", "subject": "Welcome"}
WEBHOOK_PAYLOAD: dict[str, Any] = {
    "url": "https://hooks.example.com/events",
    "event": "order.created",
    "data": {"order_id": "o-1"},
}


@pytest.fixture
def test_settings() -> Settings:
    """Settings with short timings so worker tests finish quickly."""
    return Settings(
        store_url="memory://",
        worker_enabled=False,
        claim_timeout_seconds=0.05,
        heartbeat_interval_seconds=0.05,
        scheduler_interval_seconds=0.02,
        stall_threshold_seconds=30.0,
        default_backoff_ms=0,
        backoff_jitter=0.0,
    )


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def queues() -> QueueRegistry:
    """A registry with an email queue that retries immediately."""
    registry = QueueRegistry()
    registry.define_queue(
        QueueName.EMAIL,
        QueueOptions(
            concurrency=2,
            default_max_attempts=3,
            default_backoff=BackoffPolicy(base_delay_ms=0),
            retention=RetentionPolicy(keep_completed=100, keep_failed=50),
        ),
    )
    return registry


@pytest_asyncio.fixture
async def manager(
    store: InMemoryJobStore, test_settings: Settings
) -> AsyncGenerator[QueueManager]:
    """A manager over the in-memory store with the built-in queues and no processors."""
    queue_manager = QueueManager(store=store, settings=test_settings)
    yield queue_manager
    await queue_manager.close()


def make_job(
    queue_name: QueueName = QueueName.EMAIL,
    *,
    payload: dict[str, Any] | None = None,
    **overrides: Any,
) -> Job:
    """Build a job ready to be added to a store."""
    fields: dict[str, Any] = {
        "id": generate_job_id(),
        "queue_name": queue_name,
        "job_type": DEFAULT_JOB_TYPES[queue_name],
        "payload": dict(payload if payload is not None else EMAIL_PAYLOAD),
        "backoff": BackoffPolicy(base_delay_ms=0),
    }
    fields.update(overrides)
    return Job(**fields)


async def wait_until(
    predicate: Callable[[], Awaitable[bool]],
    *,
    timeout: float = 3.0,
    interval: float = 0.01,
) -> None:
    """Poll an async predicate until it holds or the timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not await predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)
