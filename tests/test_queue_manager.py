"""Tests for the QueueManager facade."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from conftest import EMAIL_PAYLOAD, WEBHOOK_PAYLOAD, wait_until

from jobengine.config import Settings
from jobengine.domain.enums import JobStatus, QueueName
from jobengine.domain.models import BackoffPolicy, EnqueueOptions, Job
from jobengine.errors import JobNotFoundError, QueueNotFoundError, ValidationError
from jobengine.processors import build_default_processors
from jobengine.processors.email import LogMailTransport
from jobengine.services.queue_manager import QueueManager
from jobengine.storage.memory_store import InMemoryJobStore


async def _fail_next(manager: QueueManager, queue: QueueName) -> Job:
    store = manager.store
    claimed = await store.claim_next(queue, worker_id="w", timeout_seconds=0.1)
    assert claimed is not None
    return await store.fail(
        claimed.id,
        lock_token=claimed.lock_token or "",
        error="PermanentJobError: rejected",
        keep_failed=10,
        dead_letter_max=10,
    )


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_enqueue_applies_queue_defaults(self, manager: QueueManager) -> None:
        job_id = await manager.enqueue("email", payload=EMAIL_PAYLOAD)

        job = await manager.get_job(job_id)
        assert job is not None
        assert job_id.startswith("job_")
        assert job.status == JobStatus.WAITING
        assert job.job_type == "send_email"
        assert job.max_attempts == 3
        assert job.attempts_made == 0
        assert job.payload["to"] == "user@example.com"

    @pytest.mark.asyncio
    async def test_enqueue_with_overrides_and_delay(self, manager: QueueManager) -> None:
        options = EnqueueOptions(
            max_attempts=5, backoff=BackoffPolicy(base_delay_ms=500), delay_ms=60_000
        )
        job_id = await manager.enqueue("webhook", "trigger_webhook", WEBHOOK_PAYLOAD, options)

        job = await manager.get_job(job_id)
        assert job is not None
        assert job.status == JobStatus.DELAYED
        assert job.max_attempts == 5
        assert job.backoff.base_delay_ms == 500
        assert job.next_attempt_at is not None
        assert (job.next_attempt_at - job.created_at).total_seconds() == pytest.approx(60)

    @pytest.mark.asyncio
    async def test_payload_is_stored_json_safe(self, manager: QueueManager) -> None:
        job_id = await manager.enqueue(
            QueueName.CLEANUP,
            payload={
                "workspace_id": "ws-1",
                "data_type": "messages",
                "older_than": "2024-01-01T00:00:00Z",
            },
        )
        job = await manager.get_job(job_id)
        assert job is not None
        assert isinstance(job.payload["older_than"], str)

    @pytest.mark.asyncio
    async def test_payload_is_stored_as_sent(self, manager: QueueManager) -> None:
        payload = {**EMAIL_PAYLOAD, "userId": "u-1", "workspaceId": "w-9"}
        job_id = await manager.enqueue("email", payload=payload)

        job = await manager.get_job(job_id)
        assert job is not None
        assert job.payload == payload

    @pytest.mark.asyncio
    async def test_datetime_values_are_stored_as_iso_strings(self, manager: QueueManager) -> None:
        cutoff = datetime(2024, 1, 1, tzinfo=UTC)
        job_id = await manager.enqueue(
            "cleanup",
            payload={"workspace_id": "ws-1", "data_type": "logs", "older_than": cutoff},
        )

        job = await manager.get_job(job_id)
        assert job is not None
        assert job.payload == {
            "workspace_id": "ws-1",
            "data_type": "logs",
            "older_than": "2024-01-01T00:00:00Z",
        }

    @pytest.mark.asyncio
    async def test_invalid_payload_is_rejected(self, manager: QueueManager) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await manager.enqueue("webhook", payload={"url": "ftp://nope", "event": "x"})

        locs = [err["loc"] for err in exc_info.value.details["errors"]]  # type: ignore[index]
        assert ["url"] in locs
        assert (await manager.get_queue_stats("webhook")).total_enqueued == 0

    @pytest.mark.asyncio
    async def test_unknown_queue_is_rejected(self, manager: QueueManager) -> None:
        with pytest.raises(QueueNotFoundError):
            await manager.enqueue("sms", payload={})

    @pytest.mark.asyncio
    async def test_unsupported_job_type_is_rejected(self, manager: QueueManager) -> None:
        async def handler(payload: Any, job: Job) -> None:
            return None

        manager.register_processor("email", handler)
        with pytest.raises(ValidationError):
            await manager.enqueue("email", "send_sms", EMAIL_PAYLOAD)

    @pytest.mark.asyncio
    async def test_queue_options_override_defaults(self, manager: QueueManager) -> None:
        manager.define_queue("ai", {"default_max_attempts": 1})
        job_id = await manager.enqueue("ai", payload={"type": "summarize", "input": "text"})
        job = await manager.get_job(job_id)
        assert job is not None and job.max_attempts == 1


class TestStats:
    @pytest.mark.asyncio
    async def test_counts_add_up_to_total_enqueued(self, manager: QueueManager) -> None:
        for _ in range(4):
            await manager.enqueue("email", payload=EMAIL_PAYLOAD)
        await manager.enqueue("email", payload=EMAIL_PAYLOAD, options=EnqueueOptions(delay_ms=5000))
        await _fail_next(manager, QueueName.EMAIL)
        await manager.store.claim_next(QueueName.EMAIL, worker_id="w", timeout_seconds=0.1)

        stats = await manager.get_queue_stats("email")
        assert (stats.waiting, stats.active, stats.delayed, stats.failed) == (2, 1, 1, 1)
        assert stats.dead_letter == 1
        assert stats.total_enqueued == 5
        total = stats.waiting + stats.active + stats.delayed + stats.completed + stats.failed
        assert total + stats.pruned == stats.total_enqueued

    @pytest.mark.asyncio
    async def test_all_stats_cover_every_queue(self, manager: QueueManager) -> None:
        stats = await manager.get_all_stats()
        assert set(stats) == {q.value for q in QueueName}


class TestInspectionAndCleanup:
    @pytest.mark.asyncio
    async def test_list_jobs_by_status(self, manager: QueueManager) -> None:
        ids = [await manager.enqueue("email", payload=EMAIL_PAYLOAD) for _ in range(3)]
        failed = await _fail_next(manager, QueueName.EMAIL)

        waiting = await manager.list_jobs("email", JobStatus.WAITING)
        assert [j.id for j in waiting] == ids[1:]
        assert [j.id for j in await manager.list_jobs("email", JobStatus.FAILED)] == [failed.id]
        assert len(await manager.list_jobs("email", JobStatus.WAITING, limit=1)) == 1

        with pytest.raises(QueueNotFoundError):
            await manager.list_jobs("sms", JobStatus.WAITING)

    @pytest.mark.asyncio
    async def test_clean_old_jobs_covers_every_queue(self, manager: QueueManager) -> None:
        await manager.enqueue("email", payload=EMAIL_PAYLOAD)
        await _fail_next(manager, QueueName.EMAIL)

        removed = await manager.clean_old_jobs()
        assert set(removed) == {q.value for q in QueueName}
        assert removed["email"] == {"completed": 0, "failed": 0}

        removed = await manager.clean_old_jobs(failed_max_age=timedelta(0))
        assert removed["email"] == {"completed": 0, "failed": 1}

        stats = await manager.get_queue_stats("email")
        assert (stats.failed, stats.pruned, stats.total_enqueued) == (0, 1, 1)


class TestDeadLetters:
    @pytest.mark.asyncio
    async def test_replay_creates_new_job(self, manager: QueueManager) -> None:
        original_id = await manager.enqueue(
            "email", payload=EMAIL_PAYLOAD, options=EnqueueOptions(max_attempts=4)
        )
        await _fail_next(manager, QueueName.EMAIL)

        entries = await manager.list_dead_letters("email")
        assert [e.job.id for e in entries] == [original_id]

        new_id = await manager.replay_dead_letter("email", original_id)
        assert new_id != original_id

        replayed = await manager.get_job(new_id)
        assert replayed is not None
        assert replayed.status == JobStatus.WAITING
        assert replayed.payload == entries[0].job.payload
        assert replayed.max_attempts == 4
        assert await manager.list_dead_letters("email") == []

        with pytest.raises(JobNotFoundError):
            await manager.replay_dead_letter("email", original_id)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_requires_processor_for_every_queue(self, manager: QueueManager) -> None:
        with pytest.raises(ValueError, match="No processor registered"):
            await manager.start()
        assert manager.is_running is False

    @pytest.mark.asyncio
    async def test_start_without_workers_only_connects(self, manager: QueueManager) -> None:
        await manager.start(workers=False)
        assert manager.pools == {}
        assert (await manager.health())["store"] is True

    @pytest.mark.asyncio
    async def test_default_processors_complete_jobs(self, test_settings: Settings) -> None:
        transport = LogMailTransport()
        manager = QueueManager(
            store=InMemoryJobStore(),
            settings=test_settings,
            processors=build_default_processors(test_settings, mail_transport=transport),
        )
        await manager.start()
        try:
            assert set(manager.pools) == {q.value for q in QueueName}
            assert manager.pools["webhook"].concurrency == 10
            job_id = await manager.enqueue("email", payload=EMAIL_PAYLOAD)

            async def completed() -> bool:
                job = await manager.get_job(job_id)
                return job is not None and job.status == JobStatus.COMPLETED

            await wait_until(completed)
        finally:
            await manager.close()

        job = await manager.get_job(job_id)
        assert job is not None and job.result is not None
        assert job.result["success"] is True
        assert job.result["message_id"].startswith("msg_")
        assert [m.to for m in transport.sent] == ["user@example.com"]
        assert manager.is_running is False
