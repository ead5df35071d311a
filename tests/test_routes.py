"""Tests for the HTTP API."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from conftest import EMAIL_PAYLOAD
from fastapi.testclient import TestClient

from jobengine.config import Settings, settings
from jobengine.dependencies import get_queue_manager, set_queue_manager
from jobengine.domain.enums import QueueName
from jobengine.main import create_app
from jobengine.services.queue_manager import QueueManager
from jobengine.storage.memory_store import InMemoryJobStore


@pytest_asyncio.fixture
async def client(manager: QueueManager) -> AsyncGenerator[httpx.AsyncClient]:
    app = create_app()
    app.dependency_overrides[get_queue_manager] = lambda: manager
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


@pytest.mark.asyncio
async def test_enqueue_and_get_job(client: httpx.AsyncClient) -> None:
    resp = await client.post(
        "/queues/email/jobs", json={"job_type": "send_email", "payload": EMAIL_PAYLOAD}
    )
    assert resp.status_code == 201
    created = resp.json()
    assert created["queue_name"] == "email"
    assert created["status"] == "waiting"

    resp = await client.get(f"/jobs/{created['job_id']}")
    assert resp.status_code == 200
    job = resp.json()
    assert job["id"] == created["job_id"]
    assert job["payload"]["to"] == "user@example.com"
    assert job["attempts_made"] == 0


@pytest.mark.asyncio
async def test_enqueue_delayed_job(client: httpx.AsyncClient) -> None:
    resp = await client.post(
        "/queues/email/jobs",
        json={"payload": EMAIL_PAYLOAD, "options": {"delay_ms": 1000, "max_attempts": 2}},
    )
    assert resp.status_code == 201
    assert resp.json()["status"] == "delayed"


@pytest.mark.asyncio
async def test_invalid_payload_returns_400(client: httpx.AsyncClient) -> None:
    resp = await client.post("/queues/webhook/jobs", json={"payload": {"event": "x"}})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert any(err["loc"] == ["url"] for err in body["error"]["details"]["errors"])


@pytest.mark.asyncio
async def test_unknown_queue_returns_404(client: httpx.AsyncClient) -> None:
    resp = await client.post("/queues/sms/jobs", json={"payload": {}})
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "QUEUE_NOT_FOUND"


@pytest.mark.asyncio
async def test_missing_job_returns_404(client: httpx.AsyncClient) -> None:
    resp = await client.get("/jobs/job_missing")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "JOB_NOT_FOUND"


@pytest.mark.asyncio
async def test_queue_stats(client: httpx.AsyncClient) -> None:
    for _ in range(2):
        await client.post("/queues/email/jobs", json={"payload": EMAIL_PAYLOAD})

    resp = await client.get("/queues/email/stats")
    assert resp.status_code == 200
    stats = resp.json()
    assert stats["waiting"] == 2
    assert stats["total_enqueued"] == 2

    resp = await client.get("/queues/stats")
    assert set(resp.json()) == {q.value for q in QueueName}


@pytest.mark.asyncio
async def test_health(client: httpx.AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_dead_letter_list_and_replay(
    client: httpx.AsyncClient, manager: QueueManager
) -> None:
    resp = await client.post("/queues/email/jobs", json={"payload": EMAIL_PAYLOAD})
    job_id = resp.json()["job_id"]
    claimed = await manager.store.claim_next(QueueName.EMAIL, worker_id="w", timeout_seconds=0.1)
    assert claimed is not None
    await manager.store.fail(
        job_id,
        lock_token=claimed.lock_token or "",
        error="boom",
        keep_failed=10,
        dead_letter_max=10,
    )

    resp = await client.get("/queues/email/dead-letters")
    assert resp.status_code == 200
    assert [entry["job"]["id"] for entry in resp.json()] == [job_id]

    resp = await client.post(f"/queues/email/dead-letters/{job_id}/replay")
    assert resp.status_code == 201
    assert resp.json()["job_id"] != job_id

    resp = await client.post(f"/queues/email/dead-letters/{job_id}/replay")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_metrics_endpoint(client: httpx.AsyncClient) -> None:
    await client.get("/jobs/job_missing")
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "jobengine_http_requests_total" in resp.text
    assert 'endpoint="/jobs/{job_id}"' in resp.text


def test_lifespan_in_api_only_mode(
    monkeypatch: pytest.MonkeyPatch, test_settings: Settings
) -> None:
    monkeypatch.setattr(settings, "worker_enabled", False)
    manager = QueueManager(store=InMemoryJobStore(), settings=test_settings)
    set_queue_manager(manager)
    try:
        with TestClient(create_app()) as test_client:
            resp = test_client.get("/health")
            assert resp.status_code == 200
            assert resp.json()["workers"] == {}
            assert resp.headers["X-Request-ID"]
    finally:
        set_queue_manager(None)


@pytest.mark.asyncio
async def test_enqueue_keeps_extra_payload_keys(client: httpx.AsyncClient) -> None:
    payload = {**EMAIL_PAYLOAD, "userId": "u-1"}
    resp = await client.post("/queues/email/jobs", json={"payload": payload})
    job_id = resp.json()["job_id"]

    resp = await client.get(f"/jobs/{job_id}")
    assert resp.json()["payload"] == payload


@pytest.mark.asyncio
async def test_list_jobs_by_status(client: httpx.AsyncClient) -> None:
    ids = []
    for _ in range(2):
        resp = await client.post("/queues/email/jobs", json={"payload": EMAIL_PAYLOAD})
        ids.append(resp.json()["job_id"])

    resp = await client.get("/queues/email/jobs", params={"status": "waiting"})
    assert resp.status_code == 200
    assert [job["id"] for job in resp.json()] == ids

    resp = await client.get("/queues/email/jobs", params={"status": "completed"})
    assert resp.json() == []

    resp = await client.get("/queues/email/jobs", params={"status": "sleeping"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_clean_old_jobs(client: httpx.AsyncClient, manager: QueueManager) -> None:
    resp = await client.post("/queues/email/jobs", json={"payload": EMAIL_PAYLOAD})
    job_id = resp.json()["job_id"]
    claimed = await manager.store.claim_next(QueueName.EMAIL, worker_id="w", timeout_seconds=0.1)
    assert claimed is not None
    await manager.store.complete(
        job_id, lock_token=claimed.lock_token or "", result=None, keep_completed=10
    )

    resp = await client.post("/queues/clean")
    assert resp.status_code == 200
    assert resp.json()["email"] == {"completed": 0, "failed": 0}

    resp = await client.post("/queues/clean", params={"completed_max_age_seconds": 0})
    assert resp.json()["email"] == {"completed": 1, "failed": 0}
    assert (await client.get(f"/jobs/{job_id}")).status_code == 404
