"""Tests for global error handling and request correlation."""

from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from jobengine.error_handling import install_error_handling
from jobengine.errors import QueueNotFoundError, StoreUnavailableError


def create_app() -> FastAPI:
    app = FastAPI()
    install_error_handling(app)

    @app.get("/boom-http")
    async def boom_http() -> None:
        raise HTTPException(status_code=404, detail="Missing")

    @app.get("/boom-queue")
    async def boom_queue() -> None:
        raise QueueNotFoundError("Queue not defined: sms", details={"queue": "sms"})

    @app.get("/boom-store")
    async def boom_store() -> None:
        raise StoreUnavailableError()

    @app.get("/boom-unhandled")
    async def boom_unhandled() -> None:
        raise RuntimeError("kaboom")

    return app


def test_http_exception_is_wrapped_with_request_id() -> None:
    client = TestClient(create_app())
    resp = client.get("/boom-http")
    assert resp.status_code == 404
    body = resp.json()
    assert body["detail"] == "Missing"
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["error"]["request_id"] == resp.headers["X-Request-ID"]


def test_engine_error_keeps_code_and_details() -> None:
    client = TestClient(create_app())
    resp = client.get("/boom-queue", headers={"X-Request-ID": "rid-123"})
    assert resp.status_code == 404
    assert resp.headers["X-Request-ID"] == "rid-123"
    body = resp.json()
    assert body["detail"] == "Queue not defined: sms"
    assert body["error"]["code"] == "QUEUE_NOT_FOUND"
    assert body["error"]["request_id"] == "rid-123"
    assert body["error"]["details"] == {"queue": "sms"}


def test_store_unavailable_maps_to_503() -> None:
    client = TestClient(create_app())
    resp = client.get("/boom-store")
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "STORE_UNAVAILABLE"


def test_unhandled_exception_is_hidden() -> None:
    client = TestClient(create_app(), raise_server_exceptions=False)
    resp = client.get("/boom-unhandled")
    assert resp.status_code == 500
    body = resp.json()
    assert body["detail"] == "Internal server error"
    assert body["error"]["code"] == "INTERNAL_ERROR"
    assert "kaboom" not in resp.text
