"""Exception handlers and request correlation for the engine API."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from jobengine.errors import JobEngineError

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_STATUS_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    return request_id or request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Render an error in the engine's JSON envelope.

    ``{"detail": message, "error": {"code", "request_id", "details"?}}``
    """
    request_id = _request_id(request)
    error: dict[str, Any] = {"code": code, "request_id": request_id}
    if details:
        error["details"] = jsonable_encoder(details)
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "error": error},
        headers={REQUEST_ID_HEADER: request_id},
    )


def install_error_handling(app: FastAPI) -> None:
    """Install request-id middleware and the engine's exception handlers."""

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response

    @app.exception_handler(JobEngineError)
    async def engine_error_handler(request: Request, exc: JobEngineError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Engine error %s: %s", exc.code, exc.message)
        return error_response(
            request,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            details=exc.details,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return error_response(
            request,
            status_code=exc.status_code,
            code=_STATUS_CODES.get(exc.status_code, "HTTP_ERROR"),
            message=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return error_response(
            request,
            status_code=422,
            code="VALIDATION_ERROR",
            message="Request validation failed",
            details={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception (request_id=%s): %s", _request_id(request), exc)
        return error_response(
            request,
            status_code=500,
            code="INTERNAL_ERROR",
            message="Internal server error",
        )
