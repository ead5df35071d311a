"""HTTP metrics middleware for the engine API."""

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from jobengine.observability.metrics import HTTP_REQUEST_DURATION, HTTP_REQUESTS_TOTAL


def _endpoint_label(request: Request) -> str:
    """Use the matched route template so job IDs do not explode label cardinality."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # Skip metrics endpoint to avoid self-referential metrics
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.monotonic()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.monotonic() - start_time
            labels = {
                "method": request.method,
                "endpoint": _endpoint_label(request),
                "status_code": str(status_code),
            }
            HTTP_REQUEST_DURATION.labels(**labels).observe(duration)
            HTTP_REQUESTS_TOTAL.labels(**labels).inc()
