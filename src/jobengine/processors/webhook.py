"""Webhook dispatcher.

Delivers signed HTTP callbacks for jobs on the webhook queue. Any non-2xx
response, network error or timeout raises WebhookDeliveryError, which the
worker pool treats as retryable.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Any

import httpx

from jobengine.domain.models import Job, utcnow
from jobengine.domain.payloads import WebhookPayload
from jobengine.errors import WebhookDeliveryError
from jobengine.observability.metrics import WEBHOOK_DELIVERIES

logger = logging.getLogger(__name__)


def iso_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return utcnow().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sign_body(body: bytes, secret: str) -> str:
    """HMAC-SHA256 signature header value for a request body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


class WebhookDispatcher:
    """Performs outbound webhook POSTs."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        user_agent: str = "jobengine-webhooks/0.1",
        signing_secret: str = "",
        sign_payloads: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            timeout_seconds: Per-request timeout.
            user_agent: User-Agent header value.
            signing_secret: HMAC key for the X-Webhook-Signature header.
            sign_payloads: Whether to add the signature header.
            client: Shared HTTP client; a short-lived one is created per call if None.
        """
        self._timeout = timeout_seconds
        self._user_agent = user_agent
        self._signing_secret = signing_secret
        self._sign_payloads = sign_payloads and bool(signing_secret)
        self._client = client

    def build_request(self, payload: WebhookPayload) -> tuple[bytes, dict[str, str]]:
        """Build the request body and headers for a delivery."""
        body = json.dumps(
            {"event": payload.event, "data": payload.data, "timestamp": iso_timestamp()},
            separators=(",", ":"),
        ).encode("utf-8")

        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
        }
        if payload.secret:
            headers["X-Webhook-Secret"] = payload.secret
        if self._sign_payloads:
            headers["X-Webhook-Signature"] = sign_body(body, self._signing_secret)
        return body, headers

    async def dispatch(self, payload: WebhookPayload) -> dict[str, Any]:
        """Deliver one webhook.

        Returns:
            ``{"status": <http status>}`` on a 2xx response.

        Raises:
            WebhookDeliveryError: On non-2xx, network error or timeout.
        """
        body, headers = self.build_request(payload)
        logger.info("Dispatching webhook (url=%s, event=%s)", payload.url, payload.event)

        try:
            if self._client is not None:
                response = await self._client.post(
                    payload.url, content=body, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        payload.url, content=body, headers=headers, timeout=self._timeout
                    )
        except httpx.TimeoutException as e:
            WEBHOOK_DELIVERIES.labels(outcome="timeout").inc()
            logger.warning("Webhook timed out (url=%s, event=%s)", payload.url, payload.event)
            raise WebhookDeliveryError(f"Webhook timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            WEBHOOK_DELIVERIES.labels(outcome="error").inc()
            logger.warning("Webhook failed (url=%s, event=%s): %s", payload.url, payload.event, e)
            raise WebhookDeliveryError(f"Webhook request failed: {e}") from e

        if not response.is_success:
            WEBHOOK_DELIVERIES.labels(outcome="rejected").inc()
            logger.warning(
                "Webhook rejected (url=%s, event=%s, status=%s)",
                payload.url,
                payload.event,
                response.status_code,
            )
            raise WebhookDeliveryError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        WEBHOOK_DELIVERIES.labels(outcome="delivered").inc()
        return {"status": response.status_code}

    async def __call__(self, payload: WebhookPayload, job: Job) -> dict[str, Any]:
        return await self.dispatch(payload)
