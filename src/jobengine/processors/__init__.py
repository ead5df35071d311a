"""Job processors and their registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from jobengine.domain.enums import QueueName
from jobengine.processors.ai import AIProcessor, InferenceClient
from jobengine.processors.analytics import AnalyticsProcessor, MetricsSink
from jobengine.processors.broadcast import BroadcastChannel, BroadcastProcessor
from jobengine.processors.cleanup import CleanupProcessor, RetentionTarget
from jobengine.processors.email import EmailProcessor, MailTransport
from jobengine.processors.registry import ProcessorHandler, ProcessorRegistry, RegisteredProcessor
from jobengine.processors.webhook import WebhookDispatcher

if TYPE_CHECKING:
    from jobengine.config import Settings

__all__ = [
    "ProcessorHandler",
    "ProcessorRegistry",
    "RegisteredProcessor",
    "WebhookDispatcher",
    "build_default_processors",
]


def build_default_processors(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient | None = None,
    mail_transport: MailTransport | None = None,
    metrics_sink: MetricsSink | None = None,
    broadcast_channel: BroadcastChannel | None = None,
    inference_client: InferenceClient | None = None,
    retention_target: RetentionTarget | None = None,
) -> ProcessorRegistry:
    """Register the six built-in processors."""
    registry = ProcessorRegistry()
    registry.register_processor(QueueName.EMAIL, EmailProcessor(mail_transport))
    registry.register_processor(
        QueueName.WEBHOOK,
        WebhookDispatcher(
            timeout_seconds=settings.webhook_timeout_seconds,
            user_agent=settings.webhook_user_agent,
            signing_secret=settings.webhook_signing_secret,
            sign_payloads=settings.webhook_sign_payloads,
            client=http_client,
        ),
    )
    registry.register_processor(QueueName.ANALYTICS, AnalyticsProcessor(metrics_sink))
    registry.register_processor(QueueName.BROADCAST, BroadcastProcessor(broadcast_channel))
    registry.register_processor(QueueName.AI, AIProcessor(inference_client))
    registry.register_processor(QueueName.CLEANUP, CleanupProcessor(retention_target))
    return registry
