"""Broadcast fan-out processor.

The broadcast queue runs with concurrency 1 so that fan-out never overloads
a rate-limited channel.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from jobengine.domain.models import Job
from jobengine.domain.payloads import BroadcastPayload

logger = logging.getLogger(__name__)


class BroadcastChannel(ABC):
    """Abstract base for messaging channels (WhatsApp, SMS, ...)."""

    @abstractmethod
    async def send(self, platform: str, recipient: str, message: str) -> bool:
        """Send one message.

        Returns:
            True if the channel accepted the message.
        """
        pass


class LogBroadcastChannel(BroadcastChannel):
    """Log-based channel for development/testing."""

    async def send(self, platform: str, recipient: str, message: str) -> bool:
        logger.debug("[Broadcast] platform=%s recipient=%s", platform, recipient)
        return True


class BroadcastProcessor:
    def __init__(self, channel: BroadcastChannel | None = None) -> None:
        self.channel = channel or LogBroadcastChannel()

    async def __call__(self, payload: BroadcastPayload, job: Job) -> dict[str, Any]:
        logger.info(
            "Processing broadcast job %s (workspace=%s, platform=%s, recipients=%d)",
            job.id,
            payload.workspace_id,
            payload.platform,
            len(payload.recipients),
        )
        sent = 0
        for recipient in payload.recipients:
            if await self.channel.send(payload.platform, recipient, payload.message):
                sent += 1
        return {"success": True, "sent": sent, "skipped": len(payload.recipients) - sent}
