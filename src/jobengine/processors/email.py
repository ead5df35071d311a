"""Transactional email processor."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any

from jobengine.domain.models import Job
from jobengine.domain.payloads import EmailPayload

logger = logging.getLogger(__name__)


class MailTransport(ABC):
    """Abstract base for mail delivery backends (SMTP, SES, SendGrid...)."""

    @abstractmethod
    async def send(self, message: EmailPayload) -> str:
        """Send a message.

        Args:
            message: Recipient, subject, template and template data.

        Returns:
            Provider message ID.
        """
        pass


class LogMailTransport(MailTransport):
    """Log-based transport for development/testing."""

    def __init__(self) -> None:
        self.sent: list[EmailPayload] = []

    async def send(self, message: EmailPayload) -> str:
        self.sent.append(message)
        message_id = f"msg_{uuid.uuid4().hex[:12]}"
        logger.info(
            "[Email] to=%s subject=%r template=%s id=%s",
            message.to,
            message.subject,
            message.template,
            message_id,
        )
        return message_id


class EmailProcessor:
    def __init__(self, transport: MailTransport | None = None) -> None:
        self.transport = transport or LogMailTransport()

    async def __call__(self, payload: EmailPayload, job: Job) -> dict[str, Any]:
        logger.info("Processing email job %s (to=%s)", job.id, payload.to)
        message_id = await self.transport.send(payload)
        return {"success": True, "message_id": message_id}
