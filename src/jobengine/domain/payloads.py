"""Typed job payloads, one model per queue.

Producers hand the engine a plain dict; it is validated against the queue's
model at enqueue time and stored as sent, unknown keys included. Processors
receive the parsed model, which ignores keys it does not declare.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from jobengine.domain.enums import QueueName
from jobengine.errors import ValidationError


class EmailPayload(BaseModel):
    to: str = Field(..., min_length=3)
    subject: str
    template: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class WebhookPayload(BaseModel):
    url: str = Field(..., pattern=r"^https?://")
    event: str
    data: dict[str, Any] = Field(default_factory=dict)
    secret: str | None = None


class AnalyticsPayload(BaseModel):
    workspace_id: str
    type: str
    data: list[dict[str, Any]] = Field(default_factory=list)


class BroadcastPayload(BaseModel):
    workspace_id: str
    message: str
    recipients: list[str]
    platform: str = "whatsapp"


class AIPayload(BaseModel):
    type: str
    input: str | dict[str, Any]
    workspace_id: str | None = None


class CleanupPayload(BaseModel):
    workspace_id: str
    data_type: str
    older_than: datetime


PAYLOAD_MODELS: dict[QueueName, type[BaseModel]] = {
    QueueName.EMAIL: EmailPayload,
    QueueName.WEBHOOK: WebhookPayload,
    QueueName.ANALYTICS: AnalyticsPayload,
    QueueName.BROADCAST: BroadcastPayload,
    QueueName.AI: AIPayload,
    QueueName.CLEANUP: CleanupPayload,
}


def parse_payload(queue_name: QueueName, payload: dict[str, Any]) -> BaseModel:
    """Validate a raw payload against the queue's model.

    Raises:
        ValidationError: If the payload does not match.
    """
    model = PAYLOAD_MODELS[queue_name]
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid payload for queue '{queue_name.value}'",
            details={
                "errors": [
                    {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
                    for err in e.errors()
                ]
            },
        ) from e
