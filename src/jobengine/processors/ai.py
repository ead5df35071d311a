"""AI inference processor."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from jobengine.domain.models import Job
from jobengine.domain.payloads import AIPayload

logger = logging.getLogger(__name__)


class InferenceClient(ABC):
    """Abstract base for completion/inference providers."""

    @abstractmethod
    async def infer(self, task: str, input: str | dict[str, Any]) -> Any:
        pass


class EchoInferenceClient(InferenceClient):
    """Returns the input unchanged. Development/testing only."""

    async def infer(self, task: str, input: str | dict[str, Any]) -> Any:
        return input


class AIProcessor:
    def __init__(self, client: InferenceClient | None = None) -> None:
        self.client = client or EchoInferenceClient()

    async def __call__(self, payload: AIPayload, job: Job) -> dict[str, Any]:
        logger.info(
            "Processing AI job %s (type=%s, workspace=%s)",
            job.id,
            payload.type,
            payload.workspace_id,
        )
        output = await self.client.infer(payload.type, payload.input)
        return {"success": True, "result": output}
