"""Job processor registry.

Maps each queue to exactly one processor. Processors receive the typed
payload model of their queue together with the claimed job.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from jobengine.domain.enums import DEFAULT_JOB_TYPES, QueueName
from jobengine.domain.models import Job
from jobengine.domain.payloads import PAYLOAD_MODELS
from jobengine.errors import PermanentJobError
from jobengine.queue.registry import coerce_queue_name

logger = logging.getLogger(__name__)

ProcessorHandler = Callable[[Any, Job], Awaitable[dict[str, Any] | None]]


@dataclass(frozen=True)
class RegisteredProcessor:
    """A handler bound to its queue and accepted job types."""

    queue_name: QueueName
    handler: ProcessorHandler
    job_types: frozenset[str]

    async def __call__(self, job: Job) -> dict[str, Any] | None:
        if job.job_type not in self.job_types:
            raise PermanentJobError(
                f"No processor for job type '{job.job_type}' on queue '{self.queue_name.value}'"
            )
        try:
            payload = PAYLOAD_MODELS[self.queue_name].model_validate(job.payload)
        except PydanticValidationError as e:
            raise PermanentJobError(f"Invalid payload: {e}") from e
        return await self.handler(payload, job)


class ProcessorRegistry:
    """Registry of processors keyed by queue."""

    def __init__(self) -> None:
        self._processors: dict[QueueName, RegisteredProcessor] = {}

    def register_processor(
        self,
        queue_name: QueueName | str,
        handler: ProcessorHandler,
        *,
        job_types: Iterable[str] | None = None,
    ) -> RegisteredProcessor:
        """Register the processor of a queue.

        Args:
            queue_name: Queue the handler serves.
            handler: ``async handler(payload, job) -> result``; may raise.
            job_types: Accepted job types (default: the queue's canonical type).

        Raises:
            QueueNotFoundError: If the queue name is unknown.
            ValueError: If the queue already has a processor.
        """
        queue = coerce_queue_name(queue_name)
        if queue in self._processors:
            raise ValueError(f"Processor already registered for queue '{queue.value}'")
        types = frozenset(job_types) if job_types else frozenset({DEFAULT_JOB_TYPES[queue]})
        registered = RegisteredProcessor(queue_name=queue, handler=handler, job_types=types)
        self._processors[queue] = registered
        logger.debug("Registered processor for %s (job types: %s)", queue.value, sorted(types))
        return registered

    def get(self, queue_name: QueueName) -> RegisteredProcessor | None:
        return self._processors.get(queue_name)

    def missing(self, queue_names: Iterable[QueueName] | None = None) -> list[QueueName]:
        """Return queues that have no processor registered."""
        names = list(queue_names) if queue_names is not None else list(QueueName)
        return [q for q in names if q not in self._processors]

    def __contains__(self, queue_name: object) -> bool:
        return queue_name in self._processors
