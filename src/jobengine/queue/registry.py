"""Queue registry.

Holds the configuration of every named queue. Producers and workers share one
registry through the QueueManager instead of module-level queue singletons.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from jobengine.domain.enums import QueueName
from jobengine.domain.models import BackoffPolicy, QueueOptions, RetentionPolicy
from jobengine.errors import QueueNotFoundError, ValidationError

if TYPE_CHECKING:
    from jobengine.config import Settings

logger = logging.getLogger(__name__)


def coerce_queue_name(name: QueueName | str) -> QueueName:
    """Convert a queue name string to the enum.

    Raises:
        QueueNotFoundError: If the name is not a known queue.
    """
    if isinstance(name, QueueName):
        return name
    try:
        return QueueName(name)
    except ValueError:
        raise QueueNotFoundError(
            f"Unknown queue: {name}",
            details={"known": [q.value for q in QueueName]},
        ) from None


class QueueHandle:
    """Reference to a defined queue. Options are shared by all holders."""

    def __init__(self, name: QueueName, options: QueueOptions) -> None:
        self.name = name
        self.options = options

    def __repr__(self) -> str:
        return f"QueueHandle(name={self.name.value!r}, concurrency={self.options.concurrency})"


class QueueRegistry:
    """Registry of named queues."""

    def __init__(self) -> None:
        self._queues: dict[QueueName, QueueHandle] = {}

    def define_queue(
        self,
        name: QueueName | str,
        options: QueueOptions | dict[str, Any] | None = None,
    ) -> QueueHandle:
        """Define a queue, or merge new options into an existing definition.

        Defining the same name twice returns the same handle; only the fields
        explicitly set in ``options`` override the current configuration.
        """
        queue_name = coerce_queue_name(name)
        if isinstance(options, dict):
            try:
                options = QueueOptions.model_validate(options)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid options for queue '{queue_name.value}': {e}") from e

        handle = self._queues.get(queue_name)
        if handle is None:
            handle = QueueHandle(queue_name, options or QueueOptions())
            self._queues[queue_name] = handle
            logger.debug("Defined queue %s (%r)", queue_name.value, handle.options)
            return handle

        if options is not None:
            merged = handle.options.model_dump()
            merged.update(options.model_dump(exclude_unset=True))
            handle.options = QueueOptions.model_validate(merged)
            logger.debug("Updated queue %s (%r)", queue_name.value, handle.options)
        return handle

    def get(self, name: QueueName | str) -> QueueHandle:
        """Get a defined queue.

        Raises:
            QueueNotFoundError: If the queue has not been defined.
        """
        queue_name = coerce_queue_name(name)
        handle = self._queues.get(queue_name)
        if handle is None:
            raise QueueNotFoundError(f"Queue not defined: {queue_name.value}")
        return handle

    def names(self) -> list[QueueName]:
        return list(self._queues)

    def __iter__(self) -> Iterator[QueueHandle]:
        return iter(list(self._queues.values()))

    def __contains__(self, name: object) -> bool:
        return name in self._queues

    @classmethod
    def with_defaults(cls, settings: Settings) -> QueueRegistry:
        """Build a registry with the six built-in queues configured from settings."""
        registry = cls()
        for queue_name in QueueName:
            registry.define_queue(
                queue_name,
                QueueOptions(
                    concurrency=settings.concurrency_for(queue_name.value),
                    default_max_attempts=settings.default_max_attempts,
                    default_backoff=BackoffPolicy(
                        base_delay_ms=settings.default_backoff_ms,
                        jitter=settings.backoff_jitter,
                    ),
                    retention=RetentionPolicy(
                        keep_completed=settings.keep_completed,
                        keep_failed=settings.keep_failed,
                    ),
                ),
            )
        return registry
