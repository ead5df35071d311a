"""FastAPI dependency injection."""

from __future__ import annotations

from jobengine.config import Settings, settings
from jobengine.processors import build_default_processors
from jobengine.queue.registry import QueueRegistry
from jobengine.services.queue_manager import QueueManager
from jobengine.storage.backend import create_store

# Singleton
_queue_manager: QueueManager | None = None


def build_queue_manager(config: Settings | None = None) -> QueueManager:
    """Build a manager with the six built-in queues and processors."""
    config = config or settings
    return QueueManager(
        store=create_store(config.store_url, key_prefix=config.key_prefix),
        settings=config,
        queues=QueueRegistry.with_defaults(config),
        processors=build_default_processors(config),
    )


def get_queue_manager() -> QueueManager:
    """Get the queue manager singleton."""
    global _queue_manager
    if _queue_manager is None:
        _queue_manager = build_queue_manager()
    return _queue_manager


def set_queue_manager(manager: QueueManager | None) -> None:
    """Replace the queue manager singleton (app startup and tests)."""
    global _queue_manager
    _queue_manager = manager
