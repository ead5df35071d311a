"""Abstract job store interface.

The job store is the single shared mutable resource of the engine. Every
state transition goes through one of the operations below and must be atomic
with respect to concurrent executors, possibly in other processes.

Design goals:
- Atomic claim (waiting -> active) so a job is owned by exactly one executor
- Lock tokens so a transition from an executor that lost its claim is rejected
- Retention pruning in the same step as the terminal transition
- Counting by status for stats and health checks
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from jobengine.domain.enums import JobStatus, QueueName
from jobengine.domain.models import DeadLetterEntry, Job, QueueStats


class JobStore(ABC):
    """Abstract base class for job stores.

    All stores must provide these operations:
    - add: Persist a new job (waiting or delayed)
    - claim_next: Atomically claim the next waiting job, blocking up to a timeout
    - heartbeat: Refresh the liveness timestamp of an active job
    - complete / retry_later / fail: Terminal and retry transitions
    - promote_delayed: Move due delayed jobs back to waiting
    - reclaim_stalled: Requeue (or fail) active jobs whose heartbeat is stale
    - clean: Remove terminal jobs past a maximum age
    - count: Per-status counts for a queue
    """

    async def connect(self) -> None:
        """Open connections. Default: nothing to do."""

    async def close(self) -> None:
        """Release connections. Default: nothing to do."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the store is reachable."""
        ...

    @abstractmethod
    async def add(self, job: Job) -> Job:
        """Persist a new job.

        The job is stored as DELAYED when ``next_attempt_at`` is set, WAITING
        otherwise.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
        ...

    @abstractmethod
    async def claim_next(
        self,
        queue_name: QueueName,
        *,
        worker_id: str,
        timeout_seconds: float,
    ) -> Job | None:
        """Atomically claim the next waiting job of a queue.

        Suspends up to ``timeout_seconds`` when the queue is empty.

        Returns:
            The claimed job (ACTIVE, with a fresh ``lock_token``), or None.
        """
        ...

    @abstractmethod
    async def heartbeat(self, job_id: str, *, lock_token: str) -> bool:
        """Refresh the heartbeat of an active job.

        Returns:
            False if the caller no longer owns the job.
        """
        ...

    @abstractmethod
    async def complete(
        self,
        job_id: str,
        *,
        lock_token: str,
        result: dict[str, Any] | None,
        keep_completed: int,
    ) -> Job:
        """Mark an active job COMPLETED and prune old completed jobs.

        Raises:
            LockLostError: If the caller no longer owns the job.
        """
        ...

    @abstractmethod
    async def retry_later(
        self,
        job_id: str,
        *,
        lock_token: str,
        error: str,
        next_attempt_at: datetime,
    ) -> Job:
        """Move an active job to DELAYED after a failed attempt.

        Raises:
            LockLostError: If the caller no longer owns the job.
        """
        ...

    @abstractmethod
    async def fail(
        self,
        job_id: str,
        *,
        lock_token: str,
        error: str,
        keep_failed: int,
        dead_letter_max: int,
    ) -> Job:
        """Mark an active job FAILED, dead-letter it and prune old failures.

        Raises:
            LockLostError: If the caller no longer owns the job.
        """
        ...

    @abstractmethod
    async def promote_delayed(self, queue_name: QueueName, *, now: datetime) -> int:
        """Move delayed jobs whose ``next_attempt_at <= now`` to WAITING.

        Returns:
            Number of jobs promoted.
        """
        ...

    @abstractmethod
    async def reclaim_stalled(
        self,
        queue_name: QueueName,
        *,
        stalled_before: datetime,
        keep_failed: int,
        dead_letter_max: int,
    ) -> list[Job]:
        """Recover active jobs whose last heartbeat is older than ``stalled_before``.

        Each stalled job has its attempt counter incremented. It goes back to
        WAITING while attempts remain, otherwise it is failed terminally.

        Returns:
            The recovered jobs in their new state.
        """
        ...

    @abstractmethod
    async def clean(
        self,
        queue_name: QueueName,
        status: JobStatus,
        *,
        older_than: datetime,
        limit: int = 1000,
    ) -> int:
        """Remove up to ``limit`` terminal jobs that finished before ``older_than``.

        Removed jobs are counted as pruned, like retention pruning.

        Returns:
            Number of jobs removed.

        Raises:
            ValueError: If ``status`` is not COMPLETED or FAILED.
        """
        ...

    @abstractmethod
    async def get(self, job_id: str) -> Job | None:
        """Get a job by ID."""
        ...

    @abstractmethod
    async def list_jobs(
        self,
        queue_name: QueueName,
        status: JobStatus,
        *,
        limit: int = 100,
    ) -> list[Job]:
        """List jobs of a queue in a given status, oldest first."""
        ...

    @abstractmethod
    async def count(self, queue_name: QueueName) -> QueueStats:
        """Count jobs of a queue by status."""
        ...

    @abstractmethod
    async def list_dead_letters(
        self,
        queue_name: QueueName,
        *,
        limit: int = 100,
    ) -> list[DeadLetterEntry]:
        """List dead-letter entries of a queue, newest first."""
        ...

    @abstractmethod
    async def pop_dead_letter(self, queue_name: QueueName, job_id: str) -> DeadLetterEntry | None:
        """Remove and return a dead-letter entry."""
        ...


class JobStoreType:
    """Job store type identifiers."""

    MEMORY = "memory"
    REDIS = "redis"


def parse_store_url(url: str) -> tuple[str, dict[str, str]]:
    """Parse a store URL into store type and connection params.

    Supported formats:
    - memory://
    - redis://[:password@]host:port/db

    Args:
        url: Store URL (e.g., "redis://localhost:6379/0")

    Returns:
        Tuple of (store_type, connection_params)
    """
    if url.startswith("memory://"):
        return JobStoreType.MEMORY, {}

    if url.startswith("redis://"):
        parts = url[8:]  # Remove "redis://"
        params: dict[str, str] = {}

        if "@" in parts:
            auth, parts = parts.rsplit("@", 1)
            params["password"] = auth.split(":", 1)[-1]

        if "/" in parts:
            host_port, db = parts.rsplit("/", 1)
            if db:
                params["db"] = db
        else:
            host_port = parts

        if ":" in host_port:
            host, port = host_port.rsplit(":", 1)
            params["host"] = host
            params["port"] = port
        elif host_port:
            params["host"] = host_port

        return JobStoreType.REDIS, params

    raise ValueError(f"Unsupported store URL format: {url}")


def create_store(url: str, *, key_prefix: str = "jobengine") -> JobStore:
    """Create a job store from a URL."""
    store_type, params = parse_store_url(url)

    if store_type == JobStoreType.REDIS:
        from jobengine.storage.redis_store import RedisJobStore

        return RedisJobStore(
            host=params.get("host", "localhost"),
            port=int(params.get("port", "6379")),
            db=int(params.get("db", "0")),
            password=params.get("password") or None,
            key_prefix=key_prefix,
        )

    from jobengine.storage.memory_store import InMemoryJobStore

    return InMemoryJobStore()
