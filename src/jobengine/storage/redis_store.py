"""Redis-backed job store.

This module provides the durable implementation of the JobStore interface,
enabling job processing across multiple worker processes.

Design notes:
- Every state transition is a Lua script, so it is atomic against other executors
- Claims hand out a lock token; transitions with a stale token are rejected
- Idle executors block on a per-queue notify list (BLPOP) instead of polling
- Terminal sets are scored by a monotonic sequence so pruning is oldest-first

Redis data structures:
- {prefix}:job:{job_id} - Hash with job data (timestamps as epoch milliseconds)
- {prefix}:{queue}:waiting - List (LPUSH on enqueue, RPOP on claim)
- {prefix}:{queue}:active - Sorted set (score = last heartbeat)
- {prefix}:{queue}:delayed - Sorted set (score = next_attempt_at)
- {prefix}:{queue}:completed / failed - Sorted sets (score = terminal sequence)
- {prefix}:{queue}:dead - Hash job_id -> dead-letter snapshot JSON
- {prefix}:{queue}:dead:index - Sorted set (score = dead-lettered at)
- {prefix}:{queue}:notify - List of wake-up tokens for blocked executors
- {prefix}:{queue}:stats - Hash with total_enqueued, pruned, terminal_seq
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from jobengine.domain.enums import JobStatus, QueueName
from jobengine.domain.models import BackoffPolicy, DeadLetterEntry, Job, QueueStats, utcnow
from jobengine.errors import LockLostError, StoreUnavailableError
from jobengine.storage.backend import JobStore

logger = logging.getLogger(__name__)

# Cap on pending wake-up tokens per queue
NOTIFY_MAX = 1000

PRUNE_FUNCTION = """
local function prune(zkey, stats_key, prefix, keep)
    local excess = redis.call('ZCARD', zkey) - keep
    if excess > 0 then
        local old = redis.call('ZRANGE', zkey, 0, excess - 1)
        for _, old_id in ipairs(old) do
            redis.call('DEL', prefix .. old_id)
        end
        redis.call('ZREMRANGEBYRANK', zkey, 0, excess - 1)
        redis.call('HINCRBY', stats_key, 'pruned', excess)
    end
end
"""

# KEYS: waiting, active
# ARGV: job key prefix, now ms, worker id, lock token
CLAIM_SCRIPT = """
local job_id = redis.call('RPOP', KEYS[1])
if not job_id then
    return false
end
local job_key = ARGV[1] .. job_id
redis.call('ZADD', KEYS[2], ARGV[2], job_id)
redis.call('HSET', job_key, 'status', 'active', 'locked_by', ARGV[3], 'lock_token', ARGV[4],
    'heartbeat_at', ARGV[2], 'last_attempt_at', ARGV[2])
return job_id
"""

# KEYS: active
# ARGV: job key prefix, job id, lock token, now ms
HEARTBEAT_SCRIPT = """
local job_key = ARGV[1] .. ARGV[2]
if redis.call('HGET', job_key, 'lock_token') ~= ARGV[3] then
    return 0
end
redis.call('ZADD', KEYS[1], 'XX', ARGV[4], ARGV[2])
redis.call('HSET', job_key, 'heartbeat_at', ARGV[4])
return 1
"""

# KEYS: active, completed, stats
# ARGV: job key prefix, job id, lock token, now ms, result json, keep completed
COMPLETE_SCRIPT = (
    PRUNE_FUNCTION
    + """
local job_key = ARGV[1] .. ARGV[2]
if redis.call('HGET', job_key, 'lock_token') ~= ARGV[3] then
    return -1
end
redis.call('ZREM', KEYS[1], ARGV[2])
local attempts = redis.call('HINCRBY', job_key, 'attempts_made', 1)
redis.call('HSET', job_key, 'status', 'completed', 'completed_at', ARGV[4], 'result', ARGV[5],
    'last_error', '', 'locked_by', '', 'lock_token', '')
local seq = redis.call('HINCRBY', KEYS[3], 'terminal_seq', 1)
redis.call('ZADD', KEYS[2], seq, ARGV[2])
prune(KEYS[2], KEYS[3], ARGV[1], tonumber(ARGV[6]))
return attempts
"""
)

# KEYS: active, delayed
# ARGV: job key prefix, job id, lock token, next attempt ms, error
RETRY_SCRIPT = """
local job_key = ARGV[1] .. ARGV[2]
if redis.call('HGET', job_key, 'lock_token') ~= ARGV[3] then
    return -1
end
redis.call('ZREM', KEYS[1], ARGV[2])
local attempts = redis.call('HINCRBY', job_key, 'attempts_made', 1)
redis.call('HSET', job_key, 'status', 'delayed', 'next_attempt_at', ARGV[4], 'last_error', ARGV[5],
    'locked_by', '', 'lock_token', '')
redis.call('ZADD', KEYS[2], ARGV[4], ARGV[2])
return attempts
"""

# KEYS: active, failed, stats
# ARGV: job key prefix, job id, lock token, now ms, error, keep failed
FAIL_SCRIPT = (
    PRUNE_FUNCTION
    + """
local job_key = ARGV[1] .. ARGV[2]
if redis.call('HGET', job_key, 'lock_token') ~= ARGV[3] then
    return -1
end
redis.call('ZREM', KEYS[1], ARGV[2])
local attempts = redis.call('HINCRBY', job_key, 'attempts_made', 1)
redis.call('HSET', job_key, 'status', 'failed', 'failed_at', ARGV[4], 'last_error', ARGV[5],
    'next_attempt_at', '', 'locked_by', '', 'lock_token', '')
local seq = redis.call('HINCRBY', KEYS[3], 'terminal_seq', 1)
redis.call('ZADD', KEYS[2], seq, ARGV[2])
prune(KEYS[2], KEYS[3], ARGV[1], tonumber(ARGV[6]))
return attempts
"""
)

# KEYS: dead, dead index
# ARGV: job id, now ms, snapshot json, max entries
DEAD_LETTER_SCRIPT = """
redis.call('HSET', KEYS[1], ARGV[1], ARGV[3])
redis.call('ZADD', KEYS[2], ARGV[2], ARGV[1])
local excess = redis.call('ZCARD', KEYS[2]) - tonumber(ARGV[4])
if excess > 0 then
    local old = redis.call('ZRANGE', KEYS[2], 0, excess - 1)
    for _, old_id in ipairs(old) do
        redis.call('HDEL', KEYS[1], old_id)
    end
    redis.call('ZREMRANGEBYRANK', KEYS[2], 0, excess - 1)
end
return 1
"""

# KEYS: delayed, waiting, notify
# ARGV: job key prefix, now ms, batch size, notify cap
PROMOTE_SCRIPT = """
local due = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[2], 'LIMIT', 0, tonumber(ARGV[3]))
for _, job_id in ipairs(due) do
    redis.call('ZREM', KEYS[1], job_id)
    redis.call('HSET', ARGV[1] .. job_id, 'status', 'waiting', 'next_attempt_at', '')
    redis.call('LPUSH', KEYS[2], job_id)
    redis.call('LPUSH', KEYS[3], '1')
end
if #due > 0 then
    redis.call('LTRIM', KEYS[3], 0, tonumber(ARGV[4]) - 1)
end
return #due
"""

# KEYS: active, waiting, failed, stats, notify
# ARGV: job key prefix, job id, stalled-before ms, now ms, error, keep failed, notify cap
# Returns -1 when the job is no longer stalled, 0 when failed, 1 when requeued.
RECLAIM_SCRIPT = (
    PRUNE_FUNCTION
    + """
local score = redis.call('ZSCORE', KEYS[1], ARGV[2])
if not score or tonumber(score) >= tonumber(ARGV[3]) then
    return -1
end
local job_key = ARGV[1] .. ARGV[2]
redis.call('ZREM', KEYS[1], ARGV[2])
local attempts = redis.call('HINCRBY', job_key, 'attempts_made', 1)
local max_attempts = tonumber(redis.call('HGET', job_key, 'max_attempts') or '1')
if attempts >= max_attempts then
    redis.call('HSET', job_key, 'status', 'failed', 'failed_at', ARGV[4], 'last_error', ARGV[5],
        'locked_by', '', 'lock_token', '')
    local seq = redis.call('HINCRBY', KEYS[4], 'terminal_seq', 1)
    redis.call('ZADD', KEYS[3], seq, ARGV[2])
    prune(KEYS[3], KEYS[4], ARGV[1], tonumber(ARGV[6]))
    return 0
end
redis.call('HSET', job_key, 'status', 'waiting', 'locked_by', '', 'lock_token', '')
redis.call('LPUSH', KEYS[2], ARGV[2])
redis.call('LPUSH', KEYS[5], '1')
redis.call('LTRIM', KEYS[5], 0, tonumber(ARGV[7]) - 1)
return 1
"""
)

# KEYS: completed or failed, stats
# ARGV: job key prefix, finished-at field, cutoff ms, batch size
# Scans the oldest entries first; a missing hash or timestamp counts as expired.
CLEAN_SCRIPT = """
local ids = redis.call('ZRANGE', KEYS[1], 0, tonumber(ARGV[4]) - 1)
local cutoff = tonumber(ARGV[3])
local removed = 0
for _, job_id in ipairs(ids) do
    local job_key = ARGV[1] .. job_id
    local finished = tonumber(redis.call('HGET', job_key, ARGV[2]) or '')
    if finished == nil or finished < cutoff then
        redis.call('DEL', job_key)
        redis.call('ZREM', KEYS[1], job_id)
        removed = removed + 1
    end
end
if removed > 0 then
    redis.call('HINCRBY', KEYS[2], 'pruned', removed)
end
return removed
"""

STALL_ERROR = "Job stalled: executor stopped sending heartbeats"

# Hash field holding the terminal timestamp of each cleanable status
_FINISHED_FIELDS = {
    JobStatus.COMPLETED: "completed_at",
    JobStatus.FAILED: "failed_at",
}


def _to_ms(value: datetime | None) -> str:
    """Convert a datetime to epoch milliseconds ("" for None)."""
    if value is None:
        return ""
    return str(int(value.timestamp() * 1000))


def _from_ms(value: str | None) -> datetime | None:
    """Convert epoch milliseconds to an aware datetime."""
    if not value:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=UTC)


class RedisJobStore(JobStore):
    """Redis-backed job store.

    Provides a durable, multi-process store using Redis data structures:
    - Lists for FIFO waiting queues
    - Sorted sets for active/delayed/terminal bookkeeping
    - Lua scripts for atomic transitions
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: str | None = None,
        key_prefix: str = "jobengine",
        client: aioredis.Redis | None = None,
    ) -> None:
        """Initialize the Redis job store.

        Args:
            host: Redis host
            port: Redis port
            db: Redis database number
            password: Optional Redis password
            key_prefix: Namespace for all keys
            client: Pre-built client (tests)
        """
        self._host = host
        self._port = port
        self._db = db
        self._password = password
        self._prefix = key_prefix
        self._redis: aioredis.Redis | None = client
        self._scripts: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    def _get_redis(self) -> aioredis.Redis:
        """Get or create the Redis client and register the Lua scripts."""
        if self._redis is None:
            self._redis = aioredis.Redis(
                host=self._host,
                port=self._port,
                db=self._db,
                password=self._password,
                decode_responses=True,
            )
        if not self._scripts:
            for name, source in (
                ("claim", CLAIM_SCRIPT),
                ("heartbeat", HEARTBEAT_SCRIPT),
                ("complete", COMPLETE_SCRIPT),
                ("retry", RETRY_SCRIPT),
                ("fail", FAIL_SCRIPT),
                ("dead_letter", DEAD_LETTER_SCRIPT),
                ("promote", PROMOTE_SCRIPT),
                ("reclaim", RECLAIM_SCRIPT),
                ("clean", CLEAN_SCRIPT),
            ):
                self._scripts[name] = self._redis.register_script(source)
        return self._redis

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[aioredis.Redis]:
        """Yield the client, translating connection failures."""
        redis = self._get_redis()
        try:
            yield redis
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error("Job store unavailable during %s: %s", operation, e)
            raise StoreUnavailableError(
                f"Job store unavailable during {operation}",
                details={"error": str(e)},
            ) from e

    async def connect(self) -> None:
        async with self._guard("connect") as redis:
            await redis.ping()

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self._scripts = {}

    async def ping(self) -> bool:
        try:
            async with self._guard("ping") as redis:
                return bool(await redis.ping())
        except StoreUnavailableError:
            return False

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @property
    def _job_prefix(self) -> str:
        return f"{self._prefix}:job:"

    def _job_key(self, job_id: str) -> str:
        return f"{self._job_prefix}{job_id}"

    def _key(self, queue_name: QueueName, suffix: str) -> str:
        return f"{self._prefix}:{queue_name.value}:{suffix}"

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def add(self, job: Job) -> Job:
        stored = job.model_copy(deep=True)
        stored.status = JobStatus.DELAYED if stored.next_attempt_at else JobStatus.WAITING
        queue = stored.queue_name

        async with self._guard("enqueue") as redis:
            async with redis.pipeline(transaction=True) as pipe:
                pipe.hset(self._job_key(stored.id), mapping=self._job_to_dict(stored))
                if stored.status == JobStatus.DELAYED:
                    due_ms = int(_to_ms(stored.next_attempt_at))
                    pipe.zadd(self._key(queue, "delayed"), {stored.id: due_ms})
                else:
                    pipe.lpush(self._key(queue, "waiting"), stored.id)
                    pipe.lpush(self._key(queue, "notify"), "1")
                    pipe.ltrim(self._key(queue, "notify"), 0, NOTIFY_MAX - 1)
                pipe.hincrby(self._key(queue, "stats"), "total_enqueued", 1)
                await pipe.execute()

        return stored

    async def _claim(
        self, redis: aioredis.Redis, queue_name: QueueName, worker_id: str
    ) -> Job | None:
        job_id = await self._scripts["claim"](
            keys=[self._key(queue_name, "waiting"), self._key(queue_name, "active")],
            args=[self._job_prefix, _to_ms(utcnow()), worker_id, uuid.uuid4().hex],
        )
        if not job_id:
            return None
        return await self._get(redis, job_id)

    async def claim_next(
        self,
        queue_name: QueueName,
        *,
        worker_id: str,
        timeout_seconds: float,
    ) -> Job | None:
        async with self._guard("claim") as redis:
            job = await self._claim(redis, queue_name, worker_id)
            if job is not None:
                # Consume the wake-up token pushed with this job
                await redis.lpop(self._key(queue_name, "notify"))
                return job
            # Suspend until a producer (or the scheduler) pushes a wake-up token
            await redis.blpop([self._key(queue_name, "notify")], timeout=timeout_seconds)
            return await self._claim(redis, queue_name, worker_id)

    async def heartbeat(self, job_id: str, *, lock_token: str) -> bool:
        async with self._guard("heartbeat") as redis:
            job = await self._get(redis, job_id)
            if job is None:
                return False
            ok = await self._scripts["heartbeat"](
                keys=[self._key(job.queue_name, "active")],
                args=[self._job_prefix, job_id, lock_token, _to_ms(utcnow())],
            )
            return bool(ok)

    async def _owned_job(self, redis: aioredis.Redis, job_id: str, lock_token: str) -> Job:
        job = await self._get(redis, job_id)
        if job is None or job.lock_token != lock_token:
            raise LockLostError(
                f"Job {job_id} is no longer owned by this executor",
                details={"job_id": job_id},
            )
        return job

    async def complete(
        self,
        job_id: str,
        *,
        lock_token: str,
        result: dict[str, Any] | None,
        keep_completed: int,
    ) -> Job:
        now = utcnow()
        async with self._guard("complete") as redis:
            job = await self._owned_job(redis, job_id, lock_token)
            attempts = await self._scripts["complete"](
                keys=[
                    self._key(job.queue_name, "active"),
                    self._key(job.queue_name, "completed"),
                    self._key(job.queue_name, "stats"),
                ],
                args=[
                    self._job_prefix,
                    job_id,
                    lock_token,
                    _to_ms(now),
                    json.dumps(result) if result is not None else "",
                    keep_completed,
                ],
            )
        if int(attempts) < 0:
            raise LockLostError(f"Job {job_id} is no longer owned by this executor")
        return job.model_copy(
            update={
                "status": JobStatus.COMPLETED,
                "attempts_made": int(attempts),
                "completed_at": now,
                "result": result,
                "last_error": None,
                "locked_by": None,
                "lock_token": None,
            }
        )

    async def retry_later(
        self,
        job_id: str,
        *,
        lock_token: str,
        error: str,
        next_attempt_at: datetime,
    ) -> Job:
        async with self._guard("retry") as redis:
            job = await self._owned_job(redis, job_id, lock_token)
            attempts = await self._scripts["retry"](
                keys=[
                    self._key(job.queue_name, "active"),
                    self._key(job.queue_name, "delayed"),
                ],
                args=[self._job_prefix, job_id, lock_token, _to_ms(next_attempt_at), error],
            )
        if int(attempts) < 0:
            raise LockLostError(f"Job {job_id} is no longer owned by this executor")
        return job.model_copy(
            update={
                "status": JobStatus.DELAYED,
                "attempts_made": int(attempts),
                "next_attempt_at": next_attempt_at,
                "last_error": error,
                "locked_by": None,
                "lock_token": None,
            }
        )

    async def fail(
        self,
        job_id: str,
        *,
        lock_token: str,
        error: str,
        keep_failed: int,
        dead_letter_max: int,
    ) -> Job:
        now = utcnow()
        async with self._guard("fail") as redis:
            job = await self._owned_job(redis, job_id, lock_token)
            attempts = await self._scripts["fail"](
                keys=[
                    self._key(job.queue_name, "active"),
                    self._key(job.queue_name, "failed"),
                    self._key(job.queue_name, "stats"),
                ],
                args=[self._job_prefix, job_id, lock_token, _to_ms(now), error, keep_failed],
            )
            if int(attempts) < 0:
                raise LockLostError(f"Job {job_id} is no longer owned by this executor")
            failed = self._failed_copy(job, error, now, int(attempts))
            await self._dead_letter(failed, dead_letter_max)
        return failed

    def _failed_copy(self, job: Job, error: str, now: datetime, attempts: int) -> Job:
        return job.model_copy(
            update={
                "status": JobStatus.FAILED,
                "attempts_made": attempts,
                "failed_at": now,
                "last_error": error,
                "next_attempt_at": None,
                "locked_by": None,
                "lock_token": None,
            }
        )

    async def _dead_letter(self, job: Job, dead_letter_max: int) -> None:
        if dead_letter_max <= 0:
            return
        entry = DeadLetterEntry(job=job)
        await self._scripts["dead_letter"](
            keys=[self._key(job.queue_name, "dead"), self._key(job.queue_name, "dead:index")],
            args=[job.id, _to_ms(entry.dead_lettered_at), entry.model_dump_json(), dead_letter_max],
        )

    async def promote_delayed(self, queue_name: QueueName, *, now: datetime) -> int:
        async with self._guard("promote"):
            promoted = await self._scripts["promote"](
                keys=[
                    self._key(queue_name, "delayed"),
                    self._key(queue_name, "waiting"),
                    self._key(queue_name, "notify"),
                ],
                args=[self._job_prefix, _to_ms(now), 100, NOTIFY_MAX],
            )
        return int(promoted)

    async def reclaim_stalled(
        self,
        queue_name: QueueName,
        *,
        stalled_before: datetime,
        keep_failed: int,
        dead_letter_max: int,
    ) -> list[Job]:
        cutoff = _to_ms(stalled_before)
        recovered: list[Job] = []
        async with self._guard("reclaim") as redis:
            candidates = await redis.zrangebyscore(
                self._key(queue_name, "active"), "-inf", f"({cutoff}", start=0, num=100
            )
            for job_id in candidates:
                job = await self._get(redis, job_id)
                if job is None:
                    await redis.zrem(self._key(queue_name, "active"), job_id)
                    continue
                now = utcnow()
                outcome = await self._scripts["reclaim"](
                    keys=[
                        self._key(queue_name, "active"),
                        self._key(queue_name, "waiting"),
                        self._key(queue_name, "failed"),
                        self._key(queue_name, "stats"),
                        self._key(queue_name, "notify"),
                    ],
                    args=[
                        self._job_prefix,
                        job_id,
                        cutoff,
                        _to_ms(now),
                        STALL_ERROR,
                        keep_failed,
                        NOTIFY_MAX,
                    ],
                )
                outcome = int(outcome)
                if outcome < 0:
                    continue
                if outcome == 0:
                    failed = self._failed_copy(job, STALL_ERROR, now, job.attempts_made + 1)
                    await self._dead_letter(failed, dead_letter_max)
                    recovered.append(failed)
                else:
                    recovered.append(
                        job.model_copy(
                            update={
                                "status": JobStatus.WAITING,
                                "attempts_made": job.attempts_made + 1,
                                "locked_by": None,
                                "lock_token": None,
                            }
                        )
                    )
        return recovered

    async def clean(
        self,
        queue_name: QueueName,
        status: JobStatus,
        *,
        older_than: datetime,
        limit: int = 1000,
    ) -> int:
        finished_field = _FINISHED_FIELDS.get(status)
        if finished_field is None:
            raise ValueError(f"Only terminal jobs can be cleaned, got '{status.value}'")
        async with self._guard("clean"):
            removed = await self._scripts["clean"](
                keys=[self._key(queue_name, status.value), self._key(queue_name, "stats")],
                args=[self._job_prefix, finished_field, _to_ms(older_than), limit],
            )
        return int(removed)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _get(self, redis: aioredis.Redis, job_id: str) -> Job | None:
        data = await redis.hgetall(self._job_key(job_id))
        if not data:
            return None
        return self._dict_to_job(data)

    async def get(self, job_id: str) -> Job | None:
        async with self._guard("get") as redis:
            return await self._get(redis, job_id)

    async def list_jobs(
        self,
        queue_name: QueueName,
        status: JobStatus,
        *,
        limit: int = 100,
    ) -> list[Job]:
        async with self._guard("list") as redis:
            if status == JobStatus.WAITING:
                # Oldest entries sit at the tail of the list
                tail = await redis.lrange(self._key(queue_name, "waiting"), -limit, -1)
                ids = list(reversed(tail))
            else:
                ids = await redis.zrange(self._key(queue_name, status.value), 0, limit - 1)
            async with redis.pipeline(transaction=False) as pipe:
                for job_id in ids:
                    pipe.hgetall(self._job_key(job_id))
                rows = await pipe.execute()
        return [self._dict_to_job(row) for row in rows if row]

    async def count(self, queue_name: QueueName) -> QueueStats:
        async with self._guard("count") as redis:
            async with redis.pipeline(transaction=False) as pipe:
                pipe.llen(self._key(queue_name, "waiting"))
                pipe.zcard(self._key(queue_name, "active"))
                pipe.zcard(self._key(queue_name, "completed"))
                pipe.zcard(self._key(queue_name, "failed"))
                pipe.zcard(self._key(queue_name, "delayed"))
                pipe.zcard(self._key(queue_name, "dead:index"))
                pipe.hmget(self._key(queue_name, "stats"), ["total_enqueued", "pruned"])
                waiting, active, completed, failed, delayed, dead, counters = await pipe.execute()

        total_enqueued, pruned = counters
        return QueueStats(
            waiting=waiting,
            active=active,
            completed=completed,
            failed=failed,
            delayed=delayed,
            dead_letter=dead,
            total_enqueued=int(total_enqueued or 0),
            pruned=int(pruned or 0),
        )

    async def list_dead_letters(
        self,
        queue_name: QueueName,
        *,
        limit: int = 100,
    ) -> list[DeadLetterEntry]:
        async with self._guard("list_dead_letters") as redis:
            ids = await redis.zrevrange(self._key(queue_name, "dead:index"), 0, limit - 1)
            if not ids:
                return []
            raw = await redis.hmget(self._key(queue_name, "dead"), ids)
        return [DeadLetterEntry.model_validate_json(item) for item in raw if item]

    async def pop_dead_letter(self, queue_name: QueueName, job_id: str) -> DeadLetterEntry | None:
        async with self._guard("pop_dead_letter") as redis:
            async with redis.pipeline(transaction=True) as pipe:
                pipe.hget(self._key(queue_name, "dead"), job_id)
                pipe.hdel(self._key(queue_name, "dead"), job_id)
                pipe.zrem(self._key(queue_name, "dead:index"), job_id)
                raw, _, _ = await pipe.execute()
        if not raw:
            return None
        return DeadLetterEntry.model_validate_json(raw)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _job_to_dict(self, job: Job) -> dict[str, str]:
        """Convert a Job model to a Redis hash."""
        return {
            "id": job.id,
            "queue_name": job.queue_name.value,
            "job_type": job.job_type,
            "payload": json.dumps(job.payload),
            "status": job.status.value,
            "attempts_made": str(job.attempts_made),
            "max_attempts": str(job.max_attempts),
            "backoff": job.backoff.model_dump_json(),
            "created_at": _to_ms(job.created_at),
            "last_attempt_at": _to_ms(job.last_attempt_at),
            "next_attempt_at": _to_ms(job.next_attempt_at),
            "heartbeat_at": _to_ms(job.heartbeat_at),
            "completed_at": _to_ms(job.completed_at),
            "failed_at": _to_ms(job.failed_at),
            "locked_by": job.locked_by or "",
            "lock_token": job.lock_token or "",
            "result": json.dumps(job.result) if job.result is not None else "",
            "last_error": job.last_error or "",
        }

    def _dict_to_job(self, data: dict[str, str]) -> Job:
        """Convert a Redis hash to a Job model."""
        return Job(
            id=data["id"],
            queue_name=QueueName(data["queue_name"]),
            job_type=data["job_type"],
            payload=json.loads(data.get("payload") or "{}"),
            status=JobStatus(data["status"]),
            attempts_made=int(data.get("attempts_made") or "0"),
            max_attempts=int(data.get("max_attempts") or "1"),
            backoff=BackoffPolicy.model_validate_json(data["backoff"])
            if data.get("backoff")
            else BackoffPolicy(),
            created_at=_from_ms(data.get("created_at")) or utcnow(),
            last_attempt_at=_from_ms(data.get("last_attempt_at")),
            next_attempt_at=_from_ms(data.get("next_attempt_at")),
            heartbeat_at=_from_ms(data.get("heartbeat_at")),
            completed_at=_from_ms(data.get("completed_at")),
            failed_at=_from_ms(data.get("failed_at")),
            locked_by=data.get("locked_by") or None,
            lock_token=data.get("lock_token") or None,
            result=json.loads(data["result"]) if data.get("result") else None,
            last_error=data.get("last_error") or None,
        )
