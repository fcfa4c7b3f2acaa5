"""
Redis Job Store
===============
Redis-backed job store using a sorted set scored by due time and Lua scripts
for atomic claims.

Keys (for ``queue_key = "email:provisioning:retry"``):
    email:provisioning:retry                 ZSET logical_key -> execute_at
    email:provisioning:retry:jobs            HASH logical_key -> job json
    email:provisioning:retry:inflight        ZSET logical_key -> lease expiry
    email:provisioning:retry:inflight:jobs   HASH logical_key -> job json
"""

from typing import Dict, List, Optional, Tuple, Union

import structlog
from redis.exceptions import NoScriptError, RedisError

from ..exceptions import StoreError
from ..models import ClaimedBatch, RetryJob
from .base import JobStore, decode_claimed

logger = structlog.get_logger(__name__)

DEFAULT_QUEUE_KEY = "email:provisioning:retry"

# Upsert keyed by logical_key: replaces any pending job for the same key
ENQUEUE_SCRIPT = """
redis.call('HSET', KEYS[2], ARGV[1], ARGV[3])
redis.call('ZADD', KEYS[1], ARGV[2], ARGV[1])
return 1
"""

# Pop up to ARGV[2] members with score <= ARGV[1]; lease them when ARGV[3] > 0
CLAIM_DUE_SCRIPT = """
local pending = KEYS[1]
local jobs = KEYS[2]
local inflight = KEYS[3]
local inflight_jobs = KEYS[4]
local now = tonumber(ARGV[1])
local limit = tonumber(ARGV[2])
local lease_until = tonumber(ARGV[3])

local keys = redis.call('ZRANGEBYSCORE', pending, '-inf', now, 'LIMIT', 0, limit)
local claimed = {}

for _, key in ipairs(keys) do
    local job = redis.call('HGET', jobs, key)
    redis.call('ZREM', pending, key)
    redis.call('HDEL', jobs, key)
    if job and lease_until > 0 then
        redis.call('ZADD', inflight, lease_until, key)
        redis.call('HSET', inflight_jobs, key, job)
    end
    claimed[#claimed + 1] = key
    claimed[#claimed + 1] = job or ''
end

return claimed
"""

# Release a lease only while it still holds the job being acked
ACK_SCRIPT = """
if redis.call('HGET', KEYS[2], ARGV[1]) ~= ARGV[2] then
    return 0
end
redis.call('ZREM', KEYS[1], ARGV[1])
redis.call('HDEL', KEYS[2], ARGV[1])
return 1
"""

# Expired leases go back to pending unless a newer job exists for the key
REQUEUE_EXPIRED_SCRIPT = """
local pending = KEYS[1]
local jobs = KEYS[2]
local inflight = KEYS[3]
local inflight_jobs = KEYS[4]
local now = tonumber(ARGV[1])

local keys = redis.call('ZRANGEBYSCORE', inflight, '-inf', now)
local restored = 0

for _, key in ipairs(keys) do
    local job = redis.call('HGET', inflight_jobs, key)
    redis.call('ZREM', inflight, key)
    redis.call('HDEL', inflight_jobs, key)
    if job and redis.call('HEXISTS', jobs, key) == 0 then
        redis.call('HSET', jobs, key, job)
        redis.call('ZADD', pending, now, key)
        restored = restored + 1
    end
end

return restored
"""

_SCRIPTS = {
    "enqueue": ENQUEUE_SCRIPT,
    "claim_due": CLAIM_DUE_SCRIPT,
    "ack": ACK_SCRIPT,
    "requeue_expired": REQUEUE_EXPIRED_SCRIPT,
}


def _text(value: Union[bytes, str, None]) -> Optional[str]:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class RedisJobStore(JobStore):
    """
    Redis-backed job store.

    Every mutation runs as a single Lua script, so a claim is exclusive
    across any number of worker processes sharing the same Redis.
    """

    def __init__(self, redis_client, queue_key: str = DEFAULT_QUEUE_KEY):
        """
        Args:
            redis_client: Async Redis client (redis.asyncio.Redis)
            queue_key: Prefix for the sorted set and hash keys
        """
        self.redis = redis_client
        self.queue_key = queue_key
        self.jobs_key = f"{queue_key}:jobs"
        self.inflight_key = f"{queue_key}:inflight"
        self.inflight_jobs_key = f"{queue_key}:inflight:jobs"
        self._script_shas: Dict[str, str] = {}

    @property
    def _all_keys(self) -> List[str]:
        return [self.queue_key, self.jobs_key, self.inflight_key, self.inflight_jobs_key]

    async def _ensure_script(self, name: str) -> str:
        """Load Lua script into Redis if needed."""
        if name not in self._script_shas:
            self._script_shas[name] = _text(await self.redis.script_load(_SCRIPTS[name]))
        return self._script_shas[name]

    async def _run(self, name: str, keys: List[str], *args):
        try:
            sha = await self._ensure_script(name)
            try:
                return await self.redis.evalsha(sha, len(keys), *keys, *args)
            except NoScriptError:
                # Script cache flushed (e.g. Redis restart); load again once
                self._script_shas.pop(name, None)
                sha = await self._ensure_script(name)
                return await self.redis.evalsha(sha, len(keys), *keys, *args)
        except RedisError as e:
            logger.error("redis_store_error", operation=name, error=str(e))
            raise StoreError(f"Redis {name} failed: {e}", last_exception=e)

    async def add(self, job: RetryJob) -> None:
        await self._run(
            "enqueue",
            [self.queue_key, self.jobs_key],
            job.logical_key,
            job.execute_at,
            job.to_json(),
        )

    async def claim_due(
        self,
        now: int,
        limit: int,
        lease_seconds: int = 0,
    ) -> ClaimedBatch:
        lease_until = now + lease_seconds if lease_seconds > 0 else 0
        flat = await self._run("claim_due", self._all_keys, now, limit, lease_until)

        # Bodies stay undecoded here; decode_claimed handles each one
        flat = list(flat or [])
        entries = [(_text(key), body) for key, body in zip(flat[0::2], flat[1::2])]
        return decode_claimed(entries)

    async def ack(self, job: RetryJob) -> None:
        await self._run(
            "ack",
            [self.inflight_key, self.inflight_jobs_key],
            job.logical_key,
            job.to_json(),
        )

    async def requeue_expired(self, now: int) -> int:
        restored = await self._run("requeue_expired", self._all_keys, now)
        return int(restored or 0)

    async def size(self) -> int:
        try:
            return int(await self.redis.zcard(self.queue_key))
        except RedisError as e:
            raise StoreError(f"Redis size failed: {e}", last_exception=e)

    async def in_flight(self) -> int:
        try:
            return int(await self.redis.zcard(self.inflight_key))
        except RedisError as e:
            raise StoreError(f"Redis in_flight failed: {e}", last_exception=e)

    async def peek(self, limit: int = 10) -> List[Tuple[RetryJob, int]]:
        try:
            members = await self.redis.zrange(self.queue_key, 0, limit - 1, withscores=True)
            if not members:
                return []
            keys = [_text(member) for member, _ in members]
            bodies = await self.redis.hmget(self.jobs_key, keys)
        except RedisError as e:
            raise StoreError(f"Redis peek failed: {e}", last_exception=e)

        scores = {_text(member): int(score) for member, score in members}
        batch = decode_claimed(zip(keys, bodies))
        return [(job, scores[job.logical_key]) for job in batch.jobs]

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.error("Redis health check failed", error=str(e))
            return False
