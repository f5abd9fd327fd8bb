"""
Redis-based distributed lock.

Used by the push redelivery sweeper so that only one process re-sends
pending pushes per interval.  Entity transitions never take this lock;
they are guarded by conditional updates in the ledger.

Acquire is ``SET NX EX``; release is an atomic check-and-delete in Lua so
a process whose lock already expired cannot delete a successor's lock.
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    pass


class DistributedLock:
    def __init__(self, client: aioredis.Redis, name: str, ttl_seconds: int = 30):
        self.redis = client
        self.key = f"ridehail:lock:{name}"
        self.ttl = ttl_seconds
        self.token = uuid.uuid4().hex
        self.held = False

    async def acquire(self) -> bool:
        """Try once; never waits.  Returns True when this instance owns the lock."""
        self.held = bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )
        return self.held

    async def release(self) -> None:
        if not self.held:
            return
        await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)
        self.held = False

    async def __aenter__(self):
        if not await self.acquire():
            raise LockNotAcquired(f"Lock {self.key} is held elsewhere")
        return self

    async def __aexit__(self, *exc_info):
        await self.release()
