"""
Redis-backed lock provider.

Locks are plain keys set with NX and a millisecond expiry; the value is a
random ownership token. Release and extend run as Lua scripts so the
ownership check and the write happen atomically on the server.

Invariants:
    - SET NX PX: a lock always has a TTL
    - Release/extend compare the token before touching the key

How to change safely:
    - Keep the scripts' KEYS/ARGV layout; running processes share them
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Optional

import redis.asyncio as aioredis

from .base import LockConnectionError

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

_EXTEND_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class RedisLockProvider:
    """Distributed lock provider on a single Redis instance.

    Attributes:
        redis_config: Redis configuration (RedisConfig)

    Example:
        >>> locks = RedisLockProvider(redis_config)
        >>> await locks.connect()
        >>> token = await locks.acquire("canvas-sync:c1", ttl_ms=10_000)
    """

    def __init__(self, redis_config: Any) -> None:
        self.redis_config = redis_config
        self._client: aioredis.Redis | None = None

    async def connect(self) -> None:
        """Create the client and verify connectivity."""
        self._client = aioredis.Redis(
            host=self.redis_config.host,
            port=self.redis_config.port,
            username=self.redis_config.username,
            password=self.redis_config.password,
            db=self.redis_config.db,
        )
        await self._client.ping()
        logger.info(
            "Redis lock provider connected",
            extra={"host": self.redis_config.host, "port": self.redis_config.port},
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _redis(self) -> aioredis.Redis:
        if self._client is None:
            raise LockConnectionError("Redis lock provider not connected")
        return self._client

    async def acquire(self, key: str, ttl_ms: int) -> Optional[str]:
        token = f"{os.getpid()}-{uuid.uuid4().hex}"
        acquired = await self._redis().set(key, token, nx=True, px=ttl_ms)
        return token if acquired else None

    async def release(self, key: str, token: str) -> bool:
        result = await self._redis().eval(_RELEASE_SCRIPT, 1, key, token)
        return result == 1

    async def extend(self, key: str, token: str, ttl_ms: int) -> bool:
        result = await self._redis().eval(_EXTEND_SCRIPT, 1, key, token, ttl_ms)
        return result == 1
