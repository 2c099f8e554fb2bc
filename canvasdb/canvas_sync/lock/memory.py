"""
In-memory lock provider for testing and single-process deployments.

Invariants:
    - Locks are process-local; they do not coordinate across processes
    - Expired locks are treated as free
    - Provides the same token-checked semantics as the Redis provider
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class InMemoryLockProvider:
    """In-memory implementation of LockProvider.

    Example:
        >>> locks = InMemoryLockProvider()
        >>> token = await locks.acquire("canvas-sync:c1", ttl_ms=10_000)
        >>> await locks.acquire("canvas-sync:c1", ttl_ms=10_000) is None
        True
        >>> await locks.release("canvas-sync:c1", token)
        True
    """

    def __init__(self) -> None:
        self._locks: Dict[str, Tuple[str, float]] = {}
        self._lock = asyncio.Lock()
        self.acquire_attempts = 0

    async def connect(self) -> None:
        logger.debug("InMemoryLockProvider connected")

    async def close(self) -> None:
        self._locks.clear()

    def _held(self, key: str) -> Optional[str]:
        entry = self._locks.get(key)
        if entry is None:
            return None
        token, expires_at = entry
        if expires_at <= time.monotonic():
            del self._locks[key]
            return None
        return token

    async def acquire(self, key: str, ttl_ms: int) -> Optional[str]:
        async with self._lock:
            self.acquire_attempts += 1
            if self._held(key) is not None:
                return None
            token = uuid.uuid4().hex
            self._locks[key] = (token, time.monotonic() + ttl_ms / 1000)
            return token

    async def release(self, key: str, token: str) -> bool:
        async with self._lock:
            if self._held(key) != token:
                return False
            del self._locks[key]
            return True

    async def extend(self, key: str, token: str, ttl_ms: int) -> bool:
        async with self._lock:
            if self._held(key) != token:
                return False
            self._locks[key] = (token, time.monotonic() + ttl_ms / 1000)
            return True

    # Testing helpers

    def is_locked(self, key: str) -> bool:
        return self._held(key) is not None

    def expire(self, key: str) -> None:
        """Force a held lock to expire immediately."""
        self._locks.pop(key, None)
