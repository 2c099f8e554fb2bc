"""
Base protocol and handle type for distributed locks.

A lock provider offers non-blocking, token-checked mutual exclusion keyed by
string. Every lock carries a provider-side TTL so a crashed holder cannot
starve a canvas forever.

Invariants:
    - acquire() never blocks; it returns None when the key is held
    - release() and extend() only act if the caller's token still owns the key
    - A LockHandle releases at most once, however often it is invoked
    - A LockHandle that failed to extend is lost and never writes again

How to change safely:
    - Protocol changes require updating all implementations
    - Keep release token-checked; a blind DEL can free someone else's lock
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import abstractmethod
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from ..errors import LockLostError

if TYPE_CHECKING:
    from ..config import SyncConfig

logger = logging.getLogger(__name__)


class LockError(Exception):
    """Base exception for lock provider operations."""
    pass


class LockConnectionError(LockError):
    """Lock backend is not connected or unreachable."""
    pass


@runtime_checkable
class LockProvider(Protocol):
    """Protocol for lock provider backends."""

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @abstractmethod
    async def acquire(self, key: str, ttl_ms: int) -> Optional[str]:
        """Try to take the lock once.

        Args:
            key: Lock key
            ttl_ms: Expiry of the lock if never released

        Returns:
            Ownership token, or None if the key is currently held
        """
        ...

    @abstractmethod
    async def release(self, key: str, token: str) -> bool:
        """Release the lock if the token still owns it.

        Returns:
            True if the lock was released, False if it was no longer owned
        """
        ...

    @abstractmethod
    async def extend(self, key: str, token: str, ttl_ms: int) -> bool:
        """Reset the TTL of a lock the token still owns.

        Returns:
            True if extended, False if the lock was lost
        """
        ...


class LockHandle:
    """Release handle for an acquired lock.

    The handle is idempotent: release() (or calling the handle) frees the
    lock on the first invocation and is a no-op afterwards. While held, an
    optional background task keeps extending the provider-side TTL.

    Example:
        >>> handle = await coordinator.lock_state("canvas-1")
        >>> async with handle:
        ...     ...  # critical section
    """

    def __init__(
        self,
        provider: LockProvider,
        key: str,
        token: str,
        ttl_ms: int,
        renew_interval_ms: int = 0,
    ) -> None:
        self.provider = provider
        self.key = key
        self.token = token
        self.ttl_ms = ttl_ms
        self.renew_interval_ms = renew_interval_ms
        self._released = False
        self._lost = False
        self._renew_task: asyncio.Task | None = None

    @property
    def released(self) -> bool:
        return self._released

    @property
    def lost(self) -> bool:
        return self._lost

    def start_renewal(self) -> None:
        """Start extending the TTL in the background."""
        if self.renew_interval_ms > 0 and self._renew_task is None:
            self._renew_task = asyncio.create_task(self._renew_loop())

    async def _renew_loop(self) -> None:
        while not self._released:
            await asyncio.sleep(self.renew_interval_ms / 1000)
            if self._released:
                return
            try:
                extended = await self.provider.extend(self.key, self.token, self.ttl_ms)
            except Exception as e:
                self._lost = True
                logger.warning("Failed to renew lock", extra={"lock_key": self.key, "error": str(e)})
                return
            if not extended:
                self._lost = True
                logger.warning("Lock expired before release", extra={"lock_key": self.key})
                return

    async def ensure_held(self) -> None:
        """Confirm the token still owns the key and push its TTL out.

        Call right before a write that must not race the next holder.

        Raises:
            LockLostError: The handle is released, or the key expired or
                was taken over
        """
        if self._released or self._lost:
            raise LockLostError(self.key)
        if not await self.provider.extend(self.key, self.token, self.ttl_ms):
            self._lost = True
            logger.warning("Lock lost before commit", extra={"lock_key": self.key})
            raise LockLostError(self.key)

    async def release(self) -> bool:
        """Release the lock.

        Returns:
            True if this call freed the lock, False if already released or lost
        """
        if self._released:
            return False
        self._released = True

        if self._renew_task is not None:
            self._renew_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._renew_task
            self._renew_task = None

        released = await self.provider.release(self.key, self.token)
        if not released:
            logger.warning("Lock was no longer held at release", extra={"lock_key": self.key})
        return released

    async def __call__(self) -> bool:
        return await self.release()

    async def __aenter__(self) -> LockHandle:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()


def create_lock_provider(config: "SyncConfig") -> LockProvider:
    """Factory function to create a lock provider from configuration.

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import LockBackend
    from .memory import InMemoryLockProvider
    from .redis_lock import RedisLockProvider

    if config.lock_backend == LockBackend.REDIS:
        return RedisLockProvider(config.redis)
    elif config.lock_backend == LockBackend.MEMORY:
        return InMemoryLockProvider()
    else:
        raise ValueError(f"Unsupported lock backend: {config.lock_backend}")
