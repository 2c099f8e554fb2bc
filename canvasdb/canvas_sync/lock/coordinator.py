"""
Per-canvas lock coordination with bounded exponential backoff.

Invariants:
    - Lock key is "<prefix>:<canvas_id>"; canvases never contend with each other
    - One immediate attempt, then at most max_retries retries
    - Sleep before retry n is initial_delay * 2**(n-1)
    - Exhausting retries raises OperationTooFrequentError
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from ..errors import OperationTooFrequentError
from .base import LockHandle, LockProvider

logger = logging.getLogger(__name__)


class LockCoordinator:
    """Acquires per-canvas locks from a LockProvider.

    Attributes:
        provider: Lock backend
        ttl_ms: Provider-side lock expiry
        renew_interval_ms: TTL renewal period while held (0 disables)
        max_retries: Default retry budget
        initial_delay_ms: Default first backoff delay
        key_prefix: Lock key prefix

    Example:
        >>> coordinator = LockCoordinator(InMemoryLockProvider())
        >>> release = await coordinator.lock_state("canvas-1")
        >>> try:
        ...     ...
        ... finally:
        ...     await release()
    """

    def __init__(
        self,
        provider: LockProvider,
        ttl_ms: int = 10_000,
        renew_interval_ms: int = 3_000,
        max_retries: int = 3,
        initial_delay_ms: int = 100,
        key_prefix: str = "canvas-sync",
    ) -> None:
        self.provider = provider
        self.ttl_ms = ttl_ms
        self.renew_interval_ms = renew_interval_ms
        self.max_retries = max_retries
        self.initial_delay_ms = initial_delay_ms
        self.key_prefix = key_prefix

    def lock_key(self, canvas_id: str) -> str:
        return f"{self.key_prefix}:{canvas_id}"

    async def lock_state(
        self,
        canvas_id: str,
        max_retries: int | None = None,
        initial_delay_ms: int | None = None,
    ) -> LockHandle:
        """Acquire the lock for a canvas.

        Args:
            canvas_id: Canvas identifier
            max_retries: Retries after the first attempt (default from config)
            initial_delay_ms: First backoff delay (default from config)

        Returns:
            A LockHandle that must be released

        Raises:
            OperationTooFrequentError: If the lock is still held after all retries
        """
        max_retries = self.max_retries if max_retries is None else max_retries
        delay_ms = self.initial_delay_ms if initial_delay_ms is None else initial_delay_ms
        key = self.lock_key(canvas_id)
        retries = 0

        while True:
            token = await self.provider.acquire(key, self.ttl_ms)
            if token is not None:
                handle = LockHandle(
                    self.provider,
                    key,
                    token,
                    ttl_ms=self.ttl_ms,
                    renew_interval_ms=self.renew_interval_ms,
                )
                handle.start_renewal()
                return handle

            if retries >= max_retries:
                logger.warning(
                    "Lock contention exceeded retry budget",
                    extra={"canvas_id": canvas_id, "attempts": retries + 1},
                )
                raise OperationTooFrequentError(canvas_id, attempts=retries + 1)

            logger.debug(
                "Canvas lock busy, backing off",
                extra={"canvas_id": canvas_id, "delay_ms": delay_ms, "retry": retries + 1},
            )
            await asyncio.sleep(delay_ms / 1000)
            delay_ms *= 2
            retries += 1

    @asynccontextmanager
    async def locked(self, canvas_id: str) -> AsyncIterator[LockHandle]:
        """Hold the canvas lock for the duration of the block."""
        handle = await self.lock_state(canvas_id)
        try:
            yield handle
        finally:
            await handle.release()
