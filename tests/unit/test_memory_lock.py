"""
Unit tests for in-memory lock provider and lock handles.

Tests cover:
- Mutual exclusion and token-checked release
- TTL expiry and extension
- LockHandle idempotency, renewal and loss detection
"""

import asyncio

import pytest

from canvasdb.canvas_sync.errors import LockLostError
from canvasdb.canvas_sync.lock import InMemoryLockProvider, LockHandle


class TestInMemoryLockProvider:
    """Tests for InMemoryLockProvider."""

    @pytest.fixture
    def locks(self):
        return InMemoryLockProvider()

    @pytest.mark.asyncio
    async def test_acquire_is_exclusive(self, locks):
        token = await locks.acquire("k", ttl_ms=10_000)
        assert token is not None
        assert await locks.acquire("k", ttl_ms=10_000) is None
        assert await locks.acquire("other", ttl_ms=10_000) is not None

    @pytest.mark.asyncio
    async def test_release_requires_token(self, locks):
        token = await locks.acquire("k", ttl_ms=10_000)

        assert await locks.release("k", "not-the-token") is False
        assert locks.is_locked("k")

        assert await locks.release("k", token) is True
        assert not locks.is_locked("k")

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, locks):
        await locks.acquire("k", ttl_ms=20)
        await asyncio.sleep(0.05)

        assert not locks.is_locked("k")
        assert await locks.acquire("k", ttl_ms=10_000) is not None

    @pytest.mark.asyncio
    async def test_stale_token_cannot_release_new_holder(self, locks):
        old = await locks.acquire("k", ttl_ms=10_000)
        locks.expire("k")
        new = await locks.acquire("k", ttl_ms=10_000)

        assert await locks.release("k", old) is False
        assert await locks.extend("k", old, 10_000) is False
        assert await locks.release("k", new) is True

    @pytest.mark.asyncio
    async def test_extend_keeps_lock(self, locks):
        token = await locks.acquire("k", ttl_ms=50)
        await asyncio.sleep(0.03)
        assert await locks.extend("k", token, 100) is True
        await asyncio.sleep(0.03)
        assert locks.is_locked("k")


class TestLockHandle:
    """Tests for LockHandle."""

    @pytest.fixture
    def locks(self):
        return InMemoryLockProvider()

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, locks):
        token = await locks.acquire("k", ttl_ms=10_000)
        handle = LockHandle(locks, "k", token, ttl_ms=10_000)

        assert await handle() is True
        assert await handle.release() is False
        assert handle.released
        assert not locks.is_locked("k")

    @pytest.mark.asyncio
    async def test_context_manager_releases(self, locks):
        token = await locks.acquire("k", ttl_ms=10_000)

        with pytest.raises(RuntimeError):
            async with LockHandle(locks, "k", token, ttl_ms=10_000):
                raise RuntimeError("boom")

        assert not locks.is_locked("k")

    @pytest.mark.asyncio
    async def test_renewal_outlives_ttl(self, locks):
        token = await locks.acquire("k", ttl_ms=60)
        handle = LockHandle(locks, "k", token, ttl_ms=60, renew_interval_ms=20)
        handle.start_renewal()

        await asyncio.sleep(0.15)
        assert locks.is_locked("k")

        await handle.release()
        assert not locks.is_locked("k")

    @pytest.mark.asyncio
    async def test_ensure_held_extends_owned_lock(self, locks):
        token = await locks.acquire("k", ttl_ms=10_000)
        handle = LockHandle(locks, "k", token, ttl_ms=10_000)

        await handle.ensure_held()

        assert not handle.lost
        assert locks.is_locked("k")

    @pytest.mark.asyncio
    async def test_ensure_held_after_takeover(self, locks):
        token = await locks.acquire("k", ttl_ms=10_000)
        handle = LockHandle(locks, "k", token, ttl_ms=10_000)
        locks.expire("k")
        other = await locks.acquire("k", ttl_ms=10_000)

        with pytest.raises(LockLostError) as exc_info:
            await handle.ensure_held()

        assert exc_info.value.code == "LOCK_LOST"
        assert handle.lost
        assert await locks.release("k", other) is True

    @pytest.mark.asyncio
    async def test_ensure_held_after_release(self, locks):
        token = await locks.acquire("k", ttl_ms=10_000)
        handle = LockHandle(locks, "k", token, ttl_ms=10_000)
        await handle.release()

        with pytest.raises(LockLostError):
            await handle.ensure_held()

    @pytest.mark.asyncio
    async def test_failed_renewal_marks_lost(self, locks):
        token = await locks.acquire("k", ttl_ms=10_000)
        handle = LockHandle(locks, "k", token, ttl_ms=10_000, renew_interval_ms=10)
        handle.start_renewal()
        locks.expire("k")

        await asyncio.sleep(0.05)

        assert handle.lost
        with pytest.raises(LockLostError):
            await handle.ensure_held()
        await handle.release()
