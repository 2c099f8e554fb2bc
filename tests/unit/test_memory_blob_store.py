"""
Unit tests for in-memory blob store.

Tests cover:
- Connection lifecycle
- put/get/remove
- Failure injection helper
"""

import pytest

from canvasdb.canvas_sync.storage import (
    BlobStore,
    BlobStoreConnectionError,
    BlobStoreError,
    InMemoryBlobStore,
)


class TestInMemoryBlobStore:
    """Tests for InMemoryBlobStore."""

    @pytest.fixture
    async def store(self):
        store = InMemoryBlobStore()
        await store.connect()
        yield store
        await store.close()

    def test_implements_protocol(self):
        assert isinstance(InMemoryBlobStore(), BlobStore)

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        store = InMemoryBlobStore()
        with pytest.raises(BlobStoreConnectionError):
            await store.put("k", b"v")
        with pytest.raises(BlobStoreConnectionError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_put_get(self, store):
        await store.put("canvas-state/c1/1", b"{}")
        assert await store.get("canvas-state/c1/1") == b"{}"
        assert store.put_count == 1

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, store):
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_put_overwrites(self, store):
        await store.put("k", b"a")
        await store.put("k", b"b")
        assert await store.get("k") == b"b"

    @pytest.mark.asyncio
    async def test_remove(self, store):
        await store.put("k", b"a")
        await store.remove("k")
        await store.remove("k")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_keys_by_prefix(self, store):
        await store.put("canvas-state/c1/2", b"")
        await store.put("canvas-state/c1/1", b"")
        await store.put("canvas-state/c2/1", b"")
        assert store.keys("canvas-state/c1/") == ["canvas-state/c1/1", "canvas-state/c1/2"]

    @pytest.mark.asyncio
    async def test_fail_next_puts(self, store):
        store.fail_next_puts(1)

        with pytest.raises(BlobStoreError):
            await store.put("k", b"a")

        await store.put("k", b"b")
        assert await store.get("k") == b"b"
