"""
Unit tests for the legacy Yjs bridge.

Tests cover:
- Decoding nodes and edges from a Yjs update
- Determinism
- Fallback to an empty state for unreadable documents
"""

import pytest
from pycrdt import Array, Doc, Map

from canvasdb.canvas_sync.legacy import LegacyBridge
from canvasdb.canvas_sync.storage import InMemoryBlobStore


def legacy_update() -> bytes:
    doc = Doc()
    doc["nodes"] = Array(
        [
            Map({"id": "n1", "type": "skill", "title": "first"}),
            Map({"id": "n2", "type": "document", "title": "second"}),
        ]
    )
    doc["edges"] = Array([Map({"id": "e1", "source": "n1", "target": "n2"})])
    return doc.get_update()


class TestLegacyBridge:
    """Tests for LegacyBridge."""

    @pytest.fixture
    async def store(self):
        store = InMemoryBlobStore()
        await store.connect()
        yield store
        await store.close()

    @pytest.fixture
    def bridge(self, store):
        return LegacyBridge(store)

    @pytest.mark.asyncio
    async def test_materialize_reads_arrays(self, store, bridge):
        await store.put("state/c1", legacy_update(), content_type="application/octet-stream")

        state = await bridge.materialize("state/c1")

        assert state.version == 1
        assert state.transactions == []
        assert [n["id"] for n in state.nodes] == ["n1", "n2"]
        assert state.nodes[0]["title"] == "first"
        assert state.edges == [{"id": "e1", "source": "n1", "target": "n2"}]

    @pytest.mark.asyncio
    async def test_materialize_is_deterministic(self, store, bridge):
        await store.put("state/c1", legacy_update())

        first = await bridge.materialize("state/c1")
        second = await bridge.materialize("state/c1")

        assert first.nodes == second.nodes
        assert first.edges == second.edges
        assert first.version == second.version

    @pytest.mark.asyncio
    async def test_missing_document_yields_empty_state(self, bridge):
        state = await bridge.materialize("state/missing")
        assert state.version is None
        assert state.nodes == []

    @pytest.mark.asyncio
    async def test_empty_document_yields_empty_state(self, store, bridge):
        await store.put("state/c1", b"")
        state = await bridge.materialize("state/c1")
        assert state.version is None

    @pytest.mark.asyncio
    async def test_garbage_yields_empty_state(self, store, bridge):
        await store.put("state/c1", b"\xff\xfe not a yjs update")
        state = await bridge.materialize("state/c1")
        assert state.version is None
        assert state.edges == []

    @pytest.mark.asyncio
    async def test_never_writes(self, store, bridge):
        await store.put("state/c1", legacy_update())
        puts_before = store.put_count

        await bridge.materialize("state/c1")

        assert store.put_count == puts_before
