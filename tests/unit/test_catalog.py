"""
Unit tests for the SQLite version catalog.

Tests cover:
- Canvas registration and lookup filters
- Version allocation and atomic commit
- Idempotent legacy commit
- Soft delete and purge
"""

import tempfile
from pathlib import Path

import pytest

from canvasdb.canvas_sync.catalog import CanvasVersionRecord, VersionCatalog
from canvasdb.canvas_sync.errors import (
    CanvasAlreadyExistsError,
    CanvasNotFoundError,
    CanvasVersionExistsError,
)


class TestVersionCatalog:
    """Tests for VersionCatalog."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    async def catalog(self, data_dir):
        catalog = VersionCatalog(str(Path(data_dir) / "catalog.db"), wal_mode=False)
        await catalog.initialize()
        return catalog

    @pytest.mark.asyncio
    async def test_initialize_is_repeatable(self, catalog):
        await catalog.initialize()
        assert await catalog.get_canvas("missing") is None

    @pytest.mark.asyncio
    async def test_create_without_version(self, catalog):
        record = await catalog.create_canvas("c1", owner_id="u1", legacy_state_key="state/c1")

        assert record.head_version is None
        fetched = await catalog.get_canvas("c1")
        assert fetched.owner_id == "u1"
        assert fetched.legacy_state_key == "state/c1"
        assert fetched.head_version is None

    @pytest.mark.asyncio
    async def test_create_with_initial_version(self, catalog):
        await catalog.create_canvas(
            "c1",
            owner_id="u1",
            initial_version=CanvasVersionRecord("c1", 1, "canvas-state/c1/1", "sha256:x", 1),
        )

        canvas = await catalog.get_canvas("c1")
        assert canvas.head_version == 1
        version = await catalog.get_version("c1", 1)
        assert version.blob_key == "canvas-state/c1/1"
        assert version.content_hash == "sha256:x"

    @pytest.mark.asyncio
    async def test_create_duplicate_fails(self, catalog):
        await catalog.create_canvas("c1", owner_id="u1")
        with pytest.raises(CanvasAlreadyExistsError):
            await catalog.create_canvas("c1", owner_id="u2")

    @pytest.mark.asyncio
    async def test_owner_filter(self, catalog):
        await catalog.create_canvas("c1", owner_id="u1")
        assert await catalog.get_canvas("c1", owner_id="u1") is not None
        assert await catalog.get_canvas("c1", owner_id="u2") is None

    @pytest.mark.asyncio
    async def test_next_version(self, catalog):
        await catalog.create_canvas("c1", owner_id="u1")
        assert await catalog.next_version("c1") == 1

        await catalog.commit_version("c1", 1, "k1")
        await catalog.commit_version("c1", 2, "k2")
        assert await catalog.next_version("c1") == 3

    @pytest.mark.asyncio
    async def test_commit_advances_head(self, catalog):
        await catalog.create_canvas("c1", owner_id="u1")

        inserted = await catalog.commit_version("c1", 1, "k1", content_hash="h1")

        assert inserted is True
        assert (await catalog.get_canvas("c1")).head_version == 1
        versions = await catalog.list_versions("c1")
        assert [(v.version, v.blob_key) for v in versions] == [(1, "k1")]

    @pytest.mark.asyncio
    async def test_commit_existing_version_is_atomic(self, catalog):
        await catalog.create_canvas("c1", owner_id="u1")
        await catalog.commit_version("c1", 1, "k1")
        await catalog.commit_version("c1", 2, "k2")

        with pytest.raises(CanvasVersionExistsError) as exc_info:
            await catalog.commit_version("c1", 1, "other")
        assert exc_info.value.code == "CANVAS_VERSION_EXISTS"

        assert (await catalog.get_canvas("c1")).head_version == 2
        assert (await catalog.get_version("c1", 1)).blob_key == "k1"

    @pytest.mark.asyncio
    async def test_commit_if_absent_first_row_wins(self, catalog):
        await catalog.create_canvas("c1", owner_id="u1", legacy_state_key="legacy")

        assert await catalog.commit_version("c1", 1, "first", if_absent=True) is True
        assert await catalog.commit_version("c1", 1, "second", if_absent=True) is False

        assert (await catalog.get_version("c1", 1)).blob_key == "first"
        assert (await catalog.get_canvas("c1")).head_version == 1

    @pytest.mark.asyncio
    async def test_commit_if_absent_never_moves_head_back(self, catalog):
        await catalog.create_canvas("c1", owner_id="u1")
        await catalog.commit_version("c1", 2, "k2")

        await catalog.commit_version("c1", 1, "k1", if_absent=True)

        assert (await catalog.get_canvas("c1")).head_version == 2

    @pytest.mark.asyncio
    async def test_commit_unknown_canvas(self, catalog):
        with pytest.raises(CanvasNotFoundError):
            await catalog.commit_version("missing", 1, "k1")

    @pytest.mark.asyncio
    async def test_soft_delete_hides_canvas(self, catalog):
        await catalog.create_canvas("c1", owner_id="u1")

        assert await catalog.soft_delete("c1") is True
        assert await catalog.soft_delete("c1") is False

        assert await catalog.get_canvas("c1") is None
        deleted = await catalog.get_canvas("c1", include_deleted=True)
        assert deleted.deleted_at is not None

        with pytest.raises(CanvasNotFoundError):
            await catalog.commit_version("c1", 1, "k1")

    @pytest.mark.asyncio
    async def test_purge_returns_blob_keys(self, catalog):
        await catalog.create_canvas("c1", owner_id="u1")
        await catalog.commit_version("c1", 1, "k1")
        await catalog.commit_version("c1", 2, "k2")
        await catalog.create_canvas("c2", owner_id="u1")
        await catalog.commit_version("c2", 1, "other")

        keys = await catalog.purge("c1")

        assert keys == ["k1", "k2"]
        assert await catalog.get_canvas("c1", include_deleted=True) is None
        assert await catalog.list_versions("c1") == []
        assert len(await catalog.list_versions("c2")) == 1
