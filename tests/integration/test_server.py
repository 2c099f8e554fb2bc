"""
Integration tests for service wiring and the admin CLI.

Uses the in-memory blob store and lock provider with a temporary SQLite
catalog, configured through the environment like a real deployment.
"""

import asyncio
import json
import logging
import tempfile
from pathlib import Path

import pytest

from canvasdb.canvas_sync.catalog import VersionCatalog
from canvasdb.canvas_sync.config import (
    BlobBackend,
    CatalogConfig,
    LockBackend,
    ObservabilityConfig,
    SyncConfig,
)
from canvasdb.canvas_sync.main import CanvasSyncServer, setup_logging
from canvasdb.canvas_sync.state import AddDiff, Transaction
from canvasdb.canvas_sync.tools import canvas_admin


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def config(data_dir):
    return SyncConfig(
        blob_backend=BlobBackend.MEMORY,
        lock_backend=LockBackend.MEMORY,
        catalog=CatalogConfig(path=str(Path(data_dir) / "catalog.db")),
        observability=ObservabilityConfig(log_format="text"),
    )


class TestCanvasSyncServer:
    """Tests for CanvasSyncServer lifecycle."""

    @pytest.mark.asyncio
    async def test_service_requires_start(self, config):
        server = CanvasSyncServer(config)
        with pytest.raises(RuntimeError):
            server.service

    @pytest.mark.asyncio
    async def test_start_commit_stop(self, config):
        server = CanvasSyncServer(config)
        await server.start()
        assert server.running

        service = server.service
        await service.create_canvas("c1", owner_id="u1")
        version = await service.sync_state(
            "c1",
            [Transaction(tx_id="tx-1", created_at=1, node_diffs=[AddDiff(id="n1", to={"id": "n1"})])],
        )
        assert version == 2

        await server.stop()
        assert not server.running
        with pytest.raises(RuntimeError):
            server.service

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, config):
        server = CanvasSyncServer(config)
        await server.start()
        service = server.service
        await server.start()
        assert server.service is service
        await server.stop()
        await server.stop()


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self, config):
        setup_logging(SyncConfig(observability=ObservabilityConfig(log_level="DEBUG", log_format="json")))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert type(root.handlers[0].formatter).__name__ == "JSONFormatter"
        assert logging.getLogger("botocore").level == logging.WARNING

    def test_text_format(self, config):
        setup_logging(config)
        assert type(logging.getLogger().handlers[0].formatter) is logging.Formatter


class TestCanvasAdmin:
    """Tests for the canvas-admin CLI."""

    @pytest.fixture(autouse=True)
    def env(self, monkeypatch, config):
        monkeypatch.setenv("BLOB_BACKEND", "memory")
        monkeypatch.setenv("LOCK_BACKEND", "memory")
        monkeypatch.setenv("CATALOG_PATH", config.catalog.path)

    def run_cli(self, capsys, *argv):
        with pytest.raises(SystemExit) as exc_info:
            canvas_admin.main(list(argv))
        captured = capsys.readouterr()
        return exc_info.value.code, captured

    def seed(self, config):
        async def _seed():
            catalog = VersionCatalog(config.catalog.path)
            await catalog.initialize()
            await catalog.create_canvas("c1", owner_id="u1")
            await catalog.commit_version("c1", 1, "canvas-state/c1/1", content_hash="h1")

        asyncio.run(_seed())

    def test_head(self, capsys, config):
        self.seed(config)

        code, captured = self.run_cli(capsys, "head", "c1")

        assert code == 0
        output = json.loads(captured.out)
        assert output["found"] is True
        assert output["head_version"] == 1

    def test_head_unknown(self, capsys):
        code, captured = self.run_cli(capsys, "head", "missing")
        assert code == 0
        assert json.loads(captured.out)["found"] is False

    def test_versions(self, capsys, config):
        self.seed(config)

        code, captured = self.run_cli(capsys, "versions", "c1")

        assert code == 0
        versions = json.loads(captured.out)["versions"]
        assert [v["blob_key"] for v in versions] == ["canvas-state/c1/1"]

    def test_error_exit_code(self, capsys):
        code, captured = self.run_cli(capsys, "versions", "missing")
        assert code == 1
        assert "CANVAS_NOT_FOUND" in captured.err

    def test_purge_requires_confirmation(self, capsys, config):
        self.seed(config)

        code, captured = self.run_cli(capsys, "purge", "c1")

        assert code == 1
        assert "CONFIRMATION_REQUIRED" in captured.err

    def test_purge(self, capsys, config):
        self.seed(config)

        code, captured = self.run_cli(capsys, "purge", "c1", "--yes")

        assert code == 0
        assert json.loads(captured.out)["removed_blobs"] == ["canvas-state/c1/1"]
