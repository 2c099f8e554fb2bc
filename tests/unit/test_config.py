"""
Unit tests for configuration loading.

Tests cover:
- Defaults
- Environment parsing
- Validation errors
"""

import pytest

from canvasdb.canvas_sync.config import (
    BlobBackend,
    LockBackend,
    LockConfig,
    SyncConfig,
)


class TestSyncConfig:
    """Tests for SyncConfig.from_env."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch, tmp_path):
        for name in (
            "BLOB_BACKEND",
            "LOCK_BACKEND",
            "S3_BUCKET",
            "S3_STATE_PREFIX",
            "REDIS_HOST",
            "REDIS_PORT",
            "LOCK_TTL_MS",
            "LOCK_RENEW_INTERVAL_MS",
            "LOCK_MAX_RETRIES",
            "LOCK_INITIAL_DELAY_MS",
            "LOCK_KEY_PREFIX",
            "LOG_LEVEL",
        ):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("CATALOG_PATH", str(tmp_path / "catalog.db"))

    def test_defaults(self):
        config = SyncConfig.from_env()

        assert config.blob_backend == BlobBackend.S3
        assert config.lock_backend == LockBackend.REDIS
        assert config.s3.bucket == "canvas-storage"
        assert config.s3.state_prefix == "canvas-state"
        assert config.lock.ttl_ms == 10_000
        assert config.lock.max_retries == 3
        assert config.lock.initial_delay_ms == 100
        assert config.lock.key_prefix == "canvas-sync"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("BLOB_BACKEND", "memory")
        monkeypatch.setenv("LOCK_BACKEND", "MEMORY")
        monkeypatch.setenv("REDIS_PORT", "6380")
        monkeypatch.setenv("LOCK_MAX_RETRIES", "5")

        config = SyncConfig.from_env()

        assert config.blob_backend == BlobBackend.MEMORY
        assert config.lock_backend == LockBackend.MEMORY
        assert config.redis.port == 6380
        assert config.lock.max_retries == 5

    def test_invalid_backend(self, monkeypatch):
        monkeypatch.setenv("BLOB_BACKEND", "gcs")
        with pytest.raises(ValueError, match="BLOB_BACKEND"):
            SyncConfig.from_env()

    def test_renew_interval_must_be_below_ttl(self, monkeypatch):
        monkeypatch.setenv("LOCK_TTL_MS", "1000")
        monkeypatch.setenv("LOCK_RENEW_INTERVAL_MS", "1000")
        with pytest.raises(ValueError, match="LOCK_RENEW_INTERVAL_MS"):
            SyncConfig.from_env()

    def test_negative_retries_rejected(self):
        config = SyncConfig(lock=LockConfig(max_retries=-1))
        with pytest.raises(ValueError, match="LOCK_MAX_RETRIES"):
            config.validate()

    def test_s3_requires_bucket(self, monkeypatch):
        monkeypatch.setenv("S3_BUCKET", "")
        with pytest.raises(ValueError, match="S3_BUCKET"):
            SyncConfig.from_env()
