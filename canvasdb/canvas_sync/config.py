"""
Configuration management for Canvas Sync.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set explicit values for critical settings
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Lock TTL changes affect every process sharing the lock backend
    - Never change S3_STATE_PREFIX on a live bucket (existing blob keys are in the catalog)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class BlobBackend(Enum):
    """Supported blob store backends."""

    S3 = "s3"
    MEMORY = "memory"


class LockBackend(Enum):
    """Supported lock provider backends."""

    REDIS = "redis"
    MEMORY = "memory"


@dataclass(frozen=True)
class S3Config:
    """S3 configuration for canvas state blobs.

    Attributes:
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        state_prefix: Prefix for canvas state blobs
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    bucket: str = "canvas-storage"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    state_prefix: str = "canvas-state"
    access_key_id: str | None = None
    secret_access_key: str | None = None

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        return cls(
            bucket=os.getenv("S3_BUCKET", "canvas-storage"),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            state_prefix=os.getenv("S3_STATE_PREFIX", "canvas-state"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )


@dataclass(frozen=True)
class RedisConfig:
    """Redis configuration for the distributed lock.

    Attributes:
        host: Redis host
        port: Redis port
        username: ACL username (optional)
        password: Password (optional)
        db: Database index
    """

    host: str = "localhost"
    port: int = 6379
    username: str | None = None
    password: str | None = None
    db: int = 0

    @classmethod
    def from_env(cls) -> RedisConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", "6379")),
            username=os.getenv("REDIS_USERNAME"),
            password=os.getenv("REDIS_PASSWORD"),
            db=int(os.getenv("REDIS_DB", "0")),
        )


@dataclass(frozen=True)
class CatalogConfig:
    """Version catalog (SQLite) configuration.

    Attributes:
        path: SQLite database file
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    path: str = "/var/lib/canvas-sync/catalog.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> CatalogConfig:
        """Load configuration from environment variables."""
        return cls(
            path=os.getenv("CATALOG_PATH", "/var/lib/canvas-sync/catalog.db"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class LockConfig:
    """Per-canvas lock configuration.

    Attributes:
        ttl_ms: Provider-side expiry of a held lock
        renew_interval_ms: How often a held lock's TTL is extended (0 disables)
        max_retries: Retries after the first failed acquisition
        initial_delay_ms: First backoff delay, doubled on every retry
        key_prefix: Prefix of the lock key (key is "<prefix>:<canvas_id>")
    """

    ttl_ms: int = 10_000
    renew_interval_ms: int = 3_000
    max_retries: int = 3
    initial_delay_ms: int = 100
    key_prefix: str = "canvas-sync"

    @classmethod
    def from_env(cls) -> LockConfig:
        """Load configuration from environment variables."""
        return cls(
            ttl_ms=int(os.getenv("LOCK_TTL_MS", "10000")),
            renew_interval_ms=int(os.getenv("LOCK_RENEW_INTERVAL_MS", "3000")),
            max_retries=int(os.getenv("LOCK_MAX_RETRIES", "3")),
            initial_delay_ms=int(os.getenv("LOCK_INITIAL_DELAY_MS", "100")),
            key_prefix=os.getenv("LOCK_KEY_PREFIX", "canvas-sync"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class SyncConfig:
    """Complete Canvas Sync configuration.

    This aggregates all configuration sections and provides validation.

    Attributes:
        blob_backend: Which blob store backend to use
        lock_backend: Which lock provider backend to use
        s3: S3 configuration (if blob_backend is S3)
        redis: Redis configuration (if lock_backend is REDIS)
        catalog: Version catalog configuration
        lock: Lock coordination configuration
        observability: Logging configuration
    """

    blob_backend: BlobBackend = BlobBackend.S3
    lock_backend: LockBackend = LockBackend.REDIS
    s3: S3Config = field(default_factory=S3Config)
    redis: RedisConfig = field(default_factory=RedisConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Load complete configuration from environment variables.

        Returns:
            SyncConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        blob_str = os.getenv("BLOB_BACKEND", "s3").lower()
        try:
            blob_backend = BlobBackend(blob_str)
        except ValueError:
            raise ValueError(f"Invalid BLOB_BACKEND '{blob_str}'. Must be one of: s3, memory")

        lock_str = os.getenv("LOCK_BACKEND", "redis").lower()
        try:
            lock_backend = LockBackend(lock_str)
        except ValueError:
            raise ValueError(f"Invalid LOCK_BACKEND '{lock_str}'. Must be one of: redis, memory")

        config = cls(
            blob_backend=blob_backend,
            lock_backend=lock_backend,
            s3=S3Config.from_env(),
            redis=RedisConfig.from_env(),
            catalog=CatalogConfig.from_env(),
            lock=LockConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.blob_backend == BlobBackend.S3 and not self.s3.bucket:
            raise ValueError("S3_BUCKET is required when BLOB_BACKEND=s3")

        if self.lock.ttl_ms <= 0:
            raise ValueError("LOCK_TTL_MS must be positive")
        if self.lock.renew_interval_ms >= self.lock.ttl_ms:
            raise ValueError("LOCK_RENEW_INTERVAL_MS must be smaller than LOCK_TTL_MS")
        if self.lock.max_retries < 0:
            raise ValueError("LOCK_MAX_RETRIES must not be negative")
        if self.lock.initial_delay_ms < 0:
            raise ValueError("LOCK_INITIAL_DELAY_MS must not be negative")

        catalog_dir = os.path.dirname(self.catalog.path)
        if catalog_dir and not os.path.exists(catalog_dir):
            logger.warning(
                f"Catalog directory does not exist: {catalog_dir}. "
                "It will be created on first start."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Canvas sync configuration loaded",
            extra={
                "blob_backend": self.blob_backend.value,
                "lock_backend": self.lock_backend.value,
                "s3_bucket": self.s3.bucket if self.blob_backend == BlobBackend.S3 else None,
                "s3_state_prefix": self.s3.state_prefix,
                "redis_host": self.redis.host
                if self.lock_backend == LockBackend.REDIS
                else None,
                "catalog_path": self.catalog.path,
                "lock_ttl_ms": self.lock.ttl_ms,
                "lock_max_retries": self.lock.max_retries,
                "log_level": self.observability.log_level,
            },
        )
