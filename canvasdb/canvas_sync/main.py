"""
Canvas Sync - service wiring.

This module assembles the synchronizer from configuration:
- Blob store (S3 or in-memory)
- Lock provider (Redis or in-memory) behind a LockCoordinator
- SQLite version catalog

Usage:
    python -m canvasdb.canvas_sync.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The service is usable only between start() and stop()
    - Backends are connected before the catalog is initialized
    - stop() closes every backend that start() opened

How to change safely:
    - Add new backends through the create_* factories, not here
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter

from .catalog import VersionCatalog
from .config import SyncConfig
from .legacy import LegacyBridge
from .lock import LockCoordinator, LockProvider, create_lock_provider
from .storage import BlobStore, create_blob_store
from .sync import CanvasSyncService

logger = logging.getLogger(__name__)


def setup_logging(config: SyncConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Canvas Sync configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)


class CanvasSyncServer:
    """Canvas Sync lifecycle owner.

    Attributes:
        config: Canvas Sync configuration
        blob_store: Snapshot blob backend
        lock_provider: Distributed lock backend
        catalog: Version catalog

    Example:
        >>> server = CanvasSyncServer()
        >>> await server.start()
        >>> state = await server.service.get_state("canvas-1")
        >>> await server.stop()
    """

    def __init__(self, config: SyncConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional configuration (loaded from env if not provided)
        """
        self.config = config or SyncConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.blob_store: BlobStore | None = None
        self.lock_provider: LockProvider | None = None
        self.catalog: VersionCatalog | None = None
        self._service: CanvasSyncService | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def service(self) -> CanvasSyncService:
        """The synchronizer. Only available while running."""
        if self._service is None:
            raise RuntimeError("Canvas sync server is not started")
        return self._service

    async def start(self) -> None:
        """Connect backends and build the synchronizer."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting canvas sync server")
        self.config.log_config()

        try:
            self.blob_store = create_blob_store(self.config)
            await self.blob_store.connect()
            logger.info("Blob store connected")

            self.lock_provider = create_lock_provider(self.config)
            await self.lock_provider.connect()
            logger.info("Lock provider connected")

            self.catalog = VersionCatalog(
                self.config.catalog.path,
                wal_mode=self.config.catalog.wal_mode,
                busy_timeout_ms=self.config.catalog.busy_timeout_ms,
            )
            await self.catalog.initialize()

            lock_config = self.config.lock
            coordinator = LockCoordinator(
                self.lock_provider,
                ttl_ms=lock_config.ttl_ms,
                renew_interval_ms=lock_config.renew_interval_ms,
                max_retries=lock_config.max_retries,
                initial_delay_ms=lock_config.initial_delay_ms,
                key_prefix=lock_config.key_prefix,
            )

            self._service = CanvasSyncService(
                catalog=self.catalog,
                blob_store=self.blob_store,
                lock_coordinator=coordinator,
                legacy_bridge=LegacyBridge(self.blob_store),
                state_prefix=self.config.s3.state_prefix,
            )

            self._running = True
            logger.info("Canvas sync server started successfully")

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self._close_backends()
            raise

    async def stop(self) -> None:
        """Close all backends."""
        if not self._running:
            return

        logger.info("Stopping canvas sync server")
        await self._close_backends()
        self._running = False
        logger.info("Canvas sync server stopped")

    async def _close_backends(self) -> None:
        self._service = None

        if self.lock_provider:
            await self.lock_provider.close()
            self.lock_provider = None

        if self.blob_store:
            await self.blob_store.close()
            self.blob_store = None

    async def serve(self) -> None:
        """Start and block until shutdown is requested."""
        await self.start()
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = SyncConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    server = CanvasSyncServer(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.serve())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
