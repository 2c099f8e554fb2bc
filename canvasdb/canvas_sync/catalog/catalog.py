"""
Version catalog for Canvas Sync.

The catalog is the relational index over snapshot blobs. It answers
"what is the head version of this canvas" and "where is the blob for
version N", and it is the only place the head pointer changes.

Invariants:
    - Version rows are append-only; they are never updated
    - Inserting a version row and advancing head is one SQLite transaction
    - A soft-deleted canvas is invisible to lookups
    - Version numbers are allocated as max(version) + 1 per canvas

How to change safely:
    - Schema migrations must be backward compatible
    - Use BEGIN IMMEDIATE for every multi-statement write
    - Never move head backwards outside an explicit administrative operation

Table schema:
    canvases:
        - canvas_id TEXT PRIMARY KEY
        - owner_id TEXT
        - head_version INTEGER (NULL until the first snapshot exists)
        - legacy_state_key TEXT (NULL unless a pre-versioning Yjs document exists)
        - created_at INTEGER (Unix ms)
        - updated_at INTEGER (Unix ms)
        - deleted_at INTEGER (Unix ms, NULL unless soft deleted)

    canvas_versions:
        - canvas_id TEXT
        - version INTEGER
        - blob_key TEXT
        - content_hash TEXT (may be '')
        - created_at INTEGER
        - PRIMARY KEY (canvas_id, version)
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from ..errors import CanvasAlreadyExistsError, CanvasNotFoundError, CanvasVersionExistsError

logger = logging.getLogger(__name__)


@dataclass
class CanvasRecord:
    """A canvas row.

    Attributes:
        canvas_id: Canvas identifier
        owner_id: Owning user
        head_version: Current version, None before the first snapshot
        legacy_state_key: Blob key of the pre-versioning Yjs document
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
        deleted_at: Soft-delete timestamp (Unix ms)
    """

    canvas_id: str
    owner_id: str
    head_version: int | None
    legacy_state_key: str | None
    created_at: int
    updated_at: int
    deleted_at: int | None = None


@dataclass
class CanvasVersionRecord:
    """An immutable version row."""

    canvas_id: str
    version: int
    blob_key: str
    content_hash: str
    created_at: int


def _canvas_from_row(row: sqlite3.Row) -> CanvasRecord:
    return CanvasRecord(
        canvas_id=row["canvas_id"],
        owner_id=row["owner_id"],
        head_version=row["head_version"],
        legacy_state_key=row["legacy_state_key"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        deleted_at=row["deleted_at"],
    )


def _version_from_row(row: sqlite3.Row) -> CanvasVersionRecord:
    return CanvasVersionRecord(
        canvas_id=row["canvas_id"],
        version=row["version"],
        blob_key=row["blob_key"],
        content_hash=row["content_hash"],
        created_at=row["created_at"],
    )


class VersionCatalog:
    """SQLite-backed catalog of canvases and their versions.

    Thread safety:
        Each operation opens its own connection.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> catalog = VersionCatalog("/var/lib/canvas-sync/catalog.db")
        >>> await catalog.initialize()
        >>> await catalog.create_canvas("c1", owner_id="u1")
        >>> await catalog.commit_version("c1", 1, "canvas-state/c1/1")
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the catalog.

        Args:
            db_path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._lock = asyncio.Lock()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the catalog database."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS canvases (
                canvas_id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                head_version INTEGER,
                legacy_state_key TEXT,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                deleted_at INTEGER
            );

            CREATE INDEX IF NOT EXISTS idx_canvases_owner ON canvases(owner_id);

            CREATE TABLE IF NOT EXISTS canvas_versions (
                canvas_id TEXT NOT NULL REFERENCES canvases(canvas_id),
                version INTEGER NOT NULL,
                blob_key TEXT NOT NULL,
                content_hash TEXT NOT NULL DEFAULT '',
                created_at INTEGER NOT NULL,
                PRIMARY KEY (canvas_id, version)
            );

            CREATE INDEX IF NOT EXISTS idx_canvas_versions_canvas
                ON canvas_versions(canvas_id);

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    async def initialize(self) -> None:
        """Create the database file and schema if they don't exist."""
        async with self._lock:
            with self._get_connection() as conn:
                self._create_schema(conn)
        logger.info("Initialized version catalog", extra={"db_path": str(self.db_path)})

    async def create_canvas(
        self,
        canvas_id: str,
        owner_id: str,
        legacy_state_key: str | None = None,
        initial_version: CanvasVersionRecord | None = None,
    ) -> CanvasRecord:
        """Register a canvas, optionally with its first version.

        Args:
            canvas_id: Canvas identifier
            owner_id: Owning user
            legacy_state_key: Blob key of a pre-versioning document
            initial_version: Version row to insert and point head at

        Returns:
            Created CanvasRecord

        Raises:
            CanvasAlreadyExistsError: If the canvas id is taken
        """
        now = int(time.time() * 1000)
        head = initial_version.version if initial_version else None

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    """
                    INSERT INTO canvases (canvas_id, owner_id, head_version, legacy_state_key,
                                          created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (canvas_id, owner_id, head, legacy_state_key, now, now),
                )
                if initial_version is not None:
                    conn.execute(
                        """
                        INSERT INTO canvas_versions (canvas_id, version, blob_key,
                                                     content_hash, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (
                            canvas_id,
                            initial_version.version,
                            initial_version.blob_key,
                            initial_version.content_hash,
                            initial_version.created_at,
                        ),
                    )
                conn.execute("COMMIT")

            except sqlite3.IntegrityError:
                conn.execute("ROLLBACK")
                raise CanvasAlreadyExistsError(canvas_id)
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug("Created canvas", extra={"canvas_id": canvas_id, "head_version": head})

        return CanvasRecord(
            canvas_id=canvas_id,
            owner_id=owner_id,
            head_version=head,
            legacy_state_key=legacy_state_key,
            created_at=now,
            updated_at=now,
        )

    async def get_canvas(
        self,
        canvas_id: str,
        owner_id: str | None = None,
        include_deleted: bool = False,
    ) -> CanvasRecord | None:
        """Get a canvas row.

        Args:
            canvas_id: Canvas identifier
            owner_id: If given, the canvas must belong to this owner
            include_deleted: Whether to return soft-deleted canvases

        Returns:
            CanvasRecord or None if not found
        """
        query = "SELECT * FROM canvases WHERE canvas_id = ?"
        params: list = [canvas_id]
        if owner_id is not None:
            query += " AND owner_id = ?"
            params.append(owner_id)
        if not include_deleted:
            query += " AND deleted_at IS NULL"

        with self._get_connection() as conn:
            row = conn.execute(query, params).fetchone()
            return _canvas_from_row(row) if row else None

    async def get_version(self, canvas_id: str, version: int) -> CanvasVersionRecord | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM canvas_versions WHERE canvas_id = ? AND version = ?",
                (canvas_id, version),
            ).fetchone()
            return _version_from_row(row) if row else None

    async def list_versions(self, canvas_id: str) -> list[CanvasVersionRecord]:
        """List all versions of a canvas, oldest first."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM canvas_versions WHERE canvas_id = ? ORDER BY version",
                (canvas_id,),
            )
            return [_version_from_row(row) for row in cursor.fetchall()]

    async def next_version(self, canvas_id: str) -> int:
        """Allocate the next version number (max existing + 1, starting at 1).

        Callers must hold the canvas lock for the number to stay unused
        until their commit.
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT MAX(version) AS max_version FROM canvas_versions WHERE canvas_id = ?",
                (canvas_id,),
            ).fetchone()
            return (row["max_version"] or 0) + 1

    async def commit_version(
        self,
        canvas_id: str,
        version: int,
        blob_key: str,
        content_hash: str = "",
        if_absent: bool = False,
    ) -> bool:
        """Insert a version row and advance head, atomically.

        Args:
            canvas_id: Canvas identifier
            version: New version number
            blob_key: Blob key of the snapshot
            content_hash: Snapshot content hash ('' if unknown)
            if_absent: Tolerate an existing row for this version. The row is
                left untouched and head only moves if it was unset. Used by
                the idempotent legacy migration.

        Returns:
            True if a row was inserted, False if it already existed (if_absent)

        Raises:
            CanvasNotFoundError: If the canvas is missing or deleted
            CanvasVersionExistsError: If the version exists and if_absent is False
        """
        now = int(time.time() * 1000)

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                exists = conn.execute(
                    "SELECT 1 FROM canvases WHERE canvas_id = ? AND deleted_at IS NULL",
                    (canvas_id,),
                ).fetchone()
                if not exists:
                    conn.execute("ROLLBACK")
                    raise CanvasNotFoundError(canvas_id)

                verb = "INSERT OR IGNORE" if if_absent else "INSERT"
                cursor = conn.execute(
                    f"""
                    {verb} INTO canvas_versions (canvas_id, version, blob_key,
                                                 content_hash, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (canvas_id, version, blob_key, content_hash, now),
                )
                inserted = cursor.rowcount > 0

                if inserted and if_absent:
                    conn.execute(
                        """
                        UPDATE canvases SET head_version = ?, updated_at = ?
                        WHERE canvas_id = ? AND head_version IS NULL
                        """,
                        (version, now, canvas_id),
                    )
                elif inserted:
                    conn.execute(
                        "UPDATE canvases SET head_version = ?, updated_at = ? WHERE canvas_id = ?",
                        (version, now, canvas_id),
                    )

                conn.execute("COMMIT")

            except CanvasNotFoundError:
                raise
            except sqlite3.IntegrityError:
                conn.execute("ROLLBACK")
                raise CanvasVersionExistsError(canvas_id, version)
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug(
            "Committed canvas version",
            extra={"canvas_id": canvas_id, "version": version, "inserted": inserted},
        )
        return inserted

    async def soft_delete(self, canvas_id: str) -> bool:
        """Mark a canvas deleted.

        Returns:
            True if deleted, False if not found or already deleted
        """
        now = int(time.time() * 1000)
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE canvases SET deleted_at = ?, updated_at = ?
                WHERE canvas_id = ? AND deleted_at IS NULL
                """,
                (now, now, canvas_id),
            )
            return cursor.rowcount > 0

    async def purge(self, canvas_id: str) -> list[str]:
        """Delete a canvas and all its version rows.

        Returns:
            Blob keys of the deleted versions (for blob cleanup)
        """
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    "SELECT blob_key FROM canvas_versions WHERE canvas_id = ? ORDER BY version",
                    (canvas_id,),
                )
                blob_keys = [row["blob_key"] for row in cursor.fetchall()]

                conn.execute("DELETE FROM canvas_versions WHERE canvas_id = ?", (canvas_id,))
                conn.execute("DELETE FROM canvases WHERE canvas_id = ?", (canvas_id,))

                conn.execute("COMMIT")

            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.info(
            "Purged canvas from catalog",
            extra={"canvas_id": canvas_id, "versions": len(blob_keys)},
        )
        return blob_keys
