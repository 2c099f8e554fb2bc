"""
Canvas Sync - versioned state storage for AI workspace canvases.

This package persists an evolving canvas graph (nodes + edges) as an
append-only sequence of immutable snapshots:
- Transactions (batches of node/edge diffs) are applied under a per-canvas lock
- Every commit writes a new snapshot blob and a new catalog version row
- The catalog head pointer always names the latest committed snapshot
- Canvases created before versioning are migrated lazily from their Yjs document

Architecture:
    ┌─────────────┐     ┌──────────────────┐     ┌─────────────────┐
    │   Caller    │────▶│ CanvasSyncService│────▶│  LockProvider   │
    │ (API / job) │     │  (synchronizer)  │     │ (Redis/memory)  │
    └─────────────┘     └────────┬─────────┘     └─────────────────┘
                                 │
               ┌─────────────────┼──────────────────┐
               │                 │                  │
               ▼                 ▼                  ▼
          ┌─────────┐      ┌───────────┐      ┌───────────┐
          │ Catalog │      │ BlobStore │      │  Legacy   │
          │ (SQLite)│      │(S3/memory)│      │  Bridge   │
          └─────────┘      └───────────┘      └───────────┘

Invariants:
    - Snapshots are immutable once their catalog row exists
    - Version numbers increase monotonically per canvas
    - At most one commit per canvas is in flight (distributed lock)
    - The version row insert and the head update are one catalog transaction

How to change safely:
    - Snapshot JSON is read by clients; add fields, never rename them
    - Keep lock keys stable across deployments (mixed versions share locks)
    - Catalog schema migrations must be backward compatible

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
