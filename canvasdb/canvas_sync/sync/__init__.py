"""
State synchronization for Canvas Sync.

CanvasSyncService reads snapshots, commits transaction batches as new
versions and cuts compacted versions from client states.
"""

from .synchronizer import CanvasSyncService, CreateVersionResult, VersionConflict

__all__ = ["CanvasSyncService", "CreateVersionResult", "VersionConflict"]
