"""
Version catalog for Canvas Sync.

Maps canvas ids to their head version and (canvas_id, version) pairs to
snapshot blob keys.
"""

from .catalog import CanvasRecord, CanvasVersionRecord, VersionCatalog

__all__ = ["CanvasRecord", "CanvasVersionRecord", "VersionCatalog"]
