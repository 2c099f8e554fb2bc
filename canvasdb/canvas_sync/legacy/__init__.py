"""
Legacy Yjs document support for Canvas Sync.

Read-only: converts pre-versioning documents into version 1 snapshots.
"""

from .bridge import LEGACY_VERSION, LegacyBridge

__all__ = ["LEGACY_VERSION", "LegacyBridge"]
