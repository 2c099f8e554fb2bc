"""
Canvas Sync Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Synchronizer end-to-end on in-memory backends and SQLite
"""
