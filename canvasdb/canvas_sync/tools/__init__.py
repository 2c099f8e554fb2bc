"""Operational tools for Canvas Sync."""
