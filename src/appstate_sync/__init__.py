"""Snapshot synchronization and conflict resolution for a multi-source app state."""

__version__ = "0.1.0"
