"""Snapshot storage for the first-observed configuration of each device.

This package provides:
- SnapshotStore: Storage interface used by the config fetcher
- MemorySnapshotStore: Process-local store
- FileSnapshotStore: YAML files under <state_dir>/state/original/
"""

from .store import (
    SnapshotStore,
    MemorySnapshotStore,
    FileSnapshotStore,
    DEFAULT_STATE_DIR,
)

__all__ = [
    "SnapshotStore",
    "MemorySnapshotStore",
    "FileSnapshotStore",
    "DEFAULT_STATE_DIR",
]
