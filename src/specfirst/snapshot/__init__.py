"""Workspace snapshots: archive, restore and compare."""

from specfirst.snapshot.metadata import (
    SnapshotMetadata,
    is_valid_snapshot_name,
    read_metadata,
    write_metadata,
)
from specfirst.snapshot.store import COMPONENTS, SnapshotDiff, SnapshotStore
from specfirst.snapshot.transaction import SwapTransaction

__all__ = [
    "COMPONENTS",
    "SnapshotDiff",
    "SnapshotMetadata",
    "SnapshotStore",
    "SwapTransaction",
    "is_valid_snapshot_name",
    "read_metadata",
    "write_metadata",
]
