"""
Replica Store Access

Read-only snapshot access to replica state-machine stores.
"""

from statecheck.storage.snapshot import (
    SnapshotReader,
    StoreHandle,
    materialize,
    open_rocksdb_read_only,
)

__all__ = ["SnapshotReader", "StoreHandle", "materialize", "open_rocksdb_read_only"]
