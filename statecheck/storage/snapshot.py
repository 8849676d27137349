"""
State Machine Snapshot Reader

Opens one replica's RocksDB state-machine store in read-only mode and streams
its full key space in store order.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol

import structlog
from rocksdict import AccessType, Options, Rdict

from statecheck.domain.exceptions import (
    DirectoryNotFoundError,
    IterationError,
    StoreOpenError,
)
from statecheck.domain.models import KeyValueRecord, ReplicaDataset, ReplicaId

logger = structlog.get_logger(__name__)

# Every RocksDB directory carries a CURRENT file naming the live MANIFEST
STORE_MARKER_FILE = "CURRENT"


class StoreCursor(Protocol):
    """RocksDB-style raw iterator."""

    def seek_to_first(self) -> None: ...
    def valid(self) -> bool: ...
    def key(self) -> Any: ...
    def value(self) -> Any: ...
    def next(self) -> None: ...
    def status(self) -> None: ...


class Store(Protocol):
    """Minimal read-only view of an embedded ordered key-value store."""

    def iter(self) -> StoreCursor: ...
    def close(self) -> None: ...


StoreOpener = Callable[[Path], Store]


def open_rocksdb_read_only(path: Path) -> Rdict:
    """
    Open a RocksDB directory read-only with raw byte keys and values.

    A write-ahead log left behind by the replica is replayed in memory only.

    Args:
        path: Store directory

    Returns:
        Rdict: Read-only database handle
    """
    options = Options(raw_mode=True)
    options.create_if_missing(False)
    return Rdict(
        str(path),
        options=options,
        access_type=AccessType.read_only(error_if_log_file_exist=False),
    )


class StoreHandle:
    """
    Read-only handle on one replica's store.

    Closing is idempotent so the underlying store is released exactly once.
    """

    def __init__(self, replica_id: ReplicaId, path: Path, store: Store):
        self.replica_id = replica_id
        self.path = path
        self._store = store
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def cursor(self) -> Iterator[StoreCursor]:
        """
        Acquire a cursor positioned on the first key.

        The cursor is only usable inside the block; once the handle closes,
        further cursors are refused.
        """
        if self._closed:
            raise IterationError(
                replica_id=self.replica_id,
                path=self.path,
                reason="store handle already closed",
            )
        cursor = self._store.iter()
        cursor.seek_to_first()
        yield cursor

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._store.close()
        logger.debug("Replica store closed", replica_id=self.replica_id)

    def __enter__(self) -> "StoreHandle":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class SnapshotReader:
    """
    Reads point-in-time snapshots of replica state-machine stores.

    The reader never writes: stores are opened read-only and without
    create-if-missing.
    """

    def __init__(self, store_opener: StoreOpener = open_rocksdb_read_only):
        """
        Initialize snapshot reader.

        Args:
            store_opener: Callable opening a store directory read-only
        """
        self.store_opener = store_opener

    def open(self, replica_id: ReplicaId, path: Path | str) -> StoreHandle:
        """
        Open one replica's store.

        Args:
            replica_id: Replica identifier
            path: State machine directory

        Returns:
            StoreHandle: Open read-only handle

        Raises:
            DirectoryNotFoundError: If path is missing or not a store directory
            StoreOpenError: If the engine refuses to open the store
        """
        path = Path(path)
        try:
            is_dir = path.is_dir()
            has_marker = is_dir and (path / STORE_MARKER_FILE).is_file()
        except OSError as e:
            # e.g. ENAMETOOLONG or EACCES while checking the path
            raise DirectoryNotFoundError(
                replica_id=replica_id,
                path=path,
                reason=str(e) or type(e).__name__,
                cause=e,
            ) from e
        if not is_dir:
            raise DirectoryNotFoundError(replica_id=replica_id, path=path)
        if not has_marker:
            raise DirectoryNotFoundError(
                replica_id=replica_id,
                path=path,
                reason=f"no {STORE_MARKER_FILE} file, not a store directory",
            )

        try:
            store = self.store_opener(path)
        except Exception as e:
            raise StoreOpenError(
                replica_id=replica_id,
                path=path,
                reason=str(e) or type(e).__name__,
                cause=e,
            ) from e

        logger.debug("Replica store opened read-only", replica_id=replica_id, path=str(path))
        return StoreHandle(replica_id=replica_id, path=path, store=store)

    def iterate(self, handle: StoreHandle) -> Iterator[KeyValueRecord]:
        """
        Stream every record from the first key onward.

        Args:
            handle: Open store handle

        Yields:
            KeyValueRecord: Records in store order

        Raises:
            IterationError: If the engine reports an error mid-scan
        """
        records_read = 0
        try:
            with handle.cursor() as cursor:
                while cursor.valid():
                    record = KeyValueRecord(key=bytes(cursor.key()), value=bytes(cursor.value()))
                    records_read += 1
                    yield record
                    cursor.next()
                # an invalid cursor is either exhausted or failed
                cursor.status()
        except IterationError:
            raise
        except Exception as e:
            raise IterationError(
                replica_id=handle.replica_id,
                path=handle.path,
                reason=str(e) or type(e).__name__,
                records_read=records_read,
                cause=e,
            ) from e

    def close(self, handle: StoreHandle) -> None:
        handle.close()

    @contextmanager
    def snapshot(self, replica_id: ReplicaId, path: Path | str) -> Iterator[StoreHandle]:
        """Open a store for the duration of a block."""
        handle = self.open(replica_id, path)
        with handle:
            yield handle

    def read_dataset(self, replica_id: ReplicaId, path: Path | str) -> ReplicaDataset:
        """
        Open, fully scan, and close one replica's store.

        Raises:
            DirectoryNotFoundError, StoreOpenError, IterationError
        """
        with self.snapshot(replica_id, path) as handle:
            return materialize(handle, self.iterate(handle))


def materialize(
    handle: StoreHandle,
    records: Iterator[KeyValueRecord],
    on_record: Callable[[KeyValueRecord], None] | None = None,
) -> ReplicaDataset:
    """
    Build a dataset from a full scan.

    Nothing read before a failure escapes: the partial mapping is dropped
    with the exception.

    Raises:
        IterationError: On scan failure or a repeated key
    """
    data: dict[bytes, bytes] = {}
    for record in records:
        if record.key in data:
            raise IterationError(
                replica_id=handle.replica_id,
                path=handle.path,
                reason=f"duplicate key {record.key!r}",
                records_read=len(data),
            )
        data[record.key] = record.value
        if on_record is not None:
            on_record(record)
    return ReplicaDataset(replica_id=handle.replica_id, path=handle.path, records=data)
