"""
Replica Dataset Collection

Reads every replica's state-machine snapshot concurrently and assembles the
results into a per-run aggregate. Comparison may only start once the aggregate
is complete.
"""

import asyncio
import threading
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial

import structlog

from statecheck.domain.exceptions import (
    ConfigurationError,
    IterationError,
    ReplicaError,
    StoreOpenError,
)
from statecheck.domain.models import (
    KeyValueRecord,
    ReplicaDataset,
    ReplicaFailure,
    ReplicaId,
    ReplicaTarget,
    render_bytes,
)
from statecheck.storage.snapshot import SnapshotReader, StoreHandle, materialize

logger = structlog.get_logger(__name__)


class CollectionAggregate:
    """
    Per-run aggregate of replica datasets and failures.

    One slot per target; each slot is written exactly once, by the worker
    that owns the replica.
    """

    def __init__(self, targets: Iterable[ReplicaTarget]):
        """
        Initialize aggregate.

        Args:
            targets: Replicas to collect, in report order

        Raises:
            ConfigurationError: If a replica id appears twice
        """
        self.targets: list[ReplicaTarget] = list(targets)
        self._datasets: dict[ReplicaId, ReplicaDataset] = {}
        self._failures: dict[ReplicaId, ReplicaFailure] = {}

        ids = [target.replica_id for target in self.targets]
        duplicates = sorted({rid for rid in ids if ids.count(rid) > 1})
        if duplicates:
            raise ConfigurationError(
                message=f"Duplicate replica ids: {', '.join(duplicates)}",
                field="replica_ids",
            )
        self._ids = set(ids)

    def _claim(self, replica_id: ReplicaId) -> None:
        if replica_id not in self._ids:
            raise KeyError(f"Unknown replica {replica_id!r}")
        if replica_id in self._datasets or replica_id in self._failures:
            raise RuntimeError(f"Replica {replica_id!r} already recorded")

    def record_dataset(self, dataset: ReplicaDataset) -> None:
        self._claim(dataset.replica_id)
        self._datasets[dataset.replica_id] = dataset

    def record_failure(self, error: ReplicaError) -> None:
        self._claim(error.replica_id)
        self._failures[error.replica_id] = ReplicaFailure.from_error(error)

    @property
    def replica_ids(self) -> list[ReplicaId]:
        return [target.replica_id for target in self.targets]

    @property
    def pending(self) -> list[ReplicaId]:
        """Replicas with neither a dataset nor a failure recorded."""
        return [
            rid for rid in self.replica_ids
            if rid not in self._datasets and rid not in self._failures
        ]

    @property
    def is_complete(self) -> bool:
        return not self.pending

    @property
    def datasets(self) -> list[ReplicaDataset]:
        """Collected datasets in target order."""
        return [self._datasets[rid] for rid in self.replica_ids if rid in self._datasets]

    @property
    def failures(self) -> list[ReplicaFailure]:
        """Recorded failures in target order."""
        return [self._failures[rid] for rid in self.replica_ids if rid in self._failures]

    def dataset(self, replica_id: ReplicaId) -> ReplicaDataset | None:
        return self._datasets.get(replica_id)

    def failure(self, replica_id: ReplicaId) -> ReplicaFailure | None:
        return self._failures.get(replica_id)


def _release_late_handle(future: Future) -> None:
    """Close a handle whose open finished after the caller gave up on it."""
    if future.cancelled() or future.exception() is not None:
        return
    handle: StoreHandle = future.result()
    logger.warning("Closing store opened after timeout", replica_id=handle.replica_id)
    handle.close()


def _open_in_daemon_thread(reader: SnapshotReader, target: ReplicaTarget) -> Future:
    """
    Start opening one store on a daemon thread.

    An open that never returns must not keep the interpreter alive after the
    verdict, so opens stay off the (joined at exit) executor threads.
    """
    future: Future = Future()

    def _run() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(reader.open(target.replica_id, target.path))
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(
        target=_run,
        name=f"statecheck-open-{target.replica_id}",
        daemon=True,
    ).start()
    return future


class DatasetCollector:
    """
    Collects replica datasets concurrently.

    Each open runs on its own daemon thread under the open timeout; scans run
    on a thread pool, one worker per replica by default. A failure for one
    replica is recorded in its slot and never aborts the others.
    """

    def __init__(
        self,
        reader: SnapshotReader | None = None,
        open_timeout_seconds: float | None = None,
        max_workers: int | None = None,
        log_records: bool = True,
    ):
        """
        Initialize collector.

        Args:
            reader: Snapshot reader (default: RocksDB read-only reader)
            open_timeout_seconds: Bound on opening one store; None waits forever
            max_workers: Scan thread pool size (default: one per replica)
            log_records: Emit one log record per key read
        """
        self.reader = reader or SnapshotReader()
        self.open_timeout_seconds = open_timeout_seconds
        self.max_workers = max_workers
        self.log_records = log_records

    async def collect(self, targets: Iterable[ReplicaTarget]) -> CollectionAggregate:
        """
        Collect every replica and wait for all of them to finish.

        Args:
            targets: Replicas to read

        Returns:
            CollectionAggregate: Complete aggregate (every slot filled)
        """
        aggregate = CollectionAggregate(targets)
        if not aggregate.targets:
            return aggregate

        logger.info(
            "Starting replica collection",
            replicas=aggregate.replica_ids,
            open_timeout_seconds=self.open_timeout_seconds,
        )

        executor = ThreadPoolExecutor(
            max_workers=self.max_workers or len(aggregate.targets),
            thread_name_prefix="statecheck-scan",
        )
        try:
            await asyncio.gather(
                *(
                    self._collect_replica(aggregate, target, executor)
                    for target in aggregate.targets
                )
            )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            "Replica collection complete",
            collected=len(aggregate.datasets),
            failed=len(aggregate.failures),
        )
        return aggregate

    async def _collect_replica(
        self,
        aggregate: CollectionAggregate,
        target: ReplicaTarget,
        executor: ThreadPoolExecutor,
    ) -> None:
        loop = asyncio.get_running_loop()
        handle: StoreHandle | None = None
        try:
            handle = await self._open(target)
            with handle:
                dataset = await loop.run_in_executor(executor, self._scan, handle)
        except ReplicaError as e:
            self._record_failure(aggregate, e)
            return
        except Exception as e:
            # anything the reader did not classify still belongs to this slot only
            error_type = StoreOpenError if handle is None else IterationError
            self._record_failure(
                aggregate,
                error_type(
                    replica_id=target.replica_id,
                    path=target.path,
                    reason=str(e) or type(e).__name__,
                    cause=e,
                ),
            )
            return

        aggregate.record_dataset(dataset)

    @staticmethod
    def _record_failure(aggregate: CollectionAggregate, error: ReplicaError) -> None:
        aggregate.record_failure(error)
        logger.warning(
            "Replica collection failed",
            replica_id=error.replica_id,
            error_code=error.error_code.value,
        )

    async def _open(self, target: ReplicaTarget) -> StoreHandle:
        open_future = _open_in_daemon_thread(self.reader, target)
        try:
            return await asyncio.wait_for(
                asyncio.wrap_future(open_future),
                timeout=self.open_timeout_seconds,
            )
        except asyncio.TimeoutError:
            open_future.add_done_callback(_release_late_handle)
            raise StoreOpenError(
                replica_id=target.replica_id,
                path=target.path,
                reason=f"open timed out after {self.open_timeout_seconds}s",
                timeout=True,
            ) from None

    def _scan(self, handle: StoreHandle) -> ReplicaDataset:
        on_record = partial(self._log_record, handle.replica_id) if self.log_records else None
        dataset = materialize(handle, self.reader.iterate(handle), on_record=on_record)
        logger.info(
            "Replica snapshot read",
            replica_id=handle.replica_id,
            record_count=len(dataset),
        )
        return dataset

    @staticmethod
    def _log_record(replica_id: ReplicaId, record: KeyValueRecord) -> None:
        logger.info(
            "Replica record",
            replica_id=replica_id,
            key=render_bytes(record.key),
            value=render_bytes(record.value),
        )
