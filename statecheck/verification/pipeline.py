"""
Verification Pipeline

Two explicit phases: concurrent collection joined by a barrier, then a single
synchronous comparison over the completed aggregate.
"""

import asyncio

import structlog

from statecheck.config import Settings, get_settings
from statecheck.domain.models import VerificationReport
from statecheck.storage.snapshot import SnapshotReader
from statecheck.verification.collector import DatasetCollector
from statecheck.verification.comparator import ConsistencyComparator

logger = structlog.get_logger(__name__)


async def verify(
    settings: Settings | None = None,
    reader: SnapshotReader | None = None,
) -> VerificationReport:
    """
    Collect every configured replica and compare them.

    Args:
        settings: Verifier settings (default: cached environment settings)
        reader: Snapshot reader override (default: RocksDB read-only reader)

    Returns:
        VerificationReport: Verdict for the run
    """
    settings = settings or get_settings()
    collector = DatasetCollector(
        reader=reader,
        open_timeout_seconds=settings.open_timeout_seconds,
        max_workers=settings.max_workers,
        log_records=settings.log_records,
    )
    comparator = ConsistencyComparator(baseline_replica=settings.baseline_replica)

    logger.info(
        "Verification run started",
        base_directory=str(settings.base_directory),
        replicas=settings.replica_ids,
    )
    aggregate = await collector.collect(settings.replica_targets())
    return comparator.compare(aggregate)


def run_verification(
    settings: Settings | None = None,
    reader: SnapshotReader | None = None,
) -> VerificationReport:
    """Blocking wrapper around verify()."""
    return asyncio.run(verify(settings, reader=reader))
