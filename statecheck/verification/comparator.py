"""
Replica Consistency Comparator

Diffs every collected replica dataset against a baseline replica.

Correctness sketch: if a replica holds as many keys as the baseline and every
baseline key is present with an equal value, the two datasets are equal, so
extra keys never need a separate scan; they always surface as a count mismatch.
"""

import structlog

from statecheck.domain.exceptions import ConfigurationError, IncompleteCollectionError
from statecheck.domain.models import (
    CountMismatch,
    Discrepancy,
    MissingKey,
    ReplicaDataset,
    ReplicaId,
    ValueMismatch,
    VerificationReport,
    VerificationStatus,
)
from statecheck.verification.collector import CollectionAggregate

logger = structlog.get_logger(__name__)


def diff_datasets(baseline: ReplicaDataset, replica: ReplicaDataset) -> list[Discrepancy]:
    """
    Compute every divergence of one replica from the baseline.

    Args:
        baseline: Reference dataset
        replica: Dataset under test

    Returns:
        list[Discrepancy]: Count mismatch first, then key findings in bytewise key order
    """
    discrepancies: list[Discrepancy] = []

    if len(replica) != len(baseline):
        discrepancies.append(
            CountMismatch(
                replica=replica.replica_id,
                baseline_replica=baseline.replica_id,
                baseline_count=len(baseline),
                replica_count=len(replica),
            )
        )

    for key in baseline.sorted_keys():
        expected = baseline.records[key]
        actual = replica.get(key)
        if actual is None:
            discrepancies.append(
                MissingKey(
                    replica=replica.replica_id,
                    baseline_replica=baseline.replica_id,
                    key=key,
                )
            )
        elif actual != expected:
            discrepancies.append(
                ValueMismatch(
                    replica=replica.replica_id,
                    baseline_replica=baseline.replica_id,
                    key=key,
                    expected=expected,
                    actual=actual,
                )
            )

    return discrepancies


class ConsistencyComparator:
    """
    Compares a completed collection aggregate and produces the verdict.

    Every replica and every key is checked; findings are collected rather
    than failing on the first mismatch.
    """

    def __init__(self, baseline_replica: ReplicaId | None = None):
        """
        Initialize comparator.

        Args:
            baseline_replica: Replica to compare against (default: first collected)
        """
        self.baseline_replica = baseline_replica

    def select_baseline(self, aggregate: CollectionAggregate) -> ReplicaDataset | None:
        """
        Pick the baseline dataset.

        Raises:
            ConfigurationError: If the configured baseline is not a target
        """
        datasets = aggregate.datasets
        if self.baseline_replica is None:
            return datasets[0] if datasets else None

        if self.baseline_replica not in aggregate.replica_ids:
            raise ConfigurationError(
                message=f"Baseline replica {self.baseline_replica!r} is not a verification target",
                field="baseline_replica",
            )

        configured = aggregate.dataset(self.baseline_replica)
        if configured is not None:
            return configured

        fallback = datasets[0] if datasets else None
        logger.warning(
            "Configured baseline was not collected, falling back",
            baseline_replica=self.baseline_replica,
            fallback=fallback.replica_id if fallback else None,
        )
        return fallback

    def compare(self, aggregate: CollectionAggregate) -> VerificationReport:
        """
        Compare every collected replica against the baseline.

        Args:
            aggregate: Completed collection aggregate

        Returns:
            VerificationReport: Verdict with all discrepancies and failures

        Raises:
            IncompleteCollectionError: If any replica is still pending
        """
        if not aggregate.is_complete:
            raise IncompleteCollectionError(pending=aggregate.pending)

        datasets = aggregate.datasets
        failures = aggregate.failures
        record_counts = {dataset.replica_id: len(dataset) for dataset in datasets}

        logger.info("Verifying data consistency across replicas", replicas=len(aggregate.targets))

        baseline = self.select_baseline(aggregate)
        if baseline is None:
            logger.warning("No replica data collected, consistency cannot be verified")
            return VerificationReport(
                status=VerificationStatus.INFRASTRUCTURE_FAILURE,
                record_counts=record_counts,
                failures=failures,
            )

        discrepancies: list[Discrepancy] = []
        for dataset in datasets:
            if dataset.replica_id == baseline.replica_id:
                continue
            found = diff_datasets(baseline, dataset)
            if found:
                logger.warning(
                    "Replica diverges from baseline",
                    replica_id=dataset.replica_id,
                    baseline_replica=baseline.replica_id,
                    discrepancies=len(found),
                )
            discrepancies.extend(found)

        if failures:
            status = VerificationStatus.INFRASTRUCTURE_FAILURE
        elif discrepancies:
            status = VerificationStatus.CONTENT_DIVERGENCE
        elif len(datasets) < 2:
            status = VerificationStatus.INCONCLUSIVE
        else:
            status = VerificationStatus.PASS

        logger.info(
            "Consistency verification finished",
            status=status.value,
            baseline_replica=baseline.replica_id,
            discrepancies=len(discrepancies),
            failures=len(failures),
        )

        return VerificationReport(
            status=status,
            baseline_replica=baseline.replica_id,
            record_counts=record_counts,
            discrepancies=discrepancies,
            failures=failures,
        )
