"""
Replica Consistency Verification

Collects replica snapshots and verifies that every replica holds the same data.
"""

from statecheck.verification.collector import CollectionAggregate, DatasetCollector
from statecheck.verification.comparator import ConsistencyComparator, diff_datasets
from statecheck.verification.pipeline import run_verification, verify

__all__ = [
    "CollectionAggregate",
    "ConsistencyComparator",
    "DatasetCollector",
    "diff_datasets",
    "run_verification",
    "verify",
]
