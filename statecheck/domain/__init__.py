"""
Verification Domain

Data model, exception hierarchy, and report rendering shared by every verification stage.
"""

from statecheck.domain.exceptions import (
    ConfigurationError,
    DirectoryNotFoundError,
    ErrorCode,
    FailureCategory,
    IncompleteCollectionError,
    IterationError,
    ReplicaError,
    StoreOpenError,
    VerificationError,
)
from statecheck.domain.models import (
    CountMismatch,
    Discrepancy,
    KeyValueRecord,
    MissingKey,
    ReplicaDataset,
    ReplicaFailure,
    ReplicaId,
    ReplicaTarget,
    ValueMismatch,
    VerificationReport,
    VerificationStatus,
    render_bytes,
)
from statecheck.domain.reports import ExitCode, ReportEmitter, ReportFormat, exit_code

__all__ = [
    "ConfigurationError",
    "CountMismatch",
    "DirectoryNotFoundError",
    "Discrepancy",
    "ErrorCode",
    "ExitCode",
    "FailureCategory",
    "IncompleteCollectionError",
    "IterationError",
    "KeyValueRecord",
    "MissingKey",
    "ReplicaDataset",
    "ReplicaError",
    "ReplicaFailure",
    "ReplicaId",
    "ReplicaTarget",
    "ReportEmitter",
    "ReportFormat",
    "StoreOpenError",
    "ValueMismatch",
    "VerificationError",
    "VerificationReport",
    "VerificationStatus",
    "exit_code",
    "render_bytes",
]
