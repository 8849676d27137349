"""
Verification Data Model

Value objects for replica snapshots and the report-facing models produced by
the comparator: discrepancies, replica failures, and the verification report.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer

from statecheck.domain.exceptions import ErrorCode, ReplicaError

ReplicaId = str


def render_bytes(data: bytes | None) -> str | None:
    """
    Render a key or value for humans: UTF-8 where possible, escapes otherwise.

    Lossy for bytes that spell out an escape; structured output also carries hex.
    """
    if data is None:
        return None
    return data.decode("utf-8", errors="backslashreplace")


@dataclass(frozen=True)
class ReplicaTarget:
    """A replica identifier and the store directory it maps to."""

    replica_id: ReplicaId
    path: Path


@dataclass(frozen=True)
class KeyValueRecord:
    """One (key, value) pair as returned by the store."""

    key: bytes
    value: bytes


@dataclass(frozen=True)
class ReplicaDataset:
    """
    Materialized contents of one replica's store.

    Built once from a full scan; the records mapping is a read-only view.
    """

    replica_id: ReplicaId
    path: Path
    records: Mapping[bytes, bytes] = field(default_factory=dict)

    def __post_init__(self):
        """Freeze the records mapping."""
        if not isinstance(self.records, MappingProxyType):
            object.__setattr__(self, "records", MappingProxyType(dict(self.records)))

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, key: object) -> bool:
        return key in self.records

    def __iter__(self) -> Iterator[bytes]:
        return iter(self.records)

    def get(self, key: bytes) -> bytes | None:
        return self.records.get(key)

    def sorted_keys(self) -> list[bytes]:
        """Keys in bytewise order, matching the store's default comparator."""
        return sorted(self.records)


class _ReportModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class CountMismatch(_ReportModel):
    """Replica holds a different number of keys than the baseline."""

    kind: Literal["count_mismatch"] = "count_mismatch"
    replica: ReplicaId
    baseline_replica: ReplicaId
    baseline_count: int
    replica_count: int

    def describe(self) -> str:
        return (
            f"replica [{self.replica}] holds {self.replica_count} keys, "
            f"baseline [{self.baseline_replica}] holds {self.baseline_count}"
        )


class MissingKey(_ReportModel):
    """Baseline key absent from the replica."""

    kind: Literal["missing_key"] = "missing_key"
    replica: ReplicaId
    baseline_replica: ReplicaId
    key: bytes

    @field_serializer("key", when_used="json")
    def _render_key(self, key: bytes) -> str | None:
        return render_bytes(key)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def key_hex(self) -> str:
        return self.key.hex()

    def describe(self) -> str:
        return f"replica [{self.replica}] is missing key {render_bytes(self.key)!r}"


class ValueMismatch(_ReportModel):
    """Replica holds a different value for a baseline key."""

    kind: Literal["value_mismatch"] = "value_mismatch"
    replica: ReplicaId
    baseline_replica: ReplicaId
    key: bytes
    expected: bytes
    actual: bytes

    @field_serializer("key", "expected", "actual", when_used="json")
    def _render_bytes(self, data: bytes) -> str | None:
        return render_bytes(data)

    # exact bytes; the rendered fields above cannot tell 0xff from a literal "\xff"
    @computed_field  # type: ignore[prop-decorator]
    @property
    def key_hex(self) -> str:
        return self.key.hex()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def expected_hex(self) -> str:
        return self.expected.hex()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def actual_hex(self) -> str:
        return self.actual.hex()

    def describe(self) -> str:
        return (
            f"replica [{self.replica}] key {render_bytes(self.key)!r}: "
            f"expected {render_bytes(self.expected)!r}, got {render_bytes(self.actual)!r}"
        )


Discrepancy = Annotated[
    CountMismatch | MissingKey | ValueMismatch,
    Field(discriminator="kind"),
]


class ReplicaFailure(_ReportModel):
    """Infrastructure failure recorded against one replica."""

    replica: ReplicaId
    path: str
    error_code: ErrorCode
    message: str

    @classmethod
    def from_error(cls, error: ReplicaError) -> "ReplicaFailure":
        return cls(
            replica=error.replica_id,
            path=str(error.path),
            error_code=error.error_code,
            message=error.message,
        )


class VerificationStatus(str, Enum):
    """Overall verdict of a verification run."""

    PASS = "pass"
    INCONCLUSIVE = "inconclusive"  # fewer than two replicas compared
    CONTENT_DIVERGENCE = "content_divergence"
    INFRASTRUCTURE_FAILURE = "infrastructure_failure"


class VerificationReport(_ReportModel):
    """Aggregated result of one verification run."""

    status: VerificationStatus
    baseline_replica: ReplicaId | None = None
    record_counts: dict[ReplicaId, int] = Field(default_factory=dict)
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    failures: list[ReplicaFailure] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def passed(self) -> bool:
        return self.status in (VerificationStatus.PASS, VerificationStatus.INCONCLUSIVE)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    @property
    def has_discrepancies(self) -> bool:
        return bool(self.discrepancies)

    def discrepancies_for(self, replica: ReplicaId) -> list[Discrepancy]:
        return [d for d in self.discrepancies if d.replica == replica]
