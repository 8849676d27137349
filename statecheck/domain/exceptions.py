"""
Verification Exceptions

Exception hierarchy for replica verification errors.
Supports structured error information, error codes, failure categories, and context.
"""

from enum import Enum
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class ErrorCode(str, Enum):
    """Standard error codes for verification exceptions."""

    # Replica infrastructure errors
    DIRECTORY_NOT_FOUND = "DIRECTORY_NOT_FOUND"
    STORE_OPEN_FAILURE = "STORE_OPEN_FAILURE"
    ITERATION_FAILURE = "ITERATION_FAILURE"

    # Run errors
    INCOMPLETE_COLLECTION = "INCOMPLETE_COLLECTION"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class FailureCategory(str, Enum):
    """Which side of the verdict a failure belongs to."""

    INFRASTRUCTURE = "infrastructure"
    CONTENT = "content"
    CONFIGURATION = "configuration"


class VerificationError(Exception):
    """
    Base class for all verification exceptions.

    Provides structured error information with error codes, category, and context.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        category: FailureCategory = FailureCategory.INFRASTRUCTURE,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        """
        Initialize verification exception.

        Args:
            message: Human-readable error message
            error_code: Standard error code
            category: Failure category used by the verdict
            context: Additional context data
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.category = category
        self.context = context or {}
        self.cause = cause

        logger.error(
            "Verification exception raised",
            error_code=error_code.value,
            message=message,
            category=category.value,
            context=self.context,
            exception_type=type(self).__name__,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured output."""
        result = {
            "error": self.error_code.value,
            "message": self.message,
            "category": self.category.value,
            "type": type(self).__name__,
        }
        if self.context:
            result["context"] = self.context
        return result


class ReplicaError(VerificationError):
    """Infrastructure error isolated to a single replica."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        replica_id: str,
        path: Path | str,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        context["replica_id"] = replica_id
        context["path"] = str(path)

        super().__init__(
            message=message,
            error_code=error_code,
            category=FailureCategory.INFRASTRUCTURE,
            context=context,
            **kwargs
        )
        self.replica_id = replica_id
        self.path = Path(path)


class DirectoryNotFoundError(ReplicaError):
    """Raised when a replica's store directory is missing or is not a store."""

    def __init__(
        self,
        replica_id: str,
        path: Path | str,
        reason: str | None = None,
        **kwargs
    ):
        message = f"State machine directory for replica [{replica_id}] not found: {path}"
        if reason:
            message += f" ({reason})"

        super().__init__(
            message=message,
            error_code=ErrorCode.DIRECTORY_NOT_FOUND,
            replica_id=replica_id,
            path=path,
            **kwargs
        )


class StoreOpenError(ReplicaError):
    """Raised when a replica's store cannot be opened read-only."""

    def __init__(
        self,
        replica_id: str,
        path: Path | str,
        reason: str | None = None,
        timeout: bool = False,
        **kwargs
    ):
        default_reason = "open timed out" if timeout else "store could not be opened read-only"
        message = f"Replica [{replica_id}] store open failed: {reason or default_reason}"

        context = kwargs.pop("context", {})
        context["timeout"] = timeout

        super().__init__(
            message=message,
            error_code=ErrorCode.STORE_OPEN_FAILURE,
            replica_id=replica_id,
            path=path,
            context=context,
            **kwargs
        )
        self.timeout = timeout


class IterationError(ReplicaError):
    """Raised when a scan of a replica's store is interrupted."""

    def __init__(
        self,
        replica_id: str,
        path: Path | str,
        reason: str | None = None,
        records_read: int = 0,
        **kwargs
    ):
        message = f"Replica [{replica_id}] scan failed after {records_read} records"
        if reason:
            message += f": {reason}"

        context = kwargs.pop("context", {})
        context["records_read"] = records_read

        super().__init__(
            message=message,
            error_code=ErrorCode.ITERATION_FAILURE,
            replica_id=replica_id,
            path=path,
            context=context,
            **kwargs
        )
        self.records_read = records_read


class IncompleteCollectionError(VerificationError):
    """Raised when comparison is attempted before every replica has finished."""

    def __init__(self, pending: list[str], **kwargs):
        super().__init__(
            message=f"Collection still pending for replicas: {', '.join(pending)}",
            error_code=ErrorCode.INCOMPLETE_COLLECTION,
            category=FailureCategory.INFRASTRUCTURE,
            context={"pending": pending},
            **kwargs
        )
        self.pending = pending


class ConfigurationError(VerificationError):
    """Raised when the verifier is configured inconsistently."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field

        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            category=FailureCategory.CONFIGURATION,
            context=context,
            **kwargs
        )
        self.field = field
