"""
Structured error types for portables.

Provides a hierarchy of typed errors with metadata for error
categorization, reporting, and root cause analysis through error chaining.

Manifesto:
    - **Typed Error Hierarchy:** Different error types for different failure modes
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry job/category metadata for logging
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      PortablesError                              │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ValidationError                           StorageError          │
        │  (VALIDATION)                              (STORAGE)             │
        │       │                                        │                 │
        │  PreconditionError                      ArchiveNotFoundError    │
        │                                         ArchiveError            │
        │                                                                  │
        │  OrchestrationError                       JobNotFoundError      │
        │  (ORCHESTRATION)                          (STORAGE)             │
        │       │                                                          │
        │  ServiceRegistrationError                                        │
        │  ServiceExecutionError                                           │
        │  OperationCancelled                                              │
        └─────────────────────────────────────────────────────────────────┘

Error propagation:
    Precondition failures (malformed request payload, empty export
    selection, missing archive, too-new archive schema) are raised by
    the parsing helpers and converted by the engine into a DoneFailure
    result plus a run-log note. They never reach the host scheduler.

Examples:
    >>> error = PreconditionError("No items selected for exporting")
    >>> error.category
    <ErrorCategory.VALIDATION: 'VALIDATION'>
    >>> error.with_context(job_id="01J9").context.job_id
    '01J9'

Tags:
    error-handling, exception-hierarchy, error-context, portables
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"
    STORAGE = "STORAGE"
    VALIDATION = "VALIDATION"
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Attributes:
        job_id: Export/import job identifier
        direction: ``"export"`` or ``"import"``
        category: Portable category being processed when the error occurred
        archive: Archive file name
        metadata: Additional key-value pairs
    """

    job_id: str | None = None
    direction: str | None = None
    category: str | None = None
    archive: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_id", "direction", "category", "archive"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class PortablesError(Exception):
    """
    Base exception for all portables errors.

    All PortablesError instances carry:
    - **category:** ErrorCategory enum for classification
    - **retryable:** Whether the job can simply be re-run
    - **context:** ErrorContext with structured metadata
    - **cause:** Optional underlying exception for chaining

    Subclasses set ``default_category`` and ``default_retryable``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> PortablesError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ArchiveError("Corrupt archive").with_context(
                job_id=job.job_id, archive="site.db"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(PortablesError):
    """
    Data validation error.

    Never retryable - the request must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class PreconditionError(ValidationError):
    """A job cannot start: bad payload, empty selection, or incompatible schema."""

    pass


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(PortablesError):
    """Archive, checkpoint or job storage error."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class ArchiveNotFoundError(StorageError):
    """The archive an import job points at does not exist."""

    def __init__(self, path: str, **kwargs: Any):
        self.path = path
        super().__init__(f"Import file not found. Name: {path}", **kwargs)


class ArchiveError(StorageError):
    """The archive exists but cannot be read as a portable archive."""

    pass


class JobNotFoundError(StorageError):
    """No job with the requested id exists in the job store."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(PortablesError):
    """Service discovery or engine execution error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class ServiceRegistrationError(OrchestrationError):
    """A portable service type cannot be registered (duplicate category, bad declaration)."""

    pass


class ServiceExecutionError(OrchestrationError):
    """A portable service raised while exporting or importing its category."""

    def __init__(self, service_category: str, cause: Exception):
        self.service_category = service_category
        super().__init__(
            f"Service '{service_category}' failed: {cause}",
            cause=cause,
            context=ErrorContext(category=service_category),
        )


class OperationCancelled(OrchestrationError):
    """Raised by a cancellation token when cooperative cancellation was requested."""

    pass


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "PortablesError",
    "ValidationError",
    "PreconditionError",
    "StorageError",
    "ArchiveNotFoundError",
    "ArchiveError",
    "JobNotFoundError",
    "OrchestrationError",
    "ServiceRegistrationError",
    "ServiceExecutionError",
    "OperationCancelled",
]
