"""Exceptions for record lifecycle operations."""

from typing import Any, List, Optional


class LifecycleError(Exception):
    """Base exception for lifecycle operations.

    ``completed_steps`` and ``pending_operation_id`` are filled in by the
    coordinator when the error interrupts a multi-step operation. A non-empty
    ``completed_steps`` means part of the operation is already committed.
    """

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        record_id: Optional[Any] = None,
    ):
        self.message = message
        self.table = table
        self.record_id = None if record_id is None else str(record_id)
        self.completed_steps: List[str] = []
        self.pending_operation_id: Optional[str] = None
        super().__init__(message)

    @property
    def is_partial(self) -> bool:
        """True when some steps were committed before the failure."""
        return bool(self.completed_steps)


class NotFoundError(LifecycleError):
    """Raised when a record or trash entry does not exist."""

    def __init__(self, table: str, record_id: Any):
        super().__init__(
            f"Record {record_id} not found in {table}",
            table=table,
            record_id=record_id,
        )


class CascadeResolutionError(LifecycleError):
    """Raised when a booking's document linkage cannot be resolved."""


class StorageError(LifecycleError):
    """Raised when the object store fails."""

    def __init__(self, message: str, bucket: str, paths: Optional[List[str]] = None):
        self.bucket = bucket
        self.paths = list(paths or [])
        super().__init__(message)


class AuditWriteError(LifecycleError):
    """Raised when an audit entry cannot be written.

    The mutation the entry describes may already be committed.
    """


class InvalidReasonError(LifecycleError, ValueError):
    """Raised when a deletion reason is shorter than the configured minimum."""

    def __init__(self, min_length: int):
        self.min_length = min_length
        super().__init__(f"Deletion reason must be at least {min_length} characters")


class RequiredFieldsError(LifecycleError):
    """Raised when a create is missing descriptor-required fields."""

    def __init__(self, table: str, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            f"Missing required fields for {table}: {', '.join(missing)}",
            table=table,
        )


class StepTimeoutError(LifecycleError):
    """Raised when a single lifecycle step exceeds its time budget."""

    def __init__(self, step: str, timeout: float):
        self.step = step
        self.timeout = timeout
        super().__init__(f"Step '{step}' timed out after {timeout:g}s")


class OperationFailedError(LifecycleError):
    """Wraps an unexpected backend exception raised inside a lifecycle step."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        super().__init__(f"Step '{step}' failed: {cause}")
