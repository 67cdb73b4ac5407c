"""
Exception types for the checkpoint and rollback subsystem.
"""

from typing import Any, Optional


class HostGuardError(Exception):
    """Base class for all hostguard errors."""
    pass


class AlreadyActiveError(HostGuardError):
    """Raised when begin() is called while another transaction holds the host lock."""
    pass


class AlreadyTerminalError(HostGuardError):
    """Raised when commit/rollback is attempted on a terminal transaction."""
    pass


class HasFailedOperationsError(HostGuardError):
    """Raised when commit() finds FAILED operations that were not rolled back."""
    pass


class InvalidTransitionError(HostGuardError):
    """Raised when a transaction state transition is not allowed."""
    pass


class TransactionNotFoundError(HostGuardError):
    pass


class CheckpointNotFoundError(HostGuardError):
    pass


class CheckpointExistsError(HostGuardError):
    pass


class BackupNotFoundError(HostGuardError):
    pass


class CaptureError(HostGuardError):
    """Raised when a file cannot be captured into the backup store."""
    pass


class TargetNotFoundError(CaptureError):
    pass


class PermissionDeniedError(CaptureError):
    pass


class RestoreError(HostGuardError):
    """Raised when a backup cannot be written back over its original path."""
    pass


class WriteFailedError(RestoreError):
    pass


class IntegrityError(HostGuardError):
    """Raised when checksum or hash chain verification fails."""
    pass


class ChecksumMismatchError(IntegrityError):
    pass


class OperationLogError(HostGuardError):
    """Raised when operation log operations fail."""
    pass


class LockError(HostGuardError):
    """Raised when the host lock file cannot be read or written."""
    pass


class MissingDependencyError(HostGuardError):
    """Raised when a required host tool (e.g. a package manager) is unavailable."""
    pass


class OperationFailedError(HostGuardError):
    """
    Raised when an operation's action failed and the transaction did not continue.

    Attributes:
        operation: The recorded Operation (result FAILED)
        classification: Classifier output for the failure
    """

    def __init__(self, message: str, operation: Any = None, classification: Any = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.classification = classification


class TransactionAbortedError(OperationFailedError):
    """Raised after an ABORT-classified failure triggered automatic rollback."""

    def __init__(
        self,
        message: str,
        operation: Any = None,
        classification: Any = None,
        report: Any = None,
    ) -> None:
        super().__init__(message, operation=operation, classification=classification)
        self.report = report


class FatalError(OperationFailedError):
    """
    CRITICAL/FATAL condition: no further automatic action is taken.

    Carries the diagnostic context an operator needs to restore manually.
    """

    def __init__(
        self,
        message: str,
        operation: Any = None,
        classification: Any = None,
        checkpoint: Optional[str] = None,
        report: Any = None,
    ) -> None:
        super().__init__(message, operation=operation, classification=classification)
        self.checkpoint = checkpoint
        self.report = report
