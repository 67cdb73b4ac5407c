"""
Transaction and operation model.

A Transaction groups ordered Operations. Operations are frozen records; an
outcome annotation (e.g. ROLLED_BACK) replaces the record in place rather
than mutating it, so the log can always be folded back into the same list.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TransactionState(str, Enum):
    PENDING = "PENDING"
    COMMITTING = "COMMITTING"
    COMMITTED = "COMMITTED"
    ROLLING_BACK = "ROLLING_BACK"
    ROLLED_BACK = "ROLLED_BACK"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionState.COMMITTED, TransactionState.ROLLED_BACK, TransactionState.FAILED)


class OperationKind(str, Enum):
    FILE_BACKUP = "FILE_BACKUP"
    FILE_CREATE = "FILE_CREATE"
    FILE_MODIFY = "FILE_MODIFY"
    FILE_DELETE = "FILE_DELETE"
    PACKAGE_INSTALL = "PACKAGE_INSTALL"
    PACKAGE_REMOVE = "PACKAGE_REMOVE"
    EXEC = "EXEC"

    @property
    def is_file(self) -> bool:
        return self in (OperationKind.FILE_CREATE, OperationKind.FILE_MODIFY, OperationKind.FILE_DELETE)

    @property
    def is_package(self) -> bool:
        return self in (OperationKind.PACKAGE_INSTALL, OperationKind.PACKAGE_REMOVE)


class OperationResult(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    ROLLED_BACK = "ROLLED_BACK"


class Severity(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class RecoveryAction(str, Enum):
    RETRY = "RETRY"
    SKIP = "SKIP"
    ABORT = "ABORT"
    FATAL = "FATAL"


class FailureCategory(str, Enum):
    VALIDATION = "VALIDATION"
    TRANSIENT = "TRANSIENT"
    PERMISSION = "PERMISSION"
    INTEGRITY = "INTEGRITY"


@dataclass(frozen=True)
class Classification:
    """
    Classifier output attached to a failed operation.

    Fields:
        category: Failure category
        severity: Log severity for the failure
        action: Recommended recovery action
        message: Human-readable failure description
        attempt: Zero-based attempt number the failure occurred on
        retry_delay: Seconds to wait before retrying (RETRY only)
    """
    category: FailureCategory
    severity: Severity
    action: RecoveryAction
    message: str = ""
    attempt: int = 0
    retry_delay: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "action": self.action.value,
            "message": self.message,
            "attempt": self.attempt,
            "retry_delay": self.retry_delay,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Classification":
        return cls(
            category=FailureCategory(data["category"]),
            severity=Severity(data["severity"]),
            action=RecoveryAction(data["action"]),
            message=data.get("message", ""),
            attempt=data.get("attempt", 0),
            retry_delay=data.get("retry_delay", 0.0),
        )


@dataclass(frozen=True)
class Operation:
    """
    One recorded action within a transaction.

    Fields:
        index: Position within the transaction (0-based, execution order)
        kind: Operation kind
        target: Path, package name or command string
        result: Outcome
        timestamp: When the operation was recorded
        pre_state: Backup reference needed to undo (None for additive actions)
        error: Classifier output when result is FAILED
        attempts: Number of times the action ran
        detail: Captured output excerpt or note
        undo: Compensating command for EXEC operations
        was_installed: Package state before a PACKAGE_* operation
    """
    index: int
    kind: OperationKind
    target: str
    result: OperationResult
    timestamp: datetime
    pre_state: Optional[str] = None
    error: Optional[Classification] = None
    attempts: int = 1
    detail: str = ""
    undo: Optional[str] = None
    was_installed: Optional[bool] = None

    def with_result(self, result: OperationResult) -> "Operation":
        return replace(self, result=result)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "kind": self.kind.value,
            "target": self.target,
            "result": self.result.value,
            "timestamp": self.timestamp.isoformat(),
            "pre_state": self.pre_state,
            "error": self.error.to_dict() if self.error else None,
            "attempts": self.attempts,
            "detail": self.detail,
            "undo": self.undo,
            "was_installed": self.was_installed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Operation":
        error = data.get("error")
        return cls(
            index=data["index"],
            kind=OperationKind(data["kind"]),
            target=data["target"],
            result=OperationResult(data["result"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            pre_state=data.get("pre_state"),
            error=Classification.from_dict(error) if error else None,
            attempts=data.get("attempts", 1),
            detail=data.get("detail", ""),
            undo=data.get("undo"),
            was_installed=data.get("was_installed"),
        )


@dataclass
class Transaction:
    """
    A unit of work.

    operations is append-only while PENDING; afterwards only outcome
    annotations (via Operation.with_result) are applied.
    """
    id: str
    label: str
    created_at: datetime
    state: TransactionState = TransactionState.PENDING
    operations: List[Operation] = field(default_factory=list)
    checkpoint: Optional[str] = None
    ended_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def failed_operations(self) -> List[Operation]:
        return [op for op in self.operations if op.result == OperationResult.FAILED]

    def next_index(self) -> int:
        return len(self.operations)

    def annotate(self, index: int, result: OperationResult) -> Operation:
        """Replace the outcome of operation `index` and return the new record."""
        op = self.operations[index].with_result(result)
        self.operations[index] = op
        return op

    def header(self) -> Dict[str, Any]:
        """Transaction fields without the operation list (one log record)."""
        return {
            "id": self.id,
            "label": self.label,
            "state": self.state.value,
            "checkpoint": self.checkpoint,
            "created_at": self.created_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.header()
        data["operations"] = [op.to_dict() for op in self.operations]
        return data
