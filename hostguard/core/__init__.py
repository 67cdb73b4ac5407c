"""
Core primitives shared by every store.

- model: Transaction, Operation, Classification and their enumerations
- events: lifecycle events and the in-process event bus
- canonical: canonical JSON for persisted records
- clock: injectable wall clocks
- ids: transaction ids and path hashes
- errors: exception taxonomy
"""

from .model import (
    Classification,
    FailureCategory,
    Operation,
    OperationKind,
    OperationResult,
    RecoveryAction,
    Severity,
    Transaction,
    TransactionState,
)
from .events import Event, EventBus
from .canonical import canonicalize, canonical_json_bytes, canonical_json_str
from .clock import ManualClock, SystemClock
from .ids import path_hash, transaction_id
from .errors import (
    AlreadyActiveError,
    AlreadyTerminalError,
    HasFailedOperationsError,
    HostGuardError,
    IntegrityError,
    InvalidTransitionError,
)

__all__ = [
    "Classification",
    "FailureCategory",
    "Operation",
    "OperationKind",
    "OperationResult",
    "RecoveryAction",
    "Severity",
    "Transaction",
    "TransactionState",
    "Event",
    "EventBus",
    "canonicalize",
    "canonical_json_bytes",
    "canonical_json_str",
    "ManualClock",
    "SystemClock",
    "path_hash",
    "transaction_id",
    "AlreadyActiveError",
    "AlreadyTerminalError",
    "HasFailedOperationsError",
    "HostGuardError",
    "IntegrityError",
    "InvalidTransitionError",
]
