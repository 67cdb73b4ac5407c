"""
Transaction manager: BEGIN -> operations -> COMMIT / ROLLBACK.

State machine:
    PENDING -> COMMITTING -> COMMITTED
    PENDING -> ROLLING_BACK -> ROLLED_BACK
    any non-terminal -> FAILED   (rollback could not complete, or FATAL failure)

Every mutating operation first writes its undo data (a backup, an "absent"
marker or the prior package state) into the transaction's checkpoint, then
runs the action. An EXEC compensating command is the exception: it is
recorded only after its action succeeded. Failures are classified, recorded
in the operation log, and only then acted upon. The host lock heartbeat is
refreshed from a background thread while an operation runs.

Usage:
    manager = TransactionManager(HostGuardConfig.from_env())
    with manager.transaction("update nginx config") as txn:
        manager.write_file(txn, "/etc/nginx/nginx.conf", new_content)
        manager.run_command(txn, "nginx -t")
"""

import logging
import os
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .backup.store import BackupStore
from .checkpoint.model import Checkpoint, RestoreReport
from .checkpoint.store import CheckpointStore
from .classify import ErrorClassifier, RawFailure, RetryPolicy
from .config import HostGuardConfig
from .core.clock import SystemClock
from .core.errors import (
    AlreadyTerminalError,
    CheckpointNotFoundError,
    FatalError,
    HasFailedOperationsError,
    HostGuardError,
    InvalidTransitionError,
    MissingDependencyError,
    OperationFailedError,
    TargetNotFoundError,
    TransactionAbortedError,
)
from .core.events import (
    OPERATION_RESULT,
    OPERATION_STARTED,
    TRANSACTION_COMMITTED,
    TRANSACTION_ROLLED_BACK,
    Event,
    EventBus,
)
from .core.fsio import atomic_write
from .core.ids import transaction_id
from .core.model import (
    Classification,
    Operation,
    OperationKind,
    OperationResult,
    RecoveryAction,
    Severity,
    Transaction,
    TransactionState,
)
from .host.packages import PackageManager, detect_package_manager
from .host.runner import CommandResult, CommandRunner
from .lock import HostLock
from .log.operation_log import OperationLog
from .logging_config import get_logger

logger = logging.getLogger(__name__)

Action = Callable[[], object]
Validator = Callable[[str, str], bool]

ALLOWED_TRANSITIONS: Dict[TransactionState, Tuple[TransactionState, ...]] = {
    TransactionState.PENDING: (
        TransactionState.COMMITTING,
        TransactionState.ROLLING_BACK,
        TransactionState.FAILED,
    ),
    TransactionState.COMMITTING: (TransactionState.COMMITTED, TransactionState.FAILED),
    TransactionState.ROLLING_BACK: (TransactionState.ROLLED_BACK, TransactionState.FAILED),
    TransactionState.COMMITTED: (),
    TransactionState.ROLLED_BACK: (),
    TransactionState.FAILED: (),
}

_LEVELS = {
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


class TransactionManager:
    """
    Orchestrates transactions over the backup, checkpoint and log stores.

    Collaborators default to ones built from `config`; tests inject fakes
    (package manager, clock, sleep) instead.
    """

    def __init__(
        self,
        config: HostGuardConfig,
        backups: Optional[BackupStore] = None,
        checkpoints: Optional[CheckpointStore] = None,
        log: Optional[OperationLog] = None,
        lock: Optional[HostLock] = None,
        classifier: Optional[ErrorClassifier] = None,
        runner: Optional[CommandRunner] = None,
        packages: Optional[PackageManager] = None,
        validator: Optional[Validator] = None,
        events: Optional[EventBus] = None,
        clock=None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.clock = clock or SystemClock()
        self.runner = runner or CommandRunner(timeout=config.command_timeout)
        self.packages = packages if packages is not None else detect_package_manager(self.runner)
        self.backups = backups or BackupStore(config.backup_root, clock=self.clock)
        self.checkpoints = checkpoints or CheckpointStore(
            config.checkpoint_root,
            self.backups,
            packages=self.packages,
            runner=self.runner,
            clock=self.clock,
        )
        self.log = log or OperationLog(config.log_root)
        self.lock = lock or HostLock(config.lock_path, stale_after=config.lock_stale_seconds, clock=self.clock)
        self.classifier = classifier or ErrorClassifier(
            RetryPolicy(
                budget=config.retry_budget,
                base_delay=config.retry_base_delay,
                max_delay=config.retry_max_delay,
            )
        )
        self.validator = validator
        self.events = events or EventBus()
        self.sleep = sleep
        self.auto_rollback = config.auto_rollback
        self._open: Dict[str, Checkpoint] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def begin(self, label: str) -> Transaction:
        """
        Start a transaction and take the host lock.

        Raises:
            AlreadyActiveError: If another transaction is in progress on this host
        """
        now = self.clock.now()
        tid = transaction_id(now)
        self.lock.acquire(tid)
        txn = Transaction(id=tid, label=label, created_at=now)
        try:
            self.log.record_transaction(txn)
        except HostGuardError:
            self.lock.release(tid)
            raise
        get_logger(__name__, tid).info(f"Began transaction {label!r}")
        return txn

    def _transition(self, txn: Transaction, state: TransactionState) -> None:
        if state not in ALLOWED_TRANSITIONS[txn.state]:
            raise InvalidTransitionError(f"{txn.id}: {txn.state.value} -> {state.value} is not allowed")
        txn.state = state
        if state.is_terminal:
            txn.ended_at = self.clock.now()
        self.log.record_transaction(txn)
        get_logger(__name__, txn.id).debug(f"State -> {state.value}")

    def _require_pending(self, txn: Transaction) -> None:
        if txn.is_terminal:
            raise AlreadyTerminalError(f"transaction {txn.id} is already {txn.state.value}")
        if txn.state != TransactionState.PENDING:
            raise InvalidTransitionError(f"transaction {txn.id} is {txn.state.value}, not PENDING")

    def _emit(self, event_type: str, txn: Transaction, payload: Dict) -> None:
        self.events.emit(Event(type=event_type, transaction_id=txn.id, ts=self.clock.now(), payload=payload))

    def _release(self, txn: Transaction) -> None:
        if not self.lock.release(txn.id):
            get_logger(__name__, txn.id).warning("Host lock was no longer held at release")
        self._open.pop(txn.id, None)

    def commit(self, txn: Transaction) -> None:
        """
        Commit a transaction.

        The checkpoint and its backups are kept for manual restore until
        cleanup() prunes them.

        Raises:
            AlreadyTerminalError: If the transaction already ended
            HasFailedOperationsError: If a FAILED operation was not rolled back
        """
        self._require_pending(txn)
        failed = txn.failed_operations()
        if failed:
            raise HasFailedOperationsError(
                f"transaction {txn.id} has {len(failed)} failed operation(s): "
                + ", ".join(f"#{op.index} {op.kind.value} {op.target}" for op in failed)
            )
        self._transition(txn, TransactionState.COMMITTING)
        self._release(txn)
        self._transition(txn, TransactionState.COMMITTED)
        get_logger(__name__, txn.id).info(f"Committed transaction {txn.label!r} ({len(txn.operations)} operations)")
        self._emit(TRANSACTION_COMMITTED, txn, {"label": txn.label, "operations": len(txn.operations)})

    def rollback(self, txn: Transaction) -> RestoreReport:
        """
        Undo every operation of a transaction, newest first.

        Ends ROLLED_BACK on a complete restore, FAILED on a partial one. A
        FAILED transaction is never restored again automatically.

        Raises:
            AlreadyTerminalError: If the transaction already ended
        """
        if txn.is_terminal:
            raise AlreadyTerminalError(f"transaction {txn.id} is already {txn.state.value}")
        if txn.state != TransactionState.ROLLING_BACK:
            self._transition(txn, TransactionState.ROLLING_BACK)

        log = get_logger(__name__, txn.id)
        try:
            checkpoint = self._checkpoint_for(txn)
        except CheckpointNotFoundError:
            log.critical(f"Checkpoint {txn.checkpoint} is missing; transaction cannot be rolled back")
            self._fail(txn)
            raise
        if checkpoint is None:
            report = RestoreReport(checkpoint="")
        else:
            report = self.checkpoints.restore(checkpoint)

        unrestored = set(report.failed_operation_indexes())
        # A FILE_BACKUP capture shares its backup with the mutation it protects.
        unrestored_backups = {outcome.entry.backup for outcome in report.failed if outcome.entry.backup}
        for op in list(txn.operations):
            if op.result in (OperationResult.SKIPPED, OperationResult.ROLLED_BACK) or op.index in unrestored:
                continue
            if op.kind == OperationKind.FILE_BACKUP and op.pre_state in unrestored_backups:
                continue
            self.log.record(txn.id, txn.annotate(op.index, OperationResult.ROLLED_BACK))

        if report.ok:
            self._transition(txn, TransactionState.ROLLED_BACK)
            log.info(f"Rolled back transaction {txn.label!r} ({len(report.succeeded)} entries restored)")
        else:
            self._transition(txn, TransactionState.FAILED)
            log.critical(
                f"Rollback of {txn.label!r} is PARTIAL; operations {sorted(unrestored)} were not undone. "
                f"Restore checkpoint {txn.checkpoint} manually."
            )
        self._release(txn)
        self._emit(TRANSACTION_ROLLED_BACK, txn, {"state": txn.state.value, "report": report.to_dict()})
        return report

    def _fail(self, txn: Transaction) -> None:
        self._transition(txn, TransactionState.FAILED)
        self._release(txn)

    @contextmanager
    def transaction(self, label: str) -> Iterator[Transaction]:
        """Commit on clean exit; roll back if the block raises."""
        txn = self.begin(label)
        try:
            yield txn
        except BaseException:
            if not txn.is_terminal:
                self.rollback(txn)
            raise
        if not txn.is_terminal:
            self.commit(txn)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _ensure_checkpoint(self, txn: Transaction) -> Checkpoint:
        checkpoint = self._open.get(txn.id)
        if checkpoint is not None:
            return checkpoint
        if txn.checkpoint is None:
            checkpoint = self.checkpoints.create(txn.id, transaction_id=txn.id)
            txn.checkpoint = checkpoint.name
            self.log.record_transaction(txn)
        else:
            checkpoint = self.checkpoints.get(txn.checkpoint)
        self._open[txn.id] = checkpoint
        return checkpoint

    def _checkpoint_for(self, txn: Transaction) -> Optional[Checkpoint]:
        if txn.id in self._open:
            return self._open[txn.id]
        if txn.checkpoint is None:
            return None
        return self.checkpoints.get(txn.checkpoint)

    def _append(self, txn: Transaction, op: Operation) -> Operation:
        txn.operations.append(op)
        self.log.record(txn.id, op)
        return op

    def _capture(self, txn: Transaction, kind: OperationKind, target: str) -> Tuple[Optional[str], Optional[bool]]:
        """
        Write undo data for the next operation into the checkpoint.

        Returns:
            (pre_state backup reference, prior package state)
        """
        if kind.is_file:
            exists = os.path.lexists(target)
            if not exists and kind in (OperationKind.FILE_MODIFY, OperationKind.FILE_DELETE):
                raise TargetNotFoundError(f"{kind.value} target does not exist: {target}")
            checkpoint = self._ensure_checkpoint(txn)
            if not exists:
                self.checkpoints.add_absent(checkpoint, target, operation_index=txn.next_index())
                return None, None
            backup = self.backups.capture(target, reason=f"{txn.id} {kind.value}")
            self._append(
                txn,
                Operation(
                    index=txn.next_index(),
                    kind=OperationKind.FILE_BACKUP,
                    target=target,
                    result=OperationResult.SUCCESS,
                    timestamp=self.clock.now(),
                    pre_state=backup.reference,
                    detail=f"sha256:{backup.checksum}",
                ),
            )
            self.checkpoints.add_backup(checkpoint, backup, operation_index=txn.next_index())
            return backup.reference, None

        if kind.is_package:
            packages = self._package_manager()
            was_installed = packages.is_installed(target)
            checkpoint = self._ensure_checkpoint(txn)
            self.checkpoints.add_package(checkpoint, target, was_installed, operation_index=txn.next_index())
            return None, was_installed

        return None, None

    def _package_manager(self) -> PackageManager:
        if self.packages is None:
            raise MissingDependencyError("no supported package manager (apt-get, dnf, yum) found on this host")
        return self.packages

    def _attempt(self, action: Action) -> Tuple[Optional[RawFailure], str]:
        try:
            result = action()
        except Exception as ex:
            return RawFailure.from_exception(ex), ""
        if isinstance(result, CommandResult):
            if not result.ok:
                return RawFailure.from_command(result), result.excerpt()
            return None, result.excerpt()
        if result is False:
            return RawFailure("action reported failure"), ""
        return None, ""

    def add_operation(
        self,
        txn: Transaction,
        kind: OperationKind,
        target: str,
        action: Action,
        validate: Optional[str] = None,
        optional: bool = False,
        undo: Optional[str] = None,
    ) -> Operation:
        """
        Capture undo data, run `action`, and record the outcome.

        Args:
            txn: PENDING transaction
            kind: Operation kind (FILE_BACKUP is recorded by the manager itself)
            target: Path, package name or command string
            action: Callable performing the change. Raising, returning False
                or returning a failed CommandResult counts as failure.
            validate: Validator rule checked after the action succeeds
            optional: Skip instead of aborting on ERROR-class failures
            undo: Compensating command for an EXEC operation, recorded only
                once the action has succeeded

        Returns:
            The recorded Operation (SUCCESS or SKIPPED)

        Raises:
            TransactionAbortedError: ABORT failure; the transaction was rolled back
            OperationFailedError: ABORT failure with auto rollback disabled
            FatalError: FATAL failure or partial rollback; the transaction is FAILED
        """
        self._require_pending(txn)
        if kind == OperationKind.FILE_BACKUP:
            raise ValueError("FILE_BACKUP operations are recorded by the manager")
        if validate and self.validator is None:
            raise ValueError("validate rule given but no validator configured")
        if kind.is_file:
            target = os.path.abspath(target)

        log = get_logger(__name__, txn.id)
        self.lock.heartbeat(txn.id)
        self._emit(OPERATION_STARTED, txn, {"kind": kind.value, "target": target})

        pre_state: Optional[str] = None
        was_installed: Optional[bool] = None
        attempts = 0
        detail = ""
        classification: Optional[Classification] = None
        with self.lock.keepalive(txn.id, self.config.heartbeat_interval):
            try:
                pre_state, was_installed = self._capture(txn, kind, target)
            except HostGuardError as ex:
                classification = self.classifier.classify(RawFailure.from_exception(ex), attempt=0, optional=optional)
                classification = self._no_retry(classification, optional)
                log.log(_LEVELS[classification.severity], f"Cannot capture state for {kind.value} {target}: {classification.message}")

            while classification is None:
                raw, detail = self._attempt(action)
                attempts += 1
                if raw is None and validate:
                    if not self.validator(target, validate):
                        raw = RawFailure.validation(f"validation rule {validate!r} rejected {target}")
                if raw is None:
                    break
                classification = self.classifier.classify(raw, attempt=attempts - 1, optional=optional)
                log.log(
                    _LEVELS[classification.severity],
                    f"{kind.value} {target} failed (attempt {attempts}, {classification.category.value} -> "
                    f"{classification.action.value}): {classification.message}",
                )
                if classification.action == RecoveryAction.RETRY:
                    self.sleep(classification.retry_delay)
                    self.lock.heartbeat(txn.id)
                    classification = None

            if classification is None and undo:
                # Only an action that ran to success gets its compensating command.
                try:
                    checkpoint = self._ensure_checkpoint(txn)
                    self.checkpoints.add_command(checkpoint, undo, operation_index=txn.next_index())
                except HostGuardError as ex:
                    classification = self.classifier.classify(RawFailure.from_exception(ex), attempt=0, optional=optional)
                    classification = self._no_retry(classification, optional)
                    log.log(
                        _LEVELS[classification.severity],
                        f"Cannot record undo command for {target}; it will not be compensated: {classification.message}",
                    )

        if classification is None:
            result = OperationResult.SUCCESS
        elif classification.action == RecoveryAction.SKIP:
            result = OperationResult.SKIPPED
        else:
            result = OperationResult.FAILED

        op = self._append(
            txn,
            Operation(
                index=txn.next_index(),
                kind=kind,
                target=target,
                result=result,
                timestamp=self.clock.now(),
                pre_state=pre_state,
                error=classification,
                attempts=attempts,
                detail=detail,
                undo=undo,
                was_installed=was_installed,
            ),
        )
        self._emit(OPERATION_RESULT, txn, {"operation": op.to_dict()})
        if result == OperationResult.SUCCESS:
            log.info(f"#{op.index} {kind.value} {target}: SUCCESS")
            return op
        if result == OperationResult.SKIPPED:
            log.warning(f"#{op.index} {kind.value} {target}: SKIPPED (optional)")
            return op
        self._handle_failure(txn, op, classification)
        return op

    def _no_retry(self, classification: Classification, optional: bool) -> Classification:
        # Capture failures are not retried; the action never ran.
        if classification.action != RecoveryAction.RETRY:
            return classification
        action = RecoveryAction.SKIP if optional else RecoveryAction.ABORT
        severity = Severity.WARNING if optional else Severity.ERROR
        return Classification(
            category=classification.category,
            severity=severity,
            action=action,
            message=classification.message,
            attempt=classification.attempt,
        )

    def _handle_failure(self, txn: Transaction, op: Operation, classification: Classification) -> None:
        log = get_logger(__name__, txn.id)
        message = f"{op.kind.value} {op.target} failed: {classification.message}"

        if classification.action == RecoveryAction.FATAL:
            self._fail(txn)
            log.critical(
                f"FATAL: {message}. No further automatic action; "
                f"checkpoint {txn.checkpoint or '-'} holds the undo data."
            )
            raise FatalError(message, operation=op, classification=classification, checkpoint=txn.checkpoint)

        if not self.auto_rollback:
            raise OperationFailedError(message, operation=op, classification=classification)

        self._transition(txn, TransactionState.ROLLING_BACK)
        report = self.rollback(txn)
        if not report.ok:
            raise FatalError(
                f"{message}; rollback was PARTIAL",
                operation=op,
                classification=classification,
                checkpoint=txn.checkpoint,
                report=report,
            )
        raise TransactionAbortedError(message, operation=op, classification=classification, report=report)

    # ------------------------------------------------------------------
    # Convenience operations
    # ------------------------------------------------------------------

    def write_file(
        self,
        txn: Transaction,
        path: str,
        content: Union[str, bytes],
        mode: Optional[int] = None,
        validate: Optional[str] = None,
        optional: bool = False,
    ) -> Operation:
        """Write `content` to `path` (FILE_MODIFY if it exists, else FILE_CREATE)."""
        path = os.path.abspath(path)
        data = content.encode("utf-8") if isinstance(content, str) else content
        if os.path.exists(path):
            kind = OperationKind.FILE_MODIFY
            file_mode = mode if mode is not None else os.stat(path).st_mode & 0o7777
        else:
            kind = OperationKind.FILE_CREATE
            file_mode = mode if mode is not None else 0o644
        return self.add_operation(
            txn,
            kind,
            path,
            lambda: atomic_write(path, data, mode=file_mode),
            validate=validate,
            optional=optional,
        )

    def create_file(
        self,
        txn: Transaction,
        path: str,
        content: Union[str, bytes] = b"",
        mode: int = 0o644,
        validate: Optional[str] = None,
    ) -> Operation:
        """Create a new file; rollback deletes it (or restores what it replaced)."""
        path = os.path.abspath(path)
        data = content.encode("utf-8") if isinstance(content, str) else content
        return self.add_operation(
            txn,
            OperationKind.FILE_CREATE,
            path,
            lambda: atomic_write(path, data, mode=mode),
            validate=validate,
        )

    def delete_file(self, txn: Transaction, path: str, optional: bool = False) -> Operation:
        path = os.path.abspath(path)
        return self.add_operation(txn, OperationKind.FILE_DELETE, path, lambda: os.unlink(path), optional=optional)

    def run_command(
        self,
        txn: Transaction,
        command: Union[str, List[str]],
        timeout: Optional[float] = None,
        undo: Optional[str] = None,
        optional: bool = False,
    ) -> Operation:
        """
        Run a command as an EXEC operation.

        A non-zero exit fails the operation; a timeout kills the command and
        is classified TRANSIENT. `undo` is run on rollback.
        """
        target = command if isinstance(command, str) else " ".join(command)
        return self.add_operation(
            txn,
            OperationKind.EXEC,
            target,
            lambda: self.runner.run(command, timeout=timeout),
            optional=optional,
            undo=undo,
        )

    def install_package(self, txn: Transaction, package: str, timeout: Optional[float] = None) -> Operation:
        return self.add_operation(
            txn,
            OperationKind.PACKAGE_INSTALL,
            package,
            lambda: self._package_manager().install(package, timeout=timeout),
        )

    def remove_package(self, txn: Transaction, package: str, timeout: Optional[float] = None) -> Operation:
        return self.add_operation(
            txn,
            OperationKind.PACKAGE_REMOVE,
            package,
            lambda: self._package_manager().remove(package, timeout=timeout),
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def get_transaction(self, tid: str) -> Transaction:
        """
        Raises:
            TransactionNotFoundError: If no log exists for the id
        """
        return self.log.load(tid)

    def list_transactions(self) -> List[Transaction]:
        """All logged transactions, oldest first."""
        return [self.log.load(tid) for tid in self.log.transaction_ids()]

    def cleanup(self, keep_n: Optional[int] = None) -> List[str]:
        """
        Delete checkpoints of COMMITTED/ROLLED_BACK transactions beyond the
        newest `keep_n`, oldest first.

        Checkpoints of the active transaction and of FAILED transactions are
        never touched. Backups still referenced by a kept checkpoint survive.

        Returns:
            Names of deleted checkpoints
        """
        keep_n = self.config.backup_keep if keep_n is None else keep_n
        if keep_n < 0:
            raise ValueError("keep_n must be >= 0")
        active = self.lock.held_by()
        ended = [
            t for t in self.list_transactions()
            if t.state in (TransactionState.COMMITTED, TransactionState.ROLLED_BACK)
            and t.checkpoint
            and t.id != active
        ]
        ended.sort(key=lambda t: (t.created_at, t.id))
        doomed = ended[: max(len(ended) - keep_n, 0)]
        doomed_names = {t.checkpoint for t in doomed}

        protected = set()
        for checkpoint in self.checkpoints.list():
            if checkpoint.name not in doomed_names:
                protected.update(checkpoint.backup_references())

        deleted = []
        for txn in doomed:
            try:
                checkpoint = self.checkpoints.get(txn.checkpoint)
            except CheckpointNotFoundError:
                continue
            self.checkpoints.delete(checkpoint, keep_backups=protected)
            deleted.append(checkpoint.name)
        logger.info("Cleanup removed %d checkpoint(s), kept newest %d", len(deleted), keep_n)
        return deleted

    def recover(self, tid: str) -> Optional[RestoreReport]:
        """
        Finish a transaction abandoned by a dead process, from disk alone.

        A COMMITTING transaction had already decided to commit and is
        finalized; PENDING and ROLLING_BACK ones are rolled back.

        Returns:
            RestoreReport of the rollback, or None if the commit was finalized

        Raises:
            AlreadyTerminalError: If the transaction already ended
            AlreadyActiveError: If the host lock is live (its owner may still run)
        """
        txn = self.get_transaction(tid)
        if txn.is_terminal:
            raise AlreadyTerminalError(f"transaction {tid} is already {txn.state.value}")
        self.lock.acquire(tid)
        log = get_logger(__name__, tid)
        if txn.state == TransactionState.COMMITTING:
            self._transition(txn, TransactionState.COMMITTED)
            self._release(txn)
            log.warning("Recovered transaction by finalizing its commit")
            self._emit(TRANSACTION_COMMITTED, txn, {"label": txn.label, "operations": len(txn.operations)})
            return None
        log.warning(f"Recovering abandoned {txn.state.value} transaction by rollback")
        return self.rollback(txn)

    def create_restore_point(self, name: str, paths: Iterable[str]) -> Checkpoint:
        """
        Create a standalone checkpoint of `paths` under the host lock.

        Missing paths are recorded as absent, so restoring removes them.
        """
        owner = f"restore-point-{name}"
        self.lock.acquire(owner)
        try:
            checkpoint = self.checkpoints.create(name)
            for path in paths:
                path = os.path.abspath(path)
                if os.path.lexists(path):
                    self.checkpoints.add_backup(checkpoint, self.backups.capture(path, reason=f"restore point {name}"))
                else:
                    self.checkpoints.add_absent(checkpoint, path)
        finally:
            self.lock.release(owner)
        return checkpoint

    def restore_checkpoint(self, name: str) -> RestoreReport:
        """Restore any checkpoint by name under the host lock."""
        checkpoint = self.checkpoints.get(name)
        owner = f"restore-{name}"
        self.lock.acquire(owner)
        try:
            return self.checkpoints.restore(checkpoint)
        finally:
            self.lock.release(owner)
