"""
Tests for the transaction manager.

Critical tests:
1. Commit is not retryable (AlreadyTerminal)
2. Rollback returns modified/deleted files to byte-identical content
3. Rollback undoes operations newest first regardless of kind
4. Only one transaction per host (AlreadyActive)
5. A failing validation command auto-rolls-back earlier file edits
6. Failures are classified and logged before any decision is made
"""

import os
import shlex
import sys
import tempfile
import time

import pytest

from hostguard.backup import file_checksum
from hostguard.checkpoint import EntryKind, RestoreStatus
from hostguard.config import HostGuardConfig
from hostguard.core.clock import ManualClock
from hostguard.core.errors import (
    AlreadyActiveError,
    AlreadyTerminalError,
    FatalError,
    HasFailedOperationsError,
    IntegrityError,
    OperationFailedError,
    TransactionAbortedError,
)
from hostguard.core.events import (
    OPERATION_RESULT,
    OPERATION_STARTED,
    TRANSACTION_COMMITTED,
    TRANSACTION_ROLLED_BACK,
)
from hostguard.core.model import (
    FailureCategory,
    OperationKind,
    OperationResult,
    TransactionState,
)
from hostguard.host.packages import PackageManager
from hostguard.host.runner import CommandResult
from hostguard.transaction import TransactionManager


class FakePackages(PackageManager):
    name = "fake"

    def __init__(self, installed=(), broken=()):
        super().__init__()
        self.installed = set(installed)
        self.broken = set(broken)

    def is_installed(self, package):
        return package in self.installed

    def install_command(self, package):
        return ["fake-install", package]

    def remove_command(self, package):
        return ["fake-remove", package]

    def install(self, package, timeout=None):
        if package in self.broken:
            return CommandResult(f"fake-install {package}", 100, stderr=f"E: Unable to locate package {package}")
        self.installed.add(package)
        return CommandResult(f"fake-install {package}", 0)

    def remove(self, package, timeout=None):
        self.installed.discard(package)
        return CommandResult(f"fake-remove {package}", 0)


def _manager(tmpdir, config_overrides=None, **kwargs):
    config = HostGuardConfig.for_root(os.path.join(tmpdir, "state"), **(config_overrides or {}))
    kwargs.setdefault("packages", FakePackages())
    kwargs.setdefault("sleep", lambda seconds: None)
    return TransactionManager(config, **kwargs)


def _write(path, content):
    with open(path, "w") as f:
        f.write(content)


def _read(path):
    with open(path) as f:
        return f.read()


def _python(code):
    return [sys.executable, "-c", code]


def test_commit_twice_fails_with_already_terminal():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        target = os.path.join(tmpdir, "app.conf")
        _write(target, "v1\n")

        txn = manager.begin("edit app.conf")
        manager.write_file(txn, target, "v2\n")
        manager.commit(txn)

        assert txn.state == TransactionState.COMMITTED
        assert txn.ended_at is not None
        with pytest.raises(AlreadyTerminalError):
            manager.commit(txn)
        # Lock released, checkpoint kept for manual restore
        assert manager.lock.held_by() is None
        assert manager.checkpoints.exists(txn.checkpoint)
        assert manager.get_transaction(txn.id).state == TransactionState.COMMITTED


def test_rollback_restores_modified_and_deleted_files():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        modified = os.path.join(tmpdir, "modified.conf")
        deleted = os.path.join(tmpdir, "deleted.conf")
        _write(modified, "keepalive 65;\n")
        _write(deleted, "server_tokens off;\n")
        before = {p: file_checksum(p) for p in (modified, deleted)}

        txn = manager.begin("tune nginx")
        manager.write_file(txn, modified, "keepalive 5;\n")
        manager.delete_file(txn, deleted)
        report = manager.rollback(txn)

        assert report.status == RestoreStatus.COMPLETE
        assert txn.state == TransactionState.ROLLED_BACK
        assert {p: file_checksum(p) for p in (modified, deleted)} == before
        assert all(op.result == OperationResult.ROLLED_BACK for op in txn.operations)
        loaded = manager.get_transaction(txn.id)
        assert loaded.state == TransactionState.ROLLED_BACK
        assert [op.result for op in loaded.operations] == [op.result for op in txn.operations]


def test_backup_is_recorded_before_mutation():
    """FILE_MODIFY is preceded by its own FILE_BACKUP audit record."""
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        target = os.path.join(tmpdir, "app.conf")
        _write(target, "v1\n")

        txn = manager.begin("edit")
        op = manager.write_file(txn, target, "v2\n")

        kinds = [o.kind for o in manager.log.for_transaction(txn.id)]
        assert kinds == [OperationKind.FILE_BACKUP, OperationKind.FILE_MODIFY]
        backup_op = txn.operations[0]
        assert op.pre_state == backup_op.pre_state
        assert _read(manager.backups.get(op.pre_state).stored_path) == "v1\n"
        manager.commit(txn)


def test_rollback_undoes_create_and_modify_newest_first():
    """A (create X) then B (modify X): B is undone before A, then X is gone."""
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        target = os.path.join(tmpdir, "x.conf")

        txn = manager.begin("create then modify")
        manager.create_file(txn, target, "created\n")
        manager.write_file(txn, target, "modified\n")
        checkpoint = manager.checkpoints.get(txn.checkpoint)
        report = manager.rollback(txn)

        assert [e.kind for e in checkpoint.manifest] == [EntryKind.ABSENT, EntryKind.BACKUP]
        assert [o.entry.kind for o in report.succeeded] == [EntryKind.BACKUP, EntryKind.ABSENT]
        # Undoing B alone restored the pre-B content
        backup_ref = report.succeeded[0].entry.backup
        assert _read(manager.backups.get(backup_ref).stored_path) == "created\n"
        assert not os.path.exists(target)


def test_second_begin_is_refused_until_first_ends():
    with tempfile.TemporaryDirectory() as tmpdir:
        first = _manager(tmpdir)
        second = _manager(tmpdir)

        txn = first.begin("first")
        with pytest.raises(AlreadyActiveError):
            second.begin("second")

        first.commit(txn)
        other = second.begin("second")
        assert other.state == TransactionState.PENDING
        second.rollback(other)


def _wait_for_heartbeat(lock, at_least, timeout=5.0):
    deadline = time.monotonic() + timeout
    while lock.read().heartbeat < at_least and time.monotonic() < deadline:
        time.sleep(0.01)


def test_long_action_keeps_host_lock_alive():
    """A live owner is never reclaimed, even when its action outlasts the staleness threshold."""
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = ManualClock()
        first = _manager(tmpdir, config_overrides={"heartbeat_interval": 0.01}, clock=clock)
        second = _manager(tmpdir, clock=clock)
        outcomes = []

        def long_install():
            clock.advance(first.config.lock_stale_seconds + 1)
            _wait_for_heartbeat(first.lock, clock.time())
            try:
                second.begin("intruder")
            except AlreadyActiveError:
                outcomes.append("refused")
            else:
                outcomes.append("reclaimed")

        txn = first.begin("long install")
        op = first.add_operation(txn, OperationKind.EXEC, "apt-get install -y big-package", long_install)

        assert outcomes == ["refused"]
        assert op.result == OperationResult.SUCCESS
        assert first.lock.held_by() == txn.id
        first.commit(txn)


def test_retry_backoff_refreshes_heartbeat():
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = ManualClock()
        manager = _manager(
            tmpdir,
            config_overrides={
                "heartbeat_interval": 0,
                "lock_stale_seconds": 10,
                "retry_budget": 3,
                "retry_base_delay": 8,
                "retry_max_delay": 8,
            },
            clock=clock,
            sleep=clock.advance,
        )
        stale_seen = []

        def flaky():
            stale_seen.append(manager.lock.status()["stale"])
            if len(stale_seen) < 4:
                raise BlockingIOError("dpkg frontend lock is held")

        txn = manager.begin("slow mirror")
        op = manager.add_operation(txn, OperationKind.EXEC, "apt-get update", flaky)

        assert op.attempts == 4
        assert stale_seen == [False, False, False, False]
        manager.commit(txn)


def test_failed_validation_command_rolls_back_config_edit():
    """begin -> modify nginx.conf -> 'nginx -t' fails -> auto rollback."""
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        conf = os.path.join(tmpdir, "nginx.conf")
        _write(conf, "worker_processes 1;\n")
        original = _read(conf)

        txn = manager.begin("update nginx config")
        manager.write_file(txn, conf, "worker_processes ;\n")
        with pytest.raises(TransactionAbortedError) as excinfo:
            manager.run_command(txn, _python("import sys; sys.stderr.write('emerg: invalid number'); sys.exit(1)"))

        assert _read(conf) == original
        assert txn.state == TransactionState.ROLLED_BACK
        assert excinfo.value.report.ok
        failed = excinfo.value.operation
        assert failed.kind == OperationKind.EXEC
        assert failed.error.category == FailureCategory.VALIDATION
        assert "invalid number" in failed.error.message
        # The failure was logged with full classifier output
        logged = manager.get_transaction(txn.id)
        assert logged.state == TransactionState.ROLLED_BACK
        assert logged.operations[-1].error.category == FailureCategory.VALIDATION
        assert manager.lock.held_by() is None


def test_validator_rejection_rolls_back():
    with tempfile.TemporaryDirectory() as tmpdir:
        checked = []

        def validator(path, rule):
            checked.append((path, rule))
            return _read(path).startswith("ok")

        manager = _manager(tmpdir, validator=validator)
        conf = os.path.join(tmpdir, "sudoers")
        _write(conf, "ok\n")

        txn = manager.begin("edit sudoers")
        manager.write_file(txn, conf, "ok again\n", validate="visudo -cf {path}")
        with pytest.raises(TransactionAbortedError):
            manager.write_file(txn, conf, "broken\n", validate="visudo -cf {path}")

        assert _read(conf) == "ok\n"
        assert checked == [(conf, "visudo -cf {path}")] * 2


def test_validate_rule_requires_validator():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        txn = manager.begin("edit")

        with pytest.raises(ValueError):
            manager.write_file(txn, os.path.join(tmpdir, "a"), "a", validate="check")
        with pytest.raises(ValueError):
            manager.add_operation(txn, OperationKind.FILE_BACKUP, os.path.join(tmpdir, "a"), lambda: None)
        manager.rollback(txn)


def test_transient_failure_is_retried_with_backoff():
    with tempfile.TemporaryDirectory() as tmpdir:
        delays = []
        manager = _manager(
            tmpdir,
            config_overrides={"retry_budget": 3, "retry_base_delay": 0.5},
            sleep=delays.append,
        )
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise BlockingIOError("dpkg frontend lock is held")

        txn = manager.begin("flaky")
        op = manager.add_operation(txn, OperationKind.EXEC, "apt-get update", flaky)

        assert op.result == OperationResult.SUCCESS
        assert op.attempts == 3
        assert delays == [0.5, 1.0]
        manager.commit(txn)


def test_retry_budget_exhaustion_aborts():
    with tempfile.TemporaryDirectory() as tmpdir:
        delays = []
        manager = _manager(
            tmpdir,
            config_overrides={"retry_budget": 2, "retry_base_delay": 1.0},
            sleep=delays.append,
        )

        def always_busy():
            raise TimeoutError("mirror did not answer")

        txn = manager.begin("busy")
        with pytest.raises(TransactionAbortedError) as excinfo:
            manager.add_operation(txn, OperationKind.EXEC, "apt-get update", always_busy)

        assert delays == [1.0, 2.0]
        assert excinfo.value.operation.attempts == 3
        assert excinfo.value.classification.category == FailureCategory.TRANSIENT
        assert "exhausted" in excinfo.value.classification.message
        assert txn.state == TransactionState.ROLLED_BACK


def test_command_timeout_kills_and_classifies():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir, config_overrides={"retry_budget": 0})

        txn = manager.begin("slow")
        with pytest.raises(TransactionAbortedError) as excinfo:
            manager.run_command(txn, _python("import time; time.sleep(10)"), timeout=0.5)

        assert excinfo.value.classification.category == FailureCategory.TRANSIENT
        assert "timed out" in excinfo.value.classification.message


def test_optional_operation_is_skipped():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)

        txn = manager.begin("cleanup")
        op = manager.delete_file(txn, os.path.join(tmpdir, "never-existed"), optional=True)

        assert op.result == OperationResult.SKIPPED
        assert op.error.category == FailureCategory.VALIDATION
        assert op.attempts == 0
        manager.commit(txn)
        assert txn.state == TransactionState.COMMITTED


def test_integrity_failure_halts_without_rollback():
    """FATAL: no automatic restore, the checkpoint stays available."""
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        target = os.path.join(tmpdir, "app.conf")
        _write(target, "v1\n")

        def corrupting_write():
            _write(target, "half-written")
            raise IntegrityError("checksum mismatch after write")

        txn = manager.begin("fatal")
        with pytest.raises(FatalError) as excinfo:
            manager.add_operation(txn, OperationKind.FILE_MODIFY, target, corrupting_write)

        assert txn.state == TransactionState.FAILED
        assert excinfo.value.checkpoint == txn.checkpoint
        assert _read(target) == "half-written"
        assert manager.lock.held_by() is None
        with pytest.raises(AlreadyTerminalError):
            manager.rollback(txn)

        report = manager.restore_checkpoint(excinfo.value.checkpoint)
        assert report.ok
        assert _read(target) == "v1\n"


def test_without_auto_rollback_caller_decides():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir, config_overrides={"auto_rollback": False})
        target = os.path.join(tmpdir, "app.conf")
        _write(target, "v1\n")

        txn = manager.begin("manual")
        manager.write_file(txn, target, "v2\n")
        with pytest.raises(OperationFailedError) as excinfo:
            manager.run_command(txn, _python("import sys; sys.exit(2)"))
        assert not isinstance(excinfo.value, TransactionAbortedError)

        assert txn.state == TransactionState.PENDING
        with pytest.raises(HasFailedOperationsError):
            manager.commit(txn)

        report = manager.rollback(txn)
        assert report.ok
        assert _read(target) == "v1\n"
        assert txn.state == TransactionState.ROLLED_BACK


def test_partial_rollback_ends_failed():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        good = os.path.join(tmpdir, "good.conf")
        bad = os.path.join(tmpdir, "bad.conf")
        _write(good, "good\n")
        _write(bad, "bad\n")

        txn = manager.begin("partial")
        good_op = manager.write_file(txn, good, "changed\n")
        bad_op = manager.write_file(txn, bad, "changed\n")
        os.unlink(manager.backups.get(bad_op.pre_state).stored_path)

        report = manager.rollback(txn)

        assert report.status == RestoreStatus.PARTIAL
        assert txn.state == TransactionState.FAILED
        assert _read(good) == "good\n"
        results = {op.index: op.result for op in txn.operations}
        assert results[good_op.index] == OperationResult.ROLLED_BACK
        assert results[bad_op.index] == OperationResult.SUCCESS
        captures = {op.pre_state: op for op in txn.operations if op.kind == OperationKind.FILE_BACKUP}
        assert captures[good_op.pre_state].result == OperationResult.ROLLED_BACK
        assert captures[bad_op.pre_state].result == OperationResult.SUCCESS
        logged = {op.index: op.result for op in manager.get_transaction(txn.id).operations}
        assert logged[captures[bad_op.pre_state].index] == OperationResult.SUCCESS
        # FAILED checkpoints are never pruned
        assert manager.cleanup(keep_n=0) == []
        assert manager.checkpoints.exists(txn.checkpoint)


def test_package_operations_roll_back():
    with tempfile.TemporaryDirectory() as tmpdir:
        packages = FakePackages(installed={"telnetd"})
        manager = _manager(tmpdir, packages=packages)

        txn = manager.begin("swap packages")
        installed = manager.install_package(txn, "nginx")
        removed = manager.remove_package(txn, "telnetd")
        assert packages.installed == {"nginx"}
        assert (installed.was_installed, removed.was_installed) == (False, True)

        manager.rollback(txn)

        assert packages.installed == {"telnetd"}


def test_failed_package_install_aborts():
    with tempfile.TemporaryDirectory() as tmpdir:
        packages = FakePackages(broken={"nginx-extras"})
        manager = _manager(tmpdir, packages=packages)

        txn = manager.begin("install")
        with pytest.raises(TransactionAbortedError) as excinfo:
            manager.install_package(txn, "nginx-extras")

        assert "Unable to locate package" in excinfo.value.classification.message
        assert packages.installed == set()


def test_exec_undo_command_runs_on_rollback():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        marker = os.path.join(tmpdir, "service-enabled")
        enable = _python(f"open({marker!r}, 'w').close()")
        disable = " ".join(shlex.quote(a) for a in _python(f"import os; os.unlink({marker!r})"))

        txn = manager.begin("enable service")
        manager.run_command(txn, enable, undo=disable)
        assert os.path.exists(marker)

        report = manager.rollback(txn)

        assert report.ok
        assert not os.path.exists(marker)


def test_failed_exec_undo_is_not_run_on_rollback():
    """A compensating command only ever undoes an action that succeeded."""
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir, config_overrides={"retry_budget": 0})
        account = os.path.join(tmpdir, "existing-account")
        _write(account, "alice\n")
        remove = " ".join(shlex.quote(a) for a in _python(f"import os; os.unlink({account!r})"))

        txn = manager.begin("add account")
        with pytest.raises(TransactionAbortedError) as excinfo:
            manager.run_command(txn, _python("import sys; sys.exit(9)"), undo=remove)

        assert excinfo.value.report.ok
        assert txn.state == TransactionState.ROLLED_BACK
        assert os.path.exists(account)
        assert txn.checkpoint is None


def test_skipped_optional_exec_undo_is_not_run_on_rollback():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir, config_overrides={"retry_budget": 0})
        account = os.path.join(tmpdir, "existing-account")
        target = os.path.join(tmpdir, "app.conf")
        _write(account, "alice\n")
        _write(target, "v1\n")
        remove = " ".join(shlex.quote(a) for a in _python(f"import os; os.unlink({account!r})"))

        txn = manager.begin("optional step")
        manager.write_file(txn, target, "v2\n")
        skipped = manager.run_command(txn, _python("import sys; sys.exit(9)"), undo=remove, optional=True)
        assert skipped.result == OperationResult.SKIPPED

        report = manager.rollback(txn)

        assert report.ok
        assert os.path.exists(account)
        assert _read(target) == "v1\n"
        kinds = [e.kind for e in manager.checkpoints.get(txn.checkpoint).manifest]
        assert EntryKind.COMMAND not in kinds
        results = {op.index: op.result for op in manager.get_transaction(txn.id).operations}
        assert results[skipped.index] == OperationResult.SKIPPED


def test_exec_without_undo_creates_no_checkpoint():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)

        txn = manager.begin("read only")
        op = manager.run_command(txn, _python("print('hello')"))
        manager.commit(txn)

        assert op.detail == "hello"
        assert txn.checkpoint is None


def test_events_are_emitted():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        seen = []
        manager.events.subscribe(lambda event: seen.append(event.type))
        target = os.path.join(tmpdir, "a.conf")

        txn = manager.begin("events")
        manager.create_file(txn, target, "a\n")
        manager.commit(txn)
        other = manager.begin("events again")
        manager.rollback(other)

        assert seen == [OPERATION_STARTED, OPERATION_RESULT, TRANSACTION_COMMITTED, TRANSACTION_ROLLED_BACK]


def test_context_manager_commits_or_rolls_back():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        target = os.path.join(tmpdir, "a.conf")
        _write(target, "v1\n")

        with manager.transaction("ok") as txn:
            manager.write_file(txn, target, "v2\n")
        assert txn.state == TransactionState.COMMITTED

        with pytest.raises(RuntimeError):
            with manager.transaction("boom") as failing:
                manager.write_file(failing, target, "v3\n")
                raise RuntimeError("caller bug")
        assert failing.state == TransactionState.ROLLED_BACK
        assert _read(target) == "v2\n"


def test_operations_refused_after_commit():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        txn = manager.begin("done")
        manager.commit(txn)

        with pytest.raises(AlreadyTerminalError):
            manager.create_file(txn, os.path.join(tmpdir, "late"), "x")
        with pytest.raises(AlreadyTerminalError):
            manager.rollback(txn)


def test_cleanup_prunes_oldest_ended_checkpoints():
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = ManualClock()
        manager = _manager(tmpdir, clock=clock)
        target = os.path.join(tmpdir, "app.conf")
        _write(target, "v0\n")

        txns = []
        for i in range(4):
            txn = manager.begin(f"edit {i}")
            manager.write_file(txn, target, f"v{i + 1}\n")
            manager.commit(txn)
            txns.append(txn)
            clock.advance(60)
        active = manager.begin("in flight")
        manager.write_file(active, target, "v5\n")
        pruned_paths = [manager.backups.get(t.operations[0].pre_state).stored_path for t in txns[:2]]

        deleted = manager.cleanup(keep_n=2)

        assert deleted == [txns[0].checkpoint, txns[1].checkpoint]
        assert [c.name for c in manager.checkpoints.list()] == [
            txns[2].checkpoint,
            txns[3].checkpoint,
            active.checkpoint,
        ]
        assert not any(os.path.exists(p) for p in pruned_paths)
        assert len(manager.backups.list(target)) == 3
        manager.rollback(active)
        assert _read(target) == "v4\n"


def test_recover_rolls_back_abandoned_transaction():
    """A transaction whose process died is rolled back from disk alone."""
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = ManualClock()
        crashed = _manager(tmpdir, config_overrides={"lock_stale_seconds": 60}, clock=clock)
        target = os.path.join(tmpdir, "app.conf")
        new = os.path.join(tmpdir, "new.conf")
        _write(target, "v1\n")

        txn = crashed.begin("interrupted")
        crashed.write_file(txn, target, "v2\n")
        crashed.create_file(txn, new, "new\n")

        operator = _manager(tmpdir, config_overrides={"lock_stale_seconds": 60}, clock=clock)
        with pytest.raises(AlreadyActiveError):
            operator.recover(txn.id)

        clock.advance(120)
        report = operator.recover(txn.id)

        assert report.ok
        assert _read(target) == "v1\n"
        assert not os.path.exists(new)
        recovered = operator.get_transaction(txn.id)
        assert recovered.state == TransactionState.ROLLED_BACK
        assert operator.lock.held_by() is None
        with pytest.raises(AlreadyTerminalError):
            operator.recover(txn.id)


def test_recover_finalizes_interrupted_commit():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        target = os.path.join(tmpdir, "app.conf")

        txn = manager.begin("commit interrupted")
        manager.create_file(txn, target, "new\n")
        # Simulate a crash between COMMITTING and COMMITTED
        txn.state = TransactionState.COMMITTING
        manager.log.record_transaction(txn)
        manager.lock.release(txn.id)

        assert manager.recover(txn.id) is None
        assert manager.get_transaction(txn.id).state == TransactionState.COMMITTED
        assert _read(target) == "new\n"


def test_restore_point_round_trip():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _manager(tmpdir)
        existing = os.path.join(tmpdir, "hosts")
        missing = os.path.join(tmpdir, "hosts.d")
        _write(existing, "127.0.0.1 localhost\n")

        checkpoint = manager.create_restore_point("before-upgrade", [existing, missing])
        _write(existing, "10.0.0.1 db\n")
        _write(missing, "new\n")
        report = manager.restore_checkpoint("before-upgrade")

        assert checkpoint.transaction_id is None
        assert [e.kind for e in checkpoint.manifest] == [EntryKind.BACKUP, EntryKind.ABSENT]
        assert report.ok
        assert _read(existing) == "127.0.0.1 localhost\n"
        assert not os.path.exists(missing)
        assert manager.lock.held_by() is None


def test_list_transactions():
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = ManualClock()
        manager = _manager(tmpdir, clock=clock)
        a = manager.begin("a")
        manager.commit(a)
        clock.advance(1)
        b = manager.begin("b")
        manager.rollback(b)

        listed = manager.list_transactions()

        assert [(t.label, t.state) for t in listed] == [
            ("a", TransactionState.COMMITTED),
            ("b", TransactionState.ROLLED_BACK),
        ]
