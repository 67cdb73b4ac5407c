"""
Tests for the per-transaction operation log.

Critical: the log must survive crashes mid-append and detect tampering.
"""

import json
import os
import tempfile
from datetime import datetime, timezone

import pytest

from hostguard.core.errors import IntegrityError, TransactionNotFoundError
from hostguard.core.model import (
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
from hostguard.log import ZERO_HASH, OperationLog
from hostguard.replay import ReplayStep

TS = datetime(2026, 1, 1, tzinfo=timezone.utc)
TID = "tx-20260101T000000-abc123"


def _op(index, kind=OperationKind.EXEC, target="true", result=OperationResult.SUCCESS, error=None):
    return Operation(index=index, kind=kind, target=target, result=result, timestamp=TS, error=error)


def _raw_lines(log, tid):
    with open(log.path_for(tid)) as f:
        return [json.loads(line) for line in f if line.strip()]


def test_record_and_read_in_order():
    with tempfile.TemporaryDirectory() as tmpdir:
        log = OperationLog(tmpdir)
        for i in range(3):
            log.record(TID, _op(i, target=f"cmd-{i}"))

        ops = log.for_transaction(TID)

        assert [op.target for op in ops] == ["cmd-0", "cmd-1", "cmd-2"]
        assert os.path.exists(os.path.join(tmpdir, "transactions", f"{TID}.log"))


def test_annotation_latest_record_wins():
    """Outcome annotations append a new line; folding reflects them."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log = OperationLog(tmpdir)
        op = _op(0)
        log.record(TID, op)
        log.record(TID, op.with_result(OperationResult.ROLLED_BACK))

        ops = log.for_transaction(TID)

        assert len(ops) == 1
        assert ops[0].result == OperationResult.ROLLED_BACK
        assert len(_raw_lines(log, TID)) == 2


def test_load_rebuilds_transaction():
    with tempfile.TemporaryDirectory() as tmpdir:
        log = OperationLog(tmpdir)
        txn = Transaction(id=TID, label="update nginx config", created_at=TS)
        log.record_transaction(txn)
        error = Classification(
            category=FailureCategory.VALIDATION,
            severity=Severity.ERROR,
            action=RecoveryAction.ABORT,
            message="command exited 1: nginx -t",
        )
        log.record(TID, _op(0, target="nginx -t", result=OperationResult.FAILED, error=error))
        txn.state = TransactionState.ROLLING_BACK
        txn.checkpoint = TID
        log.record_transaction(txn)

        loaded = log.load(TID)

        assert loaded.label == "update nginx config"
        assert loaded.state == TransactionState.ROLLING_BACK
        assert loaded.checkpoint == TID
        assert loaded.created_at == TS
        assert loaded.operations[0].error == error


def test_genesis_record_chains_to_zero_hash():
    with tempfile.TemporaryDirectory() as tmpdir:
        log = OperationLog(tmpdir)
        log.record(TID, _op(0))
        log.record(TID, _op(1))

        lines = _raw_lines(log, TID)

        assert lines[0]["prev_hash"] == ZERO_HASH
        assert lines[1]["prev_hash"] == lines[0]["record_hash"]
        assert [l["seq"] for l in lines] == [0, 1]
        assert log.verify(TID) == 2


def test_tampering_is_detected():
    """Editing a recorded outcome breaks the hash chain."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log = OperationLog(tmpdir)
        log.record(TID, _op(0, result=OperationResult.FAILED))
        log.record(TID, _op(1))

        path = log.path_for(TID)
        with open(path) as f:
            content = f.read()
        with open(path, "w") as f:
            f.write(content.replace('"FAILED"', '"SUCCESS"', 1))

        with pytest.raises(IntegrityError):
            log.verify(TID)


def test_torn_trailing_line_is_skipped_and_repaired():
    """A crash mid-append leaves a partial line; readers skip it and the next append truncates it."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log = OperationLog(tmpdir)
        log.record(TID, _op(0))
        with open(log.path_for(TID), "a") as f:
            f.write('{"seq": 1, "prev_hash": "abc", "rec')

        assert len(log.for_transaction(TID)) == 1

        log.record(TID, _op(1))

        assert [op.index for op in log.for_transaction(TID)] == [0, 1]
        assert log.verify(TID) == 2


def test_unknown_transaction():
    with tempfile.TemporaryDirectory() as tmpdir:
        log = OperationLog(tmpdir)

        with pytest.raises(TransactionNotFoundError):
            log.for_transaction("tx-missing")
        with pytest.raises(ValueError):
            log.path_for("../etc/passwd")


def test_transaction_ids_sorted():
    with tempfile.TemporaryDirectory() as tmpdir:
        log = OperationLog(tmpdir)
        for tid in ["tx-20260102T000000-aaaaaa", "tx-20260101T000000-ffffff"]:
            log.record(tid, _op(0))

        assert log.transaction_ids() == ["tx-20260101T000000-ffffff", "tx-20260102T000000-aaaaaa"]

        log.delete("tx-20260101T000000-ffffff")
        assert log.transaction_ids() == ["tx-20260102T000000-aaaaaa"]


def test_replay_skips_captures_and_honours_dry_run():
    with tempfile.TemporaryDirectory() as tmpdir:
        log = OperationLog(tmpdir)
        log.record(TID, _op(0, kind=OperationKind.FILE_BACKUP, target="/etc/hosts"))
        log.record(TID, _op(1, kind=OperationKind.FILE_MODIFY, target="/etc/hosts"))
        log.record(TID, _op(2, target="systemctl reload nginx"))

        seen = []

        def executor(op):
            seen.append(op.index)
            return ReplayStep(op, executed=True, ok=True)

        dry = log.replay(TID, executor, dry_run=True)
        assert [s.operation.index for s in dry] == [1, 2]
        assert seen == []
        assert not any(s.executed for s in dry)

        steps = log.replay(TID, executor)
        assert seen == [1, 2]
        assert all(s.ok for s in steps)
