"""
Append-only operation log, one JSONL file per transaction.

Layout:
    <log-root>/transactions/<transaction-id>.log

Each line: {"seq": n, "prev_hash": "...", "record_hash": "...", "record": {...}}
where record is either
    {"type": "transaction", "transaction": {...header...}}
    {"type": "operation", "operation": {...kind, target, result, timestamp, error...}}

Outcome annotations append a new operation line with the same index; folding
the log (latest line per index wins) yields the current operation list.

Guarantees:
- Append-only (no mutations)
- Fsync after each append (durability)
- Hash chain integrity
"""

import fcntl
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..core.canonical import canonical_json_str
from ..core.errors import OperationLogError, TransactionNotFoundError
from ..core.model import Operation, OperationKind, Transaction, TransactionState
from ..replay.runner import ReplayStep
from .integrity import ZERO_HASH, chain_record, verify_chain

logger = logging.getLogger(__name__)

RECORD_TRANSACTION = "transaction"
RECORD_OPERATION = "operation"


class OperationLog:
    """
    File-based append-only transaction log.
    """

    def __init__(self, root: str) -> None:
        """
        Initialize operation log.

        Args:
            root: Log root; transaction logs live in <root>/transactions
        """
        self.directory = Path(root) / "transactions"
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, transaction_id: str) -> Path:
        if not transaction_id or "/" in transaction_id or transaction_id.startswith("."):
            raise ValueError(f"invalid transaction id: {transaction_id!r}")
        return self.directory / f"{transaction_id}.log"

    def _last_seq_and_hash(self, f) -> Tuple[int, str]:
        """
        Read last sequence number and hash, truncating a torn trailing line.

        Returns:
            (last_seq, last_hash); (-1, ZERO_HASH) if the log is empty
        """
        f.seek(0)
        data = f.read()
        if data and not data.endswith(b"\n"):
            keep = data.rfind(b"\n") + 1
            logger.warning("Truncating torn trailing record in %s", f.name)
            f.truncate(keep)
            data = data[:keep]

        last_seq = -1
        last_hash = ZERO_HASH
        for line in data.splitlines():
            if not line.strip():
                continue
            rec = json.loads(line)
            last_seq = rec["seq"]
            last_hash = rec["record_hash"]
        return last_seq, last_hash

    def _append(self, transaction_id: str, record: Dict[str, Any]) -> None:
        path = self.path_for(transaction_id)
        try:
            with open(path, "a+b") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    last_seq, last_hash = self._last_seq_and_hash(f)
                    line = canonical_json_str(chain_record(last_hash, last_seq + 1, record)) + "\n"
                    f.seek(0, os.SEEK_END)
                    f.write(line.encode("utf-8"))
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as ex:
            raise OperationLogError(f"cannot append to {path}: {ex}") from ex

    def record(self, transaction_id: str, operation: Operation) -> None:
        """
        Append one operation record; returns only after it is fsynced.

        Raises:
            OperationLogError: If the append fails
        """
        self._append(transaction_id, {"type": RECORD_OPERATION, "operation": operation.to_dict()})

    def record_transaction(self, transaction: Transaction) -> None:
        """Append the transaction header (label, state, checkpoint, timestamps)."""
        self._append(transaction.id, {"type": RECORD_TRANSACTION, "transaction": transaction.header()})

    def lines(self, transaction_id: str) -> Iterator[Dict[str, Any]]:
        """
        Yield raw chained lines, skipping a torn trailing line.

        Raises:
            TransactionNotFoundError: If no log exists for the id
        """
        path = self.path_for(transaction_id)
        try:
            with open(path, "rb") as f:
                data = f.read()
        except FileNotFoundError as ex:
            raise TransactionNotFoundError(f"transaction not found: {transaction_id}") from ex
        if data and not data.endswith(b"\n"):
            data = data[: data.rfind(b"\n") + 1]
        for line in data.splitlines():
            if line.strip():
                yield json.loads(line)

    def for_transaction(self, transaction_id: str) -> List[Operation]:
        """
        Return the transaction's operations in execution order.

        The latest record per operation index wins, so outcome annotations
        are reflected.
        """
        latest: Dict[int, Operation] = {}
        for line in self.lines(transaction_id):
            rec = line["record"]
            if rec.get("type") == RECORD_OPERATION:
                op = Operation.from_dict(rec["operation"])
                latest[op.index] = op
        return [latest[i] for i in sorted(latest)]

    def load(self, transaction_id: str) -> Transaction:
        """
        Rebuild a Transaction from its log alone.

        Raises:
            TransactionNotFoundError: If no log or no header exists
        """
        header: Optional[Dict[str, Any]] = None
        latest: Dict[int, Operation] = {}
        for line in self.lines(transaction_id):
            rec = line["record"]
            if rec.get("type") == RECORD_TRANSACTION:
                header = rec["transaction"]
            elif rec.get("type") == RECORD_OPERATION:
                op = Operation.from_dict(rec["operation"])
                latest[op.index] = op
        if header is None:
            raise TransactionNotFoundError(f"transaction log has no header: {transaction_id}")

        ended_at = header.get("ended_at")
        return Transaction(
            id=header["id"],
            label=header["label"],
            created_at=datetime.fromisoformat(header["created_at"]),
            state=TransactionState(header["state"]),
            operations=[latest[i] for i in sorted(latest)],
            checkpoint=header.get("checkpoint"),
            ended_at=datetime.fromisoformat(ended_at) if ended_at else None,
        )

    def transaction_ids(self) -> List[str]:
        """All logged transaction ids, oldest first (ids sort by creation time)."""
        return sorted(p.stem for p in self.directory.glob("*.log"))

    def verify(self, transaction_id: str) -> int:
        """
        Verify a transaction log's hash chain.

        Returns:
            Number of verified records

        Raises:
            IntegrityError: If the chain is broken
        """
        return verify_chain(self.lines(transaction_id))

    def delete(self, transaction_id: str) -> None:
        try:
            os.unlink(self.path_for(transaction_id))
        except FileNotFoundError:
            pass

    def replay(
        self,
        transaction_id: str,
        executor: Callable[[Operation], ReplayStep],
        dry_run: bool = False,
    ) -> List[ReplayStep]:
        """
        Re-execute a transaction's action sequence (operator diagnostic only).

        FILE_BACKUP records are skipped; they are captures, not actions.

        Args:
            transaction_id: Transaction to replay
            executor: Callable running one operation, e.g. HostExecutor
            dry_run: List what would run without executing anything

        Returns:
            One ReplayStep per replayed operation, in execution order
        """
        steps = []
        for op in self.for_transaction(transaction_id):
            if op.kind == OperationKind.FILE_BACKUP:
                continue
            if dry_run:
                steps.append(ReplayStep(op, executed=False, ok=True, detail="dry run"))
                continue
            step = executor(op)
            logger.info(
                "Replayed %s #%d %s: %s",
                transaction_id,
                op.index,
                op.kind.value,
                "ok" if step.ok else "failed",
            )
            steps.append(step)
        return steps
