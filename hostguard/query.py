"""
Read-only query helpers over logged transactions.
"""

from typing import Any, Dict, Iterable, List, Optional

from .core.model import OperationResult, Transaction, TransactionState


def resolve_transaction_id(transaction_ids: Iterable[str], ref: str) -> Optional[str]:
    """
    Resolve a transaction reference to a full id.

    Accepts:
    - full transaction id
    - unique random suffix (e.g. "a1b2c3")
    """
    ids = list(transaction_ids)
    if ref in ids:
        return ref
    matches = [tid for tid in ids if tid.endswith("-" + ref)]
    if len(matches) == 1:
        return matches[0]
    return None


def filter_transactions(
    transactions: Iterable[Transaction],
    state: Optional[TransactionState] = None,
    label: Optional[str] = None,
) -> List[Transaction]:
    result = []
    for txn in transactions:
        if state is not None and txn.state != state:
            continue
        if label and label.lower() not in txn.label.lower():
            continue
        result.append(txn)
    return result


def result_counts(txn: Transaction) -> Dict[str, int]:
    counts = {r.value: 0 for r in OperationResult}
    for op in txn.operations:
        counts[op.result.value] += 1
    return counts


def get_failures(txn: Transaction, last_n: int = 20) -> List[Dict[str, Any]]:
    """Operations that carry classifier output, most recent last."""
    failures = []
    for op in txn.operations:
        if op.error is None:
            continue
        failures.append({
            "index": op.index,
            "kind": op.kind.value,
            "target": op.target,
            "result": op.result.value,
            "attempts": op.attempts,
            "category": op.error.category.value,
            "severity": op.error.severity.value,
            "action": op.error.action.value,
            "message": op.error.message,
        })
    return failures[-last_n:]


def summarize(txn: Transaction) -> Dict[str, Any]:
    """One row per transaction for listings."""
    duration = None
    if txn.ended_at is not None:
        duration = (txn.ended_at - txn.created_at).total_seconds()
    return {
        "id": txn.id,
        "label": txn.label,
        "state": txn.state.value,
        "checkpoint": txn.checkpoint,
        "created_at": txn.created_at.isoformat(),
        "ended_at": txn.ended_at.isoformat() if txn.ended_at else None,
        "duration": duration,
        "operations": len(txn.operations),
        "results": result_counts(txn),
    }
