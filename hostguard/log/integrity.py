"""
Hash chain integrity for operation log records.

Each line carries the hash of the previous line, so truncation in the middle,
reordering or editing of an audit record is detectable.
"""

import hashlib
from typing import Any, Dict, Iterable

from ..core.canonical import canonical_json_bytes
from ..core.errors import IntegrityError

ZERO_HASH = "0" * 64


def hash_record(prev_hash: str, seq: int, record: Dict[str, Any]) -> str:
    """
    Compute hash of a record chained to the previous hash.

    Hash input: prev_hash + canonical_json({"seq": seq, "record": record})

    Returns:
        SHA-256 hash as hex string
    """
    b = prev_hash.encode("utf-8") + canonical_json_bytes({"seq": seq, "record": record})
    return hashlib.sha256(b).hexdigest()


def chain_record(prev_hash: str, seq: int, record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a chained line for storage.

    Returns:
        Dict with seq, prev_hash, record_hash and record
    """
    return {
        "seq": seq,
        "prev_hash": prev_hash,
        "record_hash": hash_record(prev_hash, seq, record),
        "record": record,
    }


def verify_chain(lines: Iterable[Dict[str, Any]]) -> int:
    """
    Verify a sequence of chained lines.

    Returns:
        Number of verified lines

    Raises:
        IntegrityError: On the first broken link, hash mismatch or sequence gap
    """
    prev = ZERO_HASH
    expected_seq = 0
    for line in lines:
        seq = line.get("seq")
        if seq != expected_seq:
            raise IntegrityError(f"Sequence gap: expected {expected_seq}, got {seq}")
        if line.get("prev_hash") != prev:
            raise IntegrityError(f"Broken chain at seq {seq}")
        computed = hash_record(prev, seq, line.get("record", {}))
        if computed != line.get("record_hash"):
            raise IntegrityError(f"Hash mismatch at seq {seq}")
        prev = computed
        expected_seq += 1
    return expected_seq
