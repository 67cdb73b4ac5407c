"""
Canonical serialization for persisted records.

Every line written to the operation log, checkpoint manifest or backup
metadata goes through these functions, so hashes over records are stable
regardless of dict ordering or enum/path types.
"""

import json
from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import Any


def canonicalize(obj: Any) -> Any:
    """
    Convert nested records to a JSON-safe canonical form.

    Rules:
    - dict keys sorted alphabetically
    - tuples converted to lists
    - Enum members replaced by their value
    - paths replaced by their string form
    - datetimes replaced by ISO-8601 strings
    """
    if isinstance(obj, dict):
        return {str(k): canonicalize(obj[k]) for k in sorted(obj.keys(), key=str)}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(x) for x in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, PurePath):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return obj


def canonical_json_bytes(obj: Any) -> bytes:
    """
    Deterministic JSON bytes for hashing and storage.

    Returns:
        UTF-8 encoded JSON bytes without insignificant whitespace
    """
    canon = canonicalize(obj)
    s = json.dumps(canon, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return s.encode("utf-8")


def canonical_json_str(obj: Any) -> str:
    """Same as canonical_json_bytes but returns a string (one JSONL line, no newline)."""
    return canonical_json_bytes(obj).decode("utf-8")
