"""
Identifier generation.

Transaction ids sort by creation time; path hashes give every original path
a stable directory name in the backup store.
"""

import hashlib
import secrets
from datetime import datetime


def transaction_id(now: datetime) -> str:
    """
    Generate a transaction id from creation time plus a random suffix.

    Example:
        transaction_id(datetime(2026, 1, 2, 3, 4, 5)) -> "tx-20260102T030405-9f2c1a"
    """
    return f"tx-{now.strftime('%Y%m%dT%H%M%S')}-{secrets.token_hex(3)}"


def path_hash(path: str) -> str:
    """
    Stable directory name for an original path.

    Args:
        path: Absolute original path

    Returns:
        First 16 hex chars of SHA-256 over the path
    """
    return hashlib.sha256(path.encode("utf-8")).hexdigest()[:16]


def stamp(now: datetime) -> str:
    """Filesystem-safe timestamp with microsecond precision."""
    return now.strftime("%Y%m%dT%H%M%S%fZ")
