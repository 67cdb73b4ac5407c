"""
Operation log and integrity verification.

This module provides:
- OperationLog: per-transaction append-only JSONL log with fsync
- Integrity: hash chain over log records
"""

from .operation_log import OperationLog
from .integrity import ZERO_HASH, chain_record, hash_record, verify_chain

__all__ = [
    "OperationLog",
    "ZERO_HASH",
    "chain_record",
    "hash_record",
    "verify_chain",
]
