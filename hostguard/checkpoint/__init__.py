"""
Checkpoint system for transactional rollback.

Provides:
- Checkpoint model with an append-only, typed manifest
- CheckpointStore: create, append entries, restore (LIFO), delete
- RestoreReport: per-entry outcome of a restore
"""

from .model import (
    Checkpoint,
    EntryKind,
    EntryOutcome,
    ManifestEntry,
    RestoreReport,
    RestoreStatus,
)
from .store import CheckpointStore

__all__ = [
    "Checkpoint",
    "EntryKind",
    "EntryOutcome",
    "ManifestEntry",
    "RestoreReport",
    "RestoreStatus",
    "CheckpointStore",
]
