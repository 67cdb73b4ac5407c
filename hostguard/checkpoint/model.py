"""
Checkpoint model: a named, durable collection of undo entries.

A checkpoint's manifest is append-only. Each entry knows how to put one
piece of host state back the way it was:

- backup:  write a Backup over its original path
- absent:  the path did not exist before, undo deletes it
- package: return a package to its prior installed/removed state
- command: run a compensating command recorded with an EXEC operation
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class EntryKind(str, Enum):
    BACKUP = "backup"
    ABSENT = "absent"
    PACKAGE = "package"
    COMMAND = "command"


@dataclass(frozen=True)
class ManifestEntry:
    """
    One manifest line.

    Fields:
        seq: Position in the manifest (insertion order)
        kind: Entry kind
        target: Original path, package name or compensating command
        backup: Backup reference (backup entries only)
        was_installed: Prior package state (package entries only)
        operation_index: Index of the operation this entry undoes
    """
    seq: int
    kind: EntryKind
    target: str
    backup: Optional[str] = None
    was_installed: Optional[bool] = None
    operation_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "kind": self.kind.value,
            "target": self.target,
            "backup": self.backup,
            "was_installed": self.was_installed,
            "operation_index": self.operation_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManifestEntry":
        return cls(
            seq=data["seq"],
            kind=EntryKind(data["kind"]),
            target=data["target"],
            backup=data.get("backup"),
            was_installed=data.get("was_installed"),
            operation_index=data.get("operation_index"),
        )

    def describe(self) -> str:
        if self.kind == EntryKind.BACKUP:
            return f"restore {self.target} from {self.backup}"
        if self.kind == EntryKind.ABSENT:
            return f"remove {self.target}"
        if self.kind == EntryKind.PACKAGE:
            verb = "reinstall" if self.was_installed else "uninstall"
            return f"{verb} package {self.target}"
        return f"run {self.target}"


@dataclass
class Checkpoint:
    """
    Named snapshot, tied to a transaction or standalone (transaction_id None).
    """
    name: str
    created_at: datetime
    transaction_id: Optional[str] = None
    manifest: List[ManifestEntry] = field(default_factory=list)

    def header(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "transaction_id": self.transaction_id,
        }

    def backup_references(self) -> List[str]:
        return [e.backup for e in self.manifest if e.kind == EntryKind.BACKUP and e.backup]


class RestoreStatus(str, Enum):
    COMPLETE = "COMPLETE"
    PARTIAL = "PARTIAL"


@dataclass(frozen=True)
class EntryOutcome:
    entry: ManifestEntry
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.entry.to_dict()
        data["error"] = self.error
        return data


@dataclass
class RestoreReport:
    """
    Outcome of restoring a checkpoint.

    A restore never stops at the first failing entry; status is PARTIAL if
    any entry failed and COMPLETE otherwise.
    """
    checkpoint: str
    succeeded: List[EntryOutcome] = field(default_factory=list)
    failed: List[EntryOutcome] = field(default_factory=list)

    @property
    def status(self) -> RestoreStatus:
        return RestoreStatus.PARTIAL if self.failed else RestoreStatus.COMPLETE

    @property
    def ok(self) -> bool:
        return not self.failed

    def failed_operation_indexes(self) -> List[int]:
        return sorted({o.entry.operation_index for o in self.failed if o.entry.operation_index is not None})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checkpoint": self.checkpoint,
            "status": self.status.value,
            "succeeded": [o.to_dict() for o in self.succeeded],
            "failed": [o.to_dict() for o in self.failed],
        }
