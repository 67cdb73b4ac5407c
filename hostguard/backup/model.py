"""
Backup model: one immutable captured copy of a file.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict


@dataclass(frozen=True)
class Backup:
    """
    Immutable backup record.

    Fields:
        reference: Store-relative id, "<path-hash>/<stamp>"
        original_path: Absolute path the content was captured from
        stored_path: Absolute path of the stored copy (.bak)
        checksum: SHA-256 of the content
        mode: st_mode of the original at capture time
        uid: Owner uid at capture time
        gid: Owner gid at capture time
        size: Content size in bytes
        reason: Why the capture was made
        created_at: Capture time
    """
    reference: str
    original_path: str
    stored_path: str
    checksum: str
    mode: int
    uid: int
    gid: int
    size: int
    reason: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reference": self.reference,
            "original_path": self.original_path,
            "stored_path": self.stored_path,
            "checksum": self.checksum,
            "mode": self.mode,
            "uid": self.uid,
            "gid": self.gid,
            "size": self.size,
            "reason": self.reason,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Backup":
        return cls(
            reference=data["reference"],
            original_path=data["original_path"],
            stored_path=data["stored_path"],
            checksum=data["checksum"],
            mode=data["mode"],
            uid=data["uid"],
            gid=data["gid"],
            size=data["size"],
            reason=data.get("reason", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
