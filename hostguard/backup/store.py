"""
File-based backup store.

Layout:
    <backup-root>/<path-hash>/<stamp>.bak    captured content
    <backup-root>/<path-hash>/<stamp>.meta   Backup record (canonical JSON)
    <backup-root>/<path-hash>/index          one JSONL line per capture/restore/delete;
                                             list() folds it into the live backups

Backups are immutable once registered: the .bak is renamed into place only
after its checksum has been verified, and cleanup removes whole entries.
"""

import errno
import hashlib
import json
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from ..core.canonical import canonical_json_bytes, canonical_json_str
from ..core.clock import SystemClock
from ..core.errors import (
    BackupNotFoundError,
    CaptureError,
    ChecksumMismatchError,
    IntegrityError,
    PermissionDeniedError,
    TargetNotFoundError,
    WriteFailedError,
)
from ..core.fsio import append_line, atomic_write, fsync_dir
from ..core.ids import path_hash, stamp
from .model import Backup

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
_STORAGE_FULL = (errno.ENOSPC, errno.EDQUOT)


def file_checksum(path) -> str:
    """SHA-256 hex digest of a file's content."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def _copy_hashing(src: str, dst: str) -> str:
    """Copy src to dst (fsynced) and return the SHA-256 of the bytes read."""
    h = hashlib.sha256()
    with open(src, "rb") as fin, open(dst, "wb") as fout:
        for chunk in iter(lambda: fin.read(CHUNK_SIZE), b""):
            h.update(chunk)
            fout.write(chunk)
        fout.flush()
        os.fsync(fout.fileno())
    return h.hexdigest()


def _unlink_quiet(path) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


class BackupStore:
    """
    Create, list, restore and prune file backups.

    Guarantees:
    - capture verifies the copy's checksum before registering it
    - restore writes beside the original and renames over it atomically
    - list() is ordered newest-first
    """

    def __init__(self, root: str, clock=None) -> None:
        """
        Initialize backup store.

        Args:
            root: Backup root directory (created if missing)
            clock: Clock providing now(); defaults to SystemClock
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.clock = clock or SystemClock()

    def _dir_for(self, original_path: str) -> Path:
        return self.root / path_hash(original_path)

    def _new_name(self, directory: Path) -> str:
        base = stamp(self.clock.now())
        name = base
        n = 1
        while (directory / f"{name}.bak").exists() or (directory / f"{name}.meta").exists():
            name = f"{base}-{n}"
            n += 1
        return name

    def _append_index(self, original_path: str, action: str, backup: Backup) -> None:
        record = {
            "action": action,
            "reference": backup.reference,
            "checksum": backup.checksum,
            "original_path": original_path,
            "ts": self.clock.now(),
        }
        append_line(self._dir_for(original_path) / "index", canonical_json_str(record))

    def capture(self, path: str, reason: str = "") -> Backup:
        """
        Capture the current content of `path`.

        Args:
            path: File to capture
            reason: Free-form reason stored in metadata

        Returns:
            The registered Backup

        Raises:
            TargetNotFoundError: If path does not exist
            PermissionDeniedError: If path cannot be read
            ChecksumMismatchError: If the copy does not match the source
            IntegrityError: If the backup storage fills up mid-capture
            CaptureError: For any other capture failure
        """
        original = os.path.abspath(path)
        try:
            st = os.stat(original)
        except FileNotFoundError as ex:
            raise TargetNotFoundError(f"cannot capture {original}: not found") from ex
        except PermissionError as ex:
            raise PermissionDeniedError(f"cannot capture {original}: permission denied") from ex
        if not stat.S_ISREG(st.st_mode):
            raise CaptureError(f"cannot capture {original}: not a regular file")

        directory = self._dir_for(original)
        directory.mkdir(parents=True, exist_ok=True)
        name = self._new_name(directory)
        stored = directory / f"{name}.bak"
        tmp = directory / f"{name}.bak.tmp"
        meta_path = directory / f"{name}.meta"

        try:
            checksum = _copy_hashing(original, str(tmp))
            copied = file_checksum(tmp)
            if copied != checksum:
                raise ChecksumMismatchError(
                    f"capture of {original} corrupted: copy {copied[:12]} != read {checksum[:12]}"
                )
            source_now = file_checksum(original)
            if source_now != checksum:
                raise ChecksumMismatchError(f"{original} changed while it was being captured")

            os.replace(tmp, stored)
            backup = Backup(
                reference=f"{directory.name}/{name}",
                original_path=original,
                stored_path=str(stored),
                checksum=checksum,
                mode=st.st_mode,
                uid=st.st_uid,
                gid=st.st_gid,
                size=os.path.getsize(stored),
                reason=reason,
                created_at=self.clock.now(),
            )
            atomic_write(meta_path, canonical_json_bytes(backup.to_dict()))
            fsync_dir(directory)
        except ChecksumMismatchError:
            _unlink_quiet(tmp)
            _unlink_quiet(stored)
            raise
        except PermissionError as ex:
            _unlink_quiet(tmp)
            _unlink_quiet(stored)
            raise PermissionDeniedError(f"cannot capture {original}: permission denied") from ex
        except OSError as ex:
            _unlink_quiet(tmp)
            _unlink_quiet(stored)
            _unlink_quiet(meta_path)
            if ex.errno in _STORAGE_FULL:
                raise IntegrityError(f"backup storage full while capturing {original}") from ex
            raise CaptureError(f"cannot capture {original}: {ex}") from ex

        self._append_index(original, "capture", backup)
        logger.debug("Captured %s as %s (%s)", original, backup.reference, reason or "no reason")
        return backup

    def verify(self, backup: Backup) -> bool:
        """Return True if the stored content still matches the recorded checksum."""
        try:
            return file_checksum(backup.stored_path) == backup.checksum
        except OSError:
            return False

    def restore(self, backup: Backup) -> None:
        """
        Write a backup back over its original path.

        The content is written to a temporary file in the original's
        directory, verified, then renamed over the original.

        Raises:
            BackupNotFoundError: If the stored copy is gone
            ChecksumMismatchError: If the stored copy or the written file is corrupt
            WriteFailedError: If the original cannot be written
        """
        stored = Path(backup.stored_path)
        if not stored.exists():
            raise BackupNotFoundError(f"backup {backup.reference} has no stored content")
        if file_checksum(stored) != backup.checksum:
            raise ChecksumMismatchError(f"backup {backup.reference} is corrupt")

        target = Path(backup.original_path)
        tmp: Optional[str] = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".restore", dir=target.parent)
            os.close(fd)
            written = _copy_hashing(str(stored), tmp)
            if written != backup.checksum or file_checksum(tmp) != backup.checksum:
                raise ChecksumMismatchError(f"restore of {target} from {backup.reference} corrupted")
            os.chmod(tmp, stat.S_IMODE(backup.mode))
            self._restore_owner(tmp, backup)
            os.replace(tmp, target)
            fsync_dir(target.parent)
        except ChecksumMismatchError:
            if tmp:
                _unlink_quiet(tmp)
            raise
        except OSError as ex:
            if tmp:
                _unlink_quiet(tmp)
            raise WriteFailedError(f"cannot restore {target}: {ex}") from ex

        self._append_index(backup.original_path, "restore", backup)
        logger.debug("Restored %s from %s", target, backup.reference)

    def _restore_owner(self, path: str, backup: Backup) -> None:
        st = os.stat(path)
        if (st.st_uid, st.st_gid) == (backup.uid, backup.gid):
            return
        try:
            os.chown(path, backup.uid, backup.gid)
        except PermissionError:
            logger.warning(
                "Cannot restore owner %d:%d on %s (not privileged)",
                backup.uid,
                backup.gid,
                backup.original_path,
            )

    def get(self, reference: str) -> Backup:
        """
        Load a backup by reference.

        Raises:
            BackupNotFoundError: If no metadata exists for the reference
        """
        meta_path = self.root / f"{reference}.meta"
        try:
            with open(meta_path, "r", encoding="utf-8") as f:
                return Backup.from_dict(json.load(f))
        except FileNotFoundError as ex:
            raise BackupNotFoundError(f"backup not found: {reference}") from ex

    def _read_index(self, directory: Path) -> Iterator[dict]:
        try:
            with open(directory / "index", "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        yield json.loads(line)
                    except json.JSONDecodeError:
                        # Torn trailing line from an interrupted append
                        logger.warning("Skipping unreadable index line in %s", directory)
        except FileNotFoundError:
            return

    def list(self, path: str) -> List[Backup]:
        """
        List backups of `path`, newest first.

        Folds the per-path index: a reference is live from its "capture"
        line until a "delete" line for it.
        """
        directory = self._dir_for(os.path.abspath(path))
        live = {}
        for record in self._read_index(directory):
            if record.get("action") == "capture":
                live[record["reference"]] = True
            elif record.get("action") == "delete":
                live.pop(record["reference"], None)
        backups = []
        for reference in live:
            try:
                backups.append(self.get(reference))
            except BackupNotFoundError:
                logger.warning("Indexed backup %s has no metadata; skipping", reference)
        backups.sort(key=lambda b: (b.created_at, b.reference), reverse=True)
        return backups

    def delete(self, backup: Backup) -> None:
        """Delete a whole backup entry (content and metadata)."""
        _unlink_quiet(backup.stored_path)
        _unlink_quiet(self.root / f"{backup.reference}.meta")
        self._append_index(backup.original_path, "delete", backup)
        logger.debug("Deleted backup %s", backup.reference)

    def prune(self, path: str, keep_n: int, protect: Iterable[str] = ()) -> List[Backup]:
        """
        Delete all but the newest `keep_n` backups of `path`.

        Args:
            path: Original path
            keep_n: Number of newest backups to keep
            protect: References that must not be deleted

        Returns:
            Deleted backups, newest first
        """
        if keep_n < 0:
            raise ValueError("keep_n must be >= 0")
        protected = set(protect)
        removed = []
        for backup in self.list(path)[keep_n:]:
            if backup.reference in protected:
                continue
            self.delete(backup)
            removed.append(backup)
        return removed
