"""
Checkpoint storage management.

Layout:
    <checkpoint-root>/<name>/checkpoint.json   header (name, created_at, transaction_id)
    <checkpoint-root>/<name>/manifest          one JSONL line per ManifestEntry, append-only
"""

import json
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from ..backup.model import Backup
from ..backup.store import BackupStore
from ..core.canonical import canonical_json_bytes, canonical_json_str
from ..core.clock import SystemClock
from ..core.errors import (
    CheckpointExistsError,
    CheckpointNotFoundError,
    HostGuardError,
    RestoreError,
)
from ..core.fsio import append_line, atomic_write
from .model import Checkpoint, EntryKind, EntryOutcome, ManifestEntry, RestoreReport

logger = logging.getLogger(__name__)

HEADER_FILE = "checkpoint.json"
MANIFEST_FILE = "manifest"


def _valid_name(name: str) -> bool:
    return bool(name) and "/" not in name and "\x00" not in name and not name.startswith(".")


class CheckpointStore:
    """
    Manage checkpoints on disk and restore them.

    Package and command entries need a PackageManager and CommandRunner;
    without them such entries fail (and are reported) at restore time.
    """

    def __init__(
        self,
        root: str,
        backups: BackupStore,
        packages=None,
        runner=None,
        clock=None,
    ) -> None:
        """
        Initialize checkpoint store.

        Args:
            root: Directory holding one sub-directory per checkpoint
            backups: BackupStore that backup entries reference
            packages: PackageManager used to undo package entries
            runner: CommandRunner used to run compensating commands
            clock: Clock providing now()
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.backups = backups
        self.packages = packages
        self.runner = runner
        self.clock = clock or SystemClock()

    def _dir(self, name: str) -> Path:
        if not _valid_name(name):
            raise ValueError(f"invalid checkpoint name: {name!r}")
        return self.root / name

    def exists(self, name: str) -> bool:
        return (self._dir(name) / HEADER_FILE).exists()

    def create(self, name: str, transaction_id: Optional[str] = None) -> Checkpoint:
        """
        Create an empty checkpoint.

        Raises:
            CheckpointExistsError: If a checkpoint with this name exists
        """
        directory = self._dir(name)
        try:
            directory.mkdir(parents=True, exist_ok=False)
        except FileExistsError as ex:
            raise CheckpointExistsError(f"checkpoint already exists: {name}") from ex

        checkpoint = Checkpoint(name=name, created_at=self.clock.now(), transaction_id=transaction_id)
        atomic_write(directory / HEADER_FILE, canonical_json_bytes(checkpoint.header()))
        (directory / MANIFEST_FILE).touch()
        logger.info("Created checkpoint %s (transaction=%s)", name, transaction_id or "-")
        return checkpoint

    def _append(self, checkpoint: Checkpoint, entry: ManifestEntry) -> ManifestEntry:
        append_line(self._dir(checkpoint.name) / MANIFEST_FILE, canonical_json_str(entry.to_dict()))
        checkpoint.manifest.append(entry)
        return entry

    def add_backup(self, checkpoint: Checkpoint, backup: Backup, operation_index: Optional[int] = None) -> ManifestEntry:
        """Append a (original_path -> backup_reference) entry to the manifest."""
        entry = ManifestEntry(
            seq=len(checkpoint.manifest),
            kind=EntryKind.BACKUP,
            target=backup.original_path,
            backup=backup.reference,
            operation_index=operation_index,
        )
        return self._append(checkpoint, entry)

    def add_absent(self, checkpoint: Checkpoint, path: str, operation_index: Optional[int] = None) -> ManifestEntry:
        """Record that `path` did not exist; restoring removes it."""
        entry = ManifestEntry(
            seq=len(checkpoint.manifest),
            kind=EntryKind.ABSENT,
            target=os.path.abspath(path),
            operation_index=operation_index,
        )
        return self._append(checkpoint, entry)

    def add_package(
        self,
        checkpoint: Checkpoint,
        package: str,
        was_installed: bool,
        operation_index: Optional[int] = None,
    ) -> ManifestEntry:
        entry = ManifestEntry(
            seq=len(checkpoint.manifest),
            kind=EntryKind.PACKAGE,
            target=package,
            was_installed=was_installed,
            operation_index=operation_index,
        )
        return self._append(checkpoint, entry)

    def add_command(self, checkpoint: Checkpoint, command: str, operation_index: Optional[int] = None) -> ManifestEntry:
        entry = ManifestEntry(
            seq=len(checkpoint.manifest),
            kind=EntryKind.COMMAND,
            target=command,
            operation_index=operation_index,
        )
        return self._append(checkpoint, entry)

    def get(self, name: str) -> Checkpoint:
        """
        Load a checkpoint with its manifest.

        A torn trailing manifest line (crash mid-append) is ignored.

        Raises:
            CheckpointNotFoundError: If the checkpoint does not exist
        """
        directory = self._dir(name)
        try:
            with open(directory / HEADER_FILE, "r", encoding="utf-8") as f:
                header = json.load(f)
        except FileNotFoundError as ex:
            raise CheckpointNotFoundError(f"checkpoint not found: {name}") from ex

        checkpoint = Checkpoint(
            name=header["name"],
            created_at=datetime.fromisoformat(header["created_at"]),
            transaction_id=header.get("transaction_id"),
        )
        manifest_path = directory / MANIFEST_FILE
        if manifest_path.exists():
            with open(manifest_path, "r", encoding="utf-8") as f:
                lines = f.read().split("\n")
            for line in lines:
                if not line.strip():
                    continue
                try:
                    checkpoint.manifest.append(ManifestEntry.from_dict(json.loads(line)))
                except ValueError:
                    logger.warning("Ignoring torn manifest line in checkpoint %s", name)
        return checkpoint

    def list(self) -> List[Checkpoint]:
        """List all checkpoints, oldest first."""
        checkpoints = []
        for header in self.root.glob(f"*/{HEADER_FILE}"):
            checkpoints.append(self.get(header.parent.name))
        checkpoints.sort(key=lambda c: (c.created_at, c.name))
        return checkpoints

    def restore(self, checkpoint: Checkpoint) -> RestoreReport:
        """
        Restore every manifest entry, newest first.

        Later modifications of the same path are undone before earlier
        ones. Every entry is attempted even if earlier ones fail.

        Returns:
            RestoreReport with per-entry outcomes
        """
        report = RestoreReport(checkpoint=checkpoint.name)
        for entry in reversed(checkpoint.manifest):
            try:
                self._undo(entry)
            except (HostGuardError, OSError) as ex:
                logger.error("Checkpoint %s: failed to %s: %s", checkpoint.name, entry.describe(), ex)
                report.failed.append(EntryOutcome(entry, error=str(ex)))
            else:
                report.succeeded.append(EntryOutcome(entry))

        if report.ok:
            logger.info("Restored checkpoint %s (%d entries)", checkpoint.name, len(report.succeeded))
        else:
            logger.critical(
                "Checkpoint %s restored PARTIALLY: %d succeeded, %d failed",
                checkpoint.name,
                len(report.succeeded),
                len(report.failed),
            )
        return report

    def _undo(self, entry: ManifestEntry) -> None:
        if entry.kind == EntryKind.BACKUP:
            self.backups.restore(self.backups.get(entry.backup))
        elif entry.kind == EntryKind.ABSENT:
            path = Path(entry.target)
            if path.is_dir() and not path.is_symlink():
                path.rmdir()
            elif path.exists() or path.is_symlink():
                path.unlink()
        elif entry.kind == EntryKind.PACKAGE:
            self._undo_package(entry)
        elif entry.kind == EntryKind.COMMAND:
            if self.runner is None:
                raise RestoreError(f"no command runner to run {entry.target!r}")
            result = self.runner.run(entry.target)
            if not result.ok:
                raise RestoreError(f"compensating command failed ({result.exit_status}): {result.excerpt()}")

    def _undo_package(self, entry: ManifestEntry) -> None:
        if self.packages is None:
            raise RestoreError(f"no package manager to restore package {entry.target}")
        installed = self.packages.is_installed(entry.target)
        if installed == entry.was_installed:
            return
        if entry.was_installed:
            result = self.packages.install(entry.target)
        else:
            result = self.packages.remove(entry.target)
        if not result.ok:
            raise RestoreError(f"cannot {entry.describe()}: {result.excerpt()}")

    def delete(self, checkpoint: Checkpoint, keep_backups: Iterable[str] = ()) -> None:
        """
        Delete a checkpoint and the backups it references.

        Args:
            checkpoint: Checkpoint to delete
            keep_backups: Backup references still referenced elsewhere
        """
        keep = set(keep_backups)
        for reference in checkpoint.backup_references():
            if reference in keep:
                continue
            try:
                self.backups.delete(self.backups.get(reference))
            except HostGuardError:
                logger.warning("Checkpoint %s references missing backup %s", checkpoint.name, reference)
        shutil.rmtree(self._dir(checkpoint.name), ignore_errors=False)
        logger.info("Deleted checkpoint %s", checkpoint.name)
