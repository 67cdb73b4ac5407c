"""
Host-wide mutual exclusion for transactions.

The lock is a small JSON file holding the owning process id, the owning
transaction id and a heartbeat timestamp. A lock whose heartbeat is older
than the staleness threshold is treated as abandoned (the owner crashed)
and may be reclaimed; that reclaim is logged as a WARNING.

Check-and-set on the lock file happens under an flock on a sibling
".guard" file so two processes never both see the lock as free. While an
operation runs, keepalive() refreshes the heartbeat from a daemon thread.
"""

import fcntl
import json
import logging
import os
import socket
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .core.canonical import canonical_json_bytes
from .core.clock import SystemClock
from .core.errors import AlreadyActiveError, LockError
from .core.fsio import atomic_write

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockRecord:
    pid: int
    owner: str
    hostname: str
    acquired_at: float
    heartbeat: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pid": self.pid,
            "owner": self.owner,
            "hostname": self.hostname,
            "acquired_at": self.acquired_at,
            "heartbeat": self.heartbeat,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LockRecord":
        return cls(
            pid=int(data["pid"]),
            owner=str(data["owner"]),
            hostname=str(data.get("hostname", "")),
            acquired_at=float(data["acquired_at"]),
            heartbeat=float(data["heartbeat"]),
        )


class HostLock:
    """
    Lock file with heartbeat-based staleness.

    Args:
        path: Lock file path
        stale_after: Seconds without heartbeat after which the lock is abandoned
        clock: Clock providing time()
    """

    def __init__(self, path: str, stale_after: float = 300.0, clock=None) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.guard_path = self.path.with_name(self.path.name + ".guard")
        self.stale_after = stale_after
        self.clock = clock or SystemClock()

    @contextmanager
    def _guard(self) -> Iterator[None]:
        fd = os.open(self.guard_path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    def read(self) -> Optional[LockRecord]:
        """
        Return the current lock record, or None if the host is unlocked.

        Raises:
            LockError: If the lock file exists but cannot be parsed
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return LockRecord.from_dict(json.load(f))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as ex:
            raise LockError(f"unreadable lock file {self.path}: {ex}") from ex

    def is_stale(self, record: LockRecord) -> bool:
        return self.clock.time() - record.heartbeat > self.stale_after

    def _write(self, record: LockRecord) -> None:
        try:
            atomic_write(self.path, canonical_json_bytes(record.to_dict()), mode=0o644)
        except OSError as ex:
            raise LockError(f"cannot write lock file {self.path}: {ex}") from ex

    def acquire(self, owner: str) -> LockRecord:
        """
        Acquire the host lock for `owner`.

        A stale lock is reclaimed. A lock already held by `owner` (for
        example a crashed run of the same transaction) is taken over only
        once it is stale.

        Raises:
            AlreadyActiveError: If a live lock is held
        """
        with self._guard():
            current = self.read()
            if current is not None:
                age = self.clock.time() - current.heartbeat
                if not self.is_stale(current):
                    raise AlreadyActiveError(
                        f"transaction {current.owner} (pid {current.pid} on {current.hostname}) "
                        f"is active; heartbeat {age:.0f}s ago"
                    )
                logger.warning(
                    "Reclaiming abandoned lock of transaction %s (pid %d), heartbeat %.0fs old",
                    current.owner,
                    current.pid,
                    age,
                )
            now = self.clock.time()
            record = LockRecord(
                pid=os.getpid(),
                owner=owner,
                hostname=socket.gethostname(),
                acquired_at=now,
                heartbeat=now,
            )
            self._write(record)
            logger.debug("Acquired host lock for %s", owner)
            return record

    def heartbeat(self, owner: str) -> LockRecord:
        """
        Refresh the heartbeat of a lock held by `owner`.

        Raises:
            LockError: If the lock is no longer held by `owner`
        """
        with self._guard():
            current = self.read()
            if current is None or current.owner != owner:
                raise LockError(f"host lock no longer held by {owner}")
            record = LockRecord(
                pid=current.pid,
                owner=owner,
                hostname=current.hostname,
                acquired_at=current.acquired_at,
                heartbeat=self.clock.time(),
            )
            self._write(record)
            return record

    @contextmanager
    def keepalive(self, owner: str, interval: float) -> Iterator[None]:
        """
        Refresh the heartbeat of `owner` every `interval` seconds while the
        block runs, so a long action never looks abandoned.

        The heartbeat thread is stopped and joined when the block exits.
        An interval of 0 disables it.
        """
        if interval <= 0:
            yield
            return

        stop = threading.Event()

        def heartbeat_loop():
            while not stop.wait(interval):
                try:
                    self.heartbeat(owner)
                except LockError as e:
                    logger.error("Heartbeat for %s stopped: %s", owner, e)
                    return

        thread = threading.Thread(target=heartbeat_loop, daemon=True, name=f"HostLockHeartbeat-{owner}")
        thread.start()
        try:
            yield
        finally:
            stop.set()
            thread.join()

    def release(self, owner: str) -> bool:
        """
        Release the lock if held by `owner`.

        Returns:
            True if the lock file was removed
        """
        with self._guard():
            current = self.read()
            if current is None or current.owner != owner:
                return False
            os.unlink(self.path)
            logger.debug("Released host lock for %s", owner)
            return True

    def held_by(self) -> Optional[str]:
        """Owner of a live (non-stale) lock, or None."""
        current = self.read()
        if current is None or self.is_stale(current):
            return None
        return current.owner

    def status(self) -> Optional[Dict[str, Any]]:
        """Lock record plus its heartbeat age and staleness, or None if unlocked."""
        current = self.read()
        if current is None:
            return None
        data = current.to_dict()
        data["age"] = self.clock.time() - current.heartbeat
        data["stale"] = self.is_stale(current)
        return data
