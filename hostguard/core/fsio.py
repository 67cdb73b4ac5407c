"""
Durable file primitives.

- append_line: O_APPEND write under an exclusive flock, fsynced before return
- atomic_write: write-to-temp in the same directory, fsync, rename over target

A crash in the middle of either never leaves a half-written record visible
to the next reader: appends land whole or not at all (readers skip a torn
trailing line), and replaced files are either the old or the new content.
"""

import fcntl
import os
import tempfile
from typing import Union

PathLike = Union[str, "os.PathLike[str]"]


def fsync_dir(directory: PathLike) -> None:
    """Flush a directory entry so a rename or create survives power loss."""
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def append_line(path: PathLike, line: str) -> None:
    """
    Append one line to a file and fsync it.

    Args:
        path: File to append to (created if missing)
        line: Record without trailing newline

    Raises:
        OSError: If the write or fsync fails
    """
    data = (line + "\n").encode("utf-8")
    fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        try:
            os.write(fd, data)
            os.fsync(fd)
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def atomic_write(path: PathLike, data: bytes, mode: int = 0o600) -> None:
    """
    Replace `path` with `data` atomically.

    Raises:
        OSError: If any step fails (the temporary file is removed)
    """
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise
    fsync_dir(directory)
