"""
Backup store: immutable, checksummed, timestamped copies of single files.
"""

from .model import Backup
from .store import BackupStore, file_checksum

__all__ = ["Backup", "BackupStore", "file_checksum"]
