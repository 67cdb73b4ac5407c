"""
Configuration loaded from HOSTGUARD_* environment variables.

Environment Variables:
    HOSTGUARD_ROOT: State root (default: /var/lib/hostguard)
    HOSTGUARD_BACKUP_ROOT: Backup root (default: <root>/backups)
    HOSTGUARD_CHECKPOINT_ROOT: Checkpoint root (default: <root>/checkpoints)
    HOSTGUARD_LOG_ROOT: Operation log root (default: <root>/log)
    HOSTGUARD_LOCK_PATH: Host lock file (default: <root>/hostguard.lock)
    HOSTGUARD_LOCK_STALE_SECONDS: Heartbeat age after which a lock is abandoned (default: 300)
    HOSTGUARD_HEARTBEAT_INTERVAL: Seconds between lock heartbeats while an operation runs,
        must stay below the staleness threshold; 0 disables (default: 30)
    HOSTGUARD_RETRY_BUDGET: Retries for TRANSIENT failures (default: 3)
    HOSTGUARD_RETRY_BASE_DELAY: First backoff delay in seconds (default: 0.5)
    HOSTGUARD_RETRY_MAX_DELAY: Backoff cap in seconds (default: 30)
    HOSTGUARD_COMMAND_TIMEOUT: Default command timeout in seconds, 0 disables (default: 300)
    HOSTGUARD_BACKUP_KEEP: Default retention count for cleanup (default: 10)
    HOSTGUARD_AUTO_ROLLBACK: Roll back automatically on ABORT failures, 1/0 (default: 1)
"""

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_ROOT = "/var/lib/hostguard"


def _env_int(key: str, default: int) -> int:
    val = os.getenv(key)
    if not val:
        return default
    try:
        parsed = int(val)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def _env_float(key: str, default: float) -> float:
    val = os.getenv(key)
    if not val:
        return default
    try:
        parsed = float(val)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


@dataclass
class HostGuardConfig:
    backup_root: str
    checkpoint_root: str
    log_root: str
    lock_path: str
    lock_stale_seconds: float = 300.0
    heartbeat_interval: float = 30.0
    retry_budget: int = 3
    retry_base_delay: float = 0.5
    retry_max_delay: float = 30.0
    command_timeout: Optional[float] = 300.0
    backup_keep: int = 10
    auto_rollback: bool = True

    @staticmethod
    def for_root(root: str, **overrides) -> "HostGuardConfig":
        """Config with every path under `root` (used by tests and --root)."""
        values = dict(
            backup_root=os.path.join(root, "backups"),
            checkpoint_root=os.path.join(root, "checkpoints"),
            log_root=os.path.join(root, "log"),
            lock_path=os.path.join(root, "hostguard.lock"),
        )
        values.update(overrides)
        return HostGuardConfig(**values)

    @staticmethod
    def from_env(root: Optional[str] = None) -> "HostGuardConfig":
        root = root or os.getenv("HOSTGUARD_ROOT", DEFAULT_ROOT)
        timeout = _env_float("HOSTGUARD_COMMAND_TIMEOUT", 300.0)
        return HostGuardConfig(
            backup_root=os.getenv("HOSTGUARD_BACKUP_ROOT", os.path.join(root, "backups")),
            checkpoint_root=os.getenv("HOSTGUARD_CHECKPOINT_ROOT", os.path.join(root, "checkpoints")),
            log_root=os.getenv("HOSTGUARD_LOG_ROOT", os.path.join(root, "log")),
            lock_path=os.getenv("HOSTGUARD_LOCK_PATH", os.path.join(root, "hostguard.lock")),
            lock_stale_seconds=_env_float("HOSTGUARD_LOCK_STALE_SECONDS", 300.0),
            heartbeat_interval=_env_float("HOSTGUARD_HEARTBEAT_INTERVAL", 30.0),
            retry_budget=_env_int("HOSTGUARD_RETRY_BUDGET", 3),
            retry_base_delay=_env_float("HOSTGUARD_RETRY_BASE_DELAY", 0.5),
            retry_max_delay=_env_float("HOSTGUARD_RETRY_MAX_DELAY", 30.0),
            command_timeout=timeout or None,
            backup_keep=_env_int("HOSTGUARD_BACKUP_KEEP", 10),
            auto_rollback=os.getenv("HOSTGUARD_AUTO_ROLLBACK", "1") != "0",
        )
