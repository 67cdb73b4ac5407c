"""
Replay executor: re-run a logged operation sequence on this host.

Replay is a diagnostic for operators. It is never wired into automatic
recovery because arbitrary commands are not guaranteed to be idempotent.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.model import Operation, OperationKind


@dataclass(frozen=True)
class ReplayStep:
    """
    Outcome of replaying one operation.

    Fields:
        operation: The logged operation
        executed: False for dry runs and operations that cannot be replayed
        ok: Whether the replayed action succeeded
        detail: Output excerpt or explanation
    """
    operation: Operation
    executed: bool
    ok: bool
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.operation.index,
            "kind": self.operation.kind.value,
            "target": self.operation.target,
            "executed": self.executed,
            "ok": self.ok,
            "detail": self.detail,
        }


class HostExecutor:
    """
    Re-executes EXEC, PACKAGE_* and FILE_DELETE operations.

    FILE_CREATE and FILE_MODIFY cannot be replayed: the log records what was
    touched, not the new content.
    """

    def __init__(self, runner, packages=None, timeout: Optional[float] = None) -> None:
        self.runner = runner
        self.packages = packages
        self.timeout = timeout

    def __call__(self, operation: Operation) -> ReplayStep:
        kind = operation.kind
        if kind == OperationKind.EXEC:
            result = self.runner.run(operation.target, timeout=self.timeout)
            return ReplayStep(operation, executed=True, ok=result.ok, detail=result.excerpt())
        if kind.is_package:
            if self.packages is None:
                return ReplayStep(operation, executed=False, ok=False, detail="no package manager available")
            if kind == OperationKind.PACKAGE_INSTALL:
                result = self.packages.install(operation.target, timeout=self.timeout)
            else:
                result = self.packages.remove(operation.target, timeout=self.timeout)
            return ReplayStep(operation, executed=True, ok=result.ok, detail=result.excerpt())
        if kind == OperationKind.FILE_DELETE:
            try:
                os.unlink(operation.target)
            except FileNotFoundError:
                return ReplayStep(operation, executed=True, ok=True, detail="already absent")
            except OSError as ex:
                return ReplayStep(operation, executed=True, ok=False, detail=str(ex))
            return ReplayStep(operation, executed=True, ok=True)
        return ReplayStep(operation, executed=False, ok=False, detail="file content is not recorded; cannot replay")
