"""
Failure classification and retry policy.

Raw failures (exceptions, non-zero exit statuses, timeouts, validation
rejections) map onto a closed set of categories, each with a fixed severity
and recovery action:

    VALIDATION  ERROR     ABORT   pre-condition not met; never retried
    TRANSIENT   WARNING   RETRY   timeout / resource busy; bounded backoff, then ABORT
    PERMISSION  ERROR     ABORT   insufficient rights / missing dependency
    INTEGRITY   CRITICAL  FATAL   undo data may be unreliable; halt
"""

import errno
import subprocess
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .core.errors import IntegrityError, MissingDependencyError, PermissionDeniedError
from .core.model import Classification, FailureCategory, RecoveryAction, Severity

POLICY: Dict[FailureCategory, Tuple[Severity, RecoveryAction]] = {
    FailureCategory.VALIDATION: (Severity.ERROR, RecoveryAction.ABORT),
    FailureCategory.TRANSIENT: (Severity.WARNING, RecoveryAction.RETRY),
    FailureCategory.PERMISSION: (Severity.ERROR, RecoveryAction.ABORT),
    FailureCategory.INTEGRITY: (Severity.CRITICAL, RecoveryAction.FATAL),
}

_unmapped = set(FailureCategory) - set(POLICY)
if _unmapped:
    raise RuntimeError(f"failure categories without a recovery policy: {sorted(c.value for c in _unmapped)}")

# sysexits.h
EX_NOPERM = 77
EX_TEMPFAIL = 75
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127

_TRANSIENT_ERRNOS = {errno.EAGAIN, errno.EBUSY, errno.ETIMEDOUT, errno.EINTR}
_PERMISSION_ERRNOS = {errno.EACCES, errno.EPERM, errno.EROFS, errno.ENOSPC}


@dataclass(frozen=True)
class RawFailure:
    """
    An unclassified failure.

    Fields:
        message: Human-readable description
        exit_status: Command exit status, if the failure came from a command
        timed_out: True if the action was killed for exceeding its timeout
        exception: Exception raised by the action, if any
        validation_failed: True if a validator rejected the result
    """
    message: str
    exit_status: Optional[int] = None
    timed_out: bool = False
    exception: Optional[BaseException] = None
    validation_failed: bool = False

    @classmethod
    def from_exception(cls, ex: BaseException) -> "RawFailure":
        return cls(message=f"{type(ex).__name__}: {ex}", exception=ex)

    @classmethod
    def from_command(cls, result) -> "RawFailure":
        if result.timed_out:
            message = f"command timed out after {result.duration:.1f}s: {result.command}"
        else:
            message = f"command exited {result.exit_status}: {result.command}"
        excerpt = result.excerpt(200)
        if excerpt:
            message = f"{message}: {excerpt}"
        return cls(message=message, exit_status=result.exit_status, timed_out=result.timed_out)

    @classmethod
    def validation(cls, message: str) -> "RawFailure":
        return cls(message=message, validation_failed=True)


def categorize(raw: RawFailure) -> FailureCategory:
    """Map a raw failure onto its category."""
    ex = raw.exception
    if isinstance(ex, IntegrityError):
        return FailureCategory.INTEGRITY
    if raw.validation_failed:
        return FailureCategory.VALIDATION
    if raw.timed_out or isinstance(ex, (TimeoutError, subprocess.TimeoutExpired, BlockingIOError, InterruptedError)):
        return FailureCategory.TRANSIENT
    if isinstance(ex, (PermissionError, PermissionDeniedError, MissingDependencyError)):
        return FailureCategory.PERMISSION
    if isinstance(ex, OSError) and ex.errno is not None:
        if ex.errno in _TRANSIENT_ERRNOS:
            return FailureCategory.TRANSIENT
        if ex.errno in _PERMISSION_ERRNOS:
            return FailureCategory.PERMISSION
    if raw.exit_status is not None:
        if raw.exit_status == EX_TEMPFAIL:
            return FailureCategory.TRANSIENT
        if raw.exit_status in (EX_NOPERM, EXIT_NOT_EXECUTABLE, EXIT_NOT_FOUND):
            return FailureCategory.PERMISSION
    return FailureCategory.VALIDATION


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff.

    Attempt n (0-based) waits base_delay * 2**n seconds, capped at max_delay.
    At most `budget` retries follow the first attempt.
    """
    budget: int = 3
    base_delay: float = 0.5
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)


class ErrorClassifier:
    """
    Maps raw failures to a severity and recovery action.

    Usage:
        classifier = ErrorClassifier(RetryPolicy(budget=2))
        c = classifier.classify(RawFailure.from_command(result), attempt=0)
        if c.action == RecoveryAction.RETRY:
            time.sleep(c.retry_delay)
    """

    def __init__(self, retry_policy: Optional[RetryPolicy] = None) -> None:
        self.retry_policy = retry_policy or RetryPolicy()

    def classify(self, raw: RawFailure, attempt: int = 0, optional: bool = False) -> Classification:
        """
        Classify a failure.

        Args:
            raw: The failure
            attempt: Zero-based attempt number the failure occurred on
            optional: The operation may be skipped instead of aborting

        Returns:
            Classification; a TRANSIENT failure past the retry budget
            escalates to ERROR/ABORT
        """
        category = categorize(raw)
        severity, action = POLICY[category]
        message = raw.message
        delay = 0.0

        if action == RecoveryAction.RETRY:
            if attempt < self.retry_policy.budget:
                delay = self.retry_policy.delay(attempt)
            else:
                severity, action = Severity.ERROR, RecoveryAction.ABORT
                message = f"{message} (retry budget of {self.retry_policy.budget} exhausted)"

        if optional and action == RecoveryAction.ABORT:
            severity, action = Severity.WARNING, RecoveryAction.SKIP

        return Classification(
            category=category,
            severity=severity,
            action=action,
            message=message,
            attempt=attempt,
            retry_delay=delay,
        )
