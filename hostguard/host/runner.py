"""
Command execution with captured output and a hard timeout.

A command that exceeds its timeout is killed (never left running in the
background) and reported with timed_out=True.
"""

import logging
import shlex
import subprocess
import time
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Union

logger = logging.getLogger(__name__)

Command = Union[str, Sequence[str]]

EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127


def _text(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of one command run.

    Fields:
        command: Command string as run
        exit_status: Process exit status (negative when killed by a signal)
        stdout: Captured standard output
        stderr: Captured standard error
        timed_out: True if the command was killed for exceeding its timeout
        duration: Wall time in seconds
    """
    command: str
    exit_status: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_status == 0 and not self.timed_out

    def excerpt(self, limit: int = 500) -> str:
        text = (self.stderr.strip() or self.stdout.strip())
        return text[-limit:]


class CommandRunner:
    """Runs commands without a shell; string commands are split with shlex."""

    def __init__(self, timeout: Optional[float] = None, env: Optional[Dict[str, str]] = None) -> None:
        self.timeout = timeout
        self.env = env

    def run(self, command: Command, timeout: Optional[float] = None) -> CommandResult:
        """
        Run a command and capture its output.

        Args:
            command: Command string or argv list
            timeout: Seconds before the process is killed (default: runner timeout)

        Returns:
            CommandResult; launch failures map to exit status 126/127
        """
        if isinstance(command, str):
            argv = shlex.split(command)
            display = command
        else:
            argv = list(command)
            display = shlex.join(argv)
        limit = timeout if timeout is not None else self.timeout
        if limit is not None and limit <= 0:
            limit = None

        logger.debug("Running: %s (timeout=%s)", display, limit)
        started = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=limit,
                env=self.env,
            )
        except subprocess.TimeoutExpired as ex:
            logger.warning("Command timed out after %ss and was killed: %s", limit, display)
            return CommandResult(
                command=display,
                exit_status=-9,
                stdout=_text(ex.stdout),
                stderr=_text(ex.stderr),
                timed_out=True,
                duration=time.monotonic() - started,
            )
        except FileNotFoundError as ex:
            return CommandResult(display, EXIT_NOT_FOUND, stderr=str(ex), duration=time.monotonic() - started)
        except PermissionError as ex:
            return CommandResult(display, EXIT_NOT_EXECUTABLE, stderr=str(ex), duration=time.monotonic() - started)

        return CommandResult(
            command=display,
            exit_status=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
            duration=time.monotonic() - started,
        )
