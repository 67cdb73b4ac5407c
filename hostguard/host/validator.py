"""
Command-backed configuration validator.

Implements the validate(path, rule) -> bool contract: `rule` is a command
template in which "{path}" is replaced by the shell-quoted path, e.g.
"nginx -t -c {path}" or "visudo -cf {path}".
"""

import logging
import shlex
from typing import Optional

from .runner import CommandRunner

logger = logging.getLogger(__name__)


class CommandValidator:
    def __init__(self, runner: Optional[CommandRunner] = None, timeout: Optional[float] = 60.0) -> None:
        self.runner = runner or CommandRunner()
        self.timeout = timeout

    def __call__(self, path: str, rule: str) -> bool:
        command = rule.replace("{path}", shlex.quote(path))
        result = self.runner.run(command, timeout=self.timeout)
        if not result.ok:
            logger.info("Validation of %s rejected by %r: %s", path, rule, result.excerpt(200))
        return result.ok
