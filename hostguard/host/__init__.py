"""
Host collaborators: command execution and package management.
"""

from .runner import CommandResult, CommandRunner
from .validator import CommandValidator
from .packages import (
    AptPackageManager,
    DnfPackageManager,
    PackageManager,
    YumPackageManager,
    detect_package_manager,
)

__all__ = [
    "CommandResult",
    "CommandRunner",
    "CommandValidator",
    "PackageManager",
    "AptPackageManager",
    "DnfPackageManager",
    "YumPackageManager",
    "detect_package_manager",
]
