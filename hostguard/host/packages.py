"""
Package manager adapters.

Each adapter answers "is this package installed?" and runs install/remove
through a CommandRunner, so package operations are timed out and captured
the same way as any other command.
"""

import shutil
from abc import ABC, abstractmethod
from typing import List, Optional

from .runner import CommandResult, CommandRunner


class PackageManager(ABC):
    """Abstract package manager interface."""

    name = "abstract"

    def __init__(self, runner: Optional[CommandRunner] = None) -> None:
        self.runner = runner or CommandRunner()

    @abstractmethod
    def is_installed(self, package: str) -> bool:
        ...

    @abstractmethod
    def install_command(self, package: str) -> List[str]:
        ...

    @abstractmethod
    def remove_command(self, package: str) -> List[str]:
        ...

    def install(self, package: str, timeout: Optional[float] = None) -> CommandResult:
        return self.runner.run(self.install_command(package), timeout=timeout)

    def remove(self, package: str, timeout: Optional[float] = None) -> CommandResult:
        return self.runner.run(self.remove_command(package), timeout=timeout)


class AptPackageManager(PackageManager):
    name = "apt"

    def is_installed(self, package: str) -> bool:
        result = self.runner.run(["dpkg-query", "-W", "-f=${Status}", package])
        return result.ok and result.stdout.strip().endswith("installed") and "not-installed" not in result.stdout

    def install_command(self, package: str) -> List[str]:
        return ["apt-get", "install", "-y", "--no-install-recommends", package]

    def remove_command(self, package: str) -> List[str]:
        return ["apt-get", "remove", "-y", package]


class DnfPackageManager(PackageManager):
    name = "dnf"
    binary = "dnf"

    def is_installed(self, package: str) -> bool:
        return self.runner.run(["rpm", "-q", package]).ok

    def install_command(self, package: str) -> List[str]:
        return [self.binary, "install", "-y", package]

    def remove_command(self, package: str) -> List[str]:
        return [self.binary, "remove", "-y", package]


class YumPackageManager(DnfPackageManager):
    name = "yum"
    binary = "yum"


def detect_package_manager(runner: Optional[CommandRunner] = None) -> Optional[PackageManager]:
    """Return the adapter for the first package manager found on PATH, or None."""
    if shutil.which("apt-get") and shutil.which("dpkg-query"):
        return AptPackageManager(runner)
    if shutil.which("dnf"):
        return DnfPackageManager(runner)
    if shutil.which("yum"):
        return YumPackageManager(runner)
    return None
