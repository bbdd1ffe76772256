"""Package-manager adapter (apt / dpkg)."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from isaac_setup.system.commands import CommandRunner

logger = logging.getLogger(__name__)

# Keep apt from opening interactive conffile / restart dialogs
_NONINTERACTIVE = {"DEBIAN_FRONTEND": "noninteractive"}


class PackageManager(Protocol):
    """Capability interface for the host package manager."""

    def update(self) -> None: ...

    def install(self, packages: Sequence[str]) -> None: ...

    def remove(self, packages: Sequence[str]) -> None: ...

    def is_installed(self, package: str) -> bool: ...

    def installed_version(self, package: str) -> str | None: ...


class AptPackageManager:
    """:class:`PackageManager` for Debian/Ubuntu hosts."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner
        self._apt = CommandRunner(timeout=None, env=_NONINTERACTIVE)

    def update(self) -> None:
        self._apt.run(
            ["apt-get", "update"],
            capture=False,
            hint="Check network access and /etc/apt/sources.list",
        )

    def install(self, packages: Sequence[str]) -> None:
        self._apt.run(
            ["apt-get", "install", "-y", *packages],
            capture=False,
            hint=f"Try manually: sudo apt-get install {' '.join(packages)}",
        )

    def remove(self, packages: Sequence[str]) -> None:
        self._apt.run(["apt-get", "remove", "-y", *packages], capture=False)

    def is_installed(self, package: str) -> bool:
        result = self._runner.run(
            ["dpkg-query", "-W", "-f=${Status}", package], check=False,
        )
        return result.ok and "install ok installed" in result.stdout

    def installed_version(self, package: str) -> str | None:
        if not self.is_installed(package):
            return None
        result = self._runner.run(
            ["dpkg-query", "-W", "-f=${Version}", package], check=False,
        )
        return result.stdout.strip() or None
