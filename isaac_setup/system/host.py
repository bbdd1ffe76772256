"""Host facts and privileged filesystem operations.

:class:`LocalHost` answers the questions preflight asks (OS family, CPU
architecture, glibc version, free disk space, which tools are on PATH,
whether we run as root) and performs ``chown``.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import shutil
from pathlib import Path
from typing import Protocol

from isaac_setup.system.commands import CommandRunner

logger = logging.getLogger(__name__)

_GIB = 1024 ** 3

# Last dotted number on the first line of `ldd --version`
_LDD_VERSION_RE = re.compile(r"(\d+\.\d+(?:\.\d+)?)\s*$")


class HostProbe(Protocol):
    """Capability interface for host facts."""

    def os_family(self) -> str: ...

    def architecture(self) -> str: ...

    def glibc_version(self) -> str | None: ...

    def free_disk_gb(self, path: Path) -> float: ...

    def which(self, name: str) -> str | None: ...

    def is_root(self) -> bool: ...

    def chown(self, path: Path, user: str, group: str) -> None: ...

    def home(self) -> Path: ...


def nearest_existing(path: Path) -> Path:
    """Walk up from *path* to the first ancestor that exists."""
    path = Path(path)
    while not path.exists() and path != path.parent:
        path = path.parent
    return path


class LocalHost:
    """Real :class:`HostProbe` backed by the running machine."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def os_family(self) -> str:
        return platform.system().lower()

    def architecture(self) -> str:
        return platform.machine()

    def glibc_version(self) -> str | None:
        lib, version = platform.libc_ver()
        if lib == "glibc" and version:
            return version

        if self._runner.which("ldd") is None:
            return None
        result = self._runner.run(["ldd", "--version"], check=False)
        first_line = (result.stdout or result.stderr).splitlines()[:1]
        if not first_line:
            return None
        match = _LDD_VERSION_RE.search(first_line[0])
        return match.group(1) if match else None

    def free_disk_gb(self, path: Path) -> float:
        usage = shutil.disk_usage(nearest_existing(path))
        return usage.free / _GIB

    def which(self, name: str) -> str | None:
        return self._runner.which(name)

    def is_root(self) -> bool:
        return os.geteuid() == 0

    def chown(self, path: Path, user: str, group: str) -> None:
        logger.debug("chown %s:%s %s", user, group, path)
        shutil.chown(path, user=user, group=group)

    def home(self) -> Path:
        return Path.home()
