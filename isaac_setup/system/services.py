"""Service-manager adapter (systemd).

State-changing calls (``daemon_reload``, ``enable``, ``start``, ``stop``,
``disable``, ``mask``, ``reload``) raise
:class:`~isaac_setup.errors.CommandFailed` on failure.  Whether a failure
is fatal is decided by the caller (see
:mod:`isaac_setup.provisioning.lifecycle`), not here.
"""

from __future__ import annotations

import logging
from typing import Protocol

from isaac_setup.system.commands import CommandRunner

logger = logging.getLogger(__name__)


class ServiceManager(Protocol):
    """Capability interface for the host service manager."""

    def daemon_reload(self) -> None: ...

    def enable(self, name: str) -> None: ...

    def disable(self, name: str) -> None: ...

    def start(self, name: str) -> None: ...

    def stop(self, name: str) -> None: ...

    def mask(self, name: str) -> None: ...

    def reload(self, name: str) -> None: ...

    def is_active(self, name: str) -> bool: ...

    def is_enabled(self, name: str) -> bool: ...

    def status(self, name: str) -> str: ...

    def journal(self, name: str, lines: int = 50) -> str: ...


class SystemdServiceManager:
    """:class:`ServiceManager` driving ``systemctl`` and ``journalctl``."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def _systemctl(self, *args: str) -> None:
        self._runner.run(
            ["systemctl", *args],
            hint=f"Inspect with: systemctl status {args[-1]} --no-pager",
        )

    def daemon_reload(self) -> None:
        self._runner.run(
            ["systemctl", "daemon-reload"],
            hint="Check unit files with: systemd-analyze verify",
        )

    def enable(self, name: str) -> None:
        self._systemctl("enable", name)

    def disable(self, name: str) -> None:
        self._systemctl("disable", name)

    def start(self, name: str) -> None:
        self._systemctl("start", name)

    def stop(self, name: str) -> None:
        self._systemctl("stop", name)

    def mask(self, name: str) -> None:
        self._systemctl("mask", name)

    def reload(self, name: str) -> None:
        self._systemctl("reload", name)

    def is_active(self, name: str) -> bool:
        return self._runner.run(
            ["systemctl", "is-active", "--quiet", name], check=False,
        ).ok

    def is_enabled(self, name: str) -> bool:
        return self._runner.run(
            ["systemctl", "is-enabled", "--quiet", name], check=False,
        ).ok

    def status(self, name: str) -> str:
        result = self._runner.run(
            ["systemctl", "status", name, "--no-pager"], check=False,
        )
        return result.stdout or result.stderr

    def journal(self, name: str, lines: int = 50) -> str:
        result = self._runner.run(
            ["journalctl", "-u", name, "-n", str(lines), "--no-pager"],
            check=False,
        )
        return result.stdout or result.stderr
