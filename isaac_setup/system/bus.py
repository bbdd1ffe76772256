"""IPC broker adapter (D-Bus system bus)."""

from __future__ import annotations

import logging
from typing import Protocol

from isaac_setup.errors import CommandFailed
from isaac_setup.system.commands import CommandRunner

logger = logging.getLogger(__name__)


class IPCBroker(Protocol):
    """Capability interface for the system message bus."""

    def reload(self) -> bool:
        """Ask the broker to re-read its policy; ``False`` if unreachable."""
        ...


class DBusBroker:
    """:class:`IPCBroker` reloading ``dbus`` through systemd.

    The bus counts as unreachable when ``dbus-send`` is missing or the
    reload request fails.
    """

    def __init__(self, runner: CommandRunner, unit: str = "dbus") -> None:
        self._runner = runner
        self.unit = unit

    def reload(self) -> bool:
        if self._runner.which("dbus-send") is None:
            logger.info("dbus-send not found; skipping bus reload")
            return False
        try:
            self._runner.run(["systemctl", "reload", self.unit])
        except CommandFailed as exc:
            logger.warning("Bus reload failed: %s", exc)
            return False
        return True
