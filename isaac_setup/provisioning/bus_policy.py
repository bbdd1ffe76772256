"""D-Bus access policy for a daemon's well-known bus name."""

from __future__ import annotations

import logging
from pathlib import Path

from isaac_setup.provisioning.reporter import ConsoleReporter
from isaac_setup.system.state import SystemState
from src.utils import fs

logger = logging.getLogger(__name__)

POLICY_MODE = 0o644

_DOCTYPE = (
    '<!DOCTYPE busconfig PUBLIC\n'
    ' "-//freedesktop//DTD D-BUS Bus Configuration 1.0//EN"\n'
    ' "http://www.freedesktop.org/standards/dbus/1.0/busconfig.dtd">'
)


def render_bus_policy(bus_name: str, owner: str = "root") -> str:
    """Policy letting *owner* own *bus_name* and anyone talk to it."""
    return "\n".join([
        _DOCTYPE,
        "<busconfig>",
        f'  <policy user="{owner}">',
        f'    <allow own="{bus_name}"/>',
        "  </policy>",
        '  <policy context="default">',
        f'    <allow send_destination="{bus_name}"/>',
        f'    <allow receive_sender="{bus_name}"/>',
        "  </policy>",
        "</busconfig>",
    ]) + "\n"


class BusPolicyWriter:
    """Write the policy file and ask the broker to pick it up.

    An unreachable broker is a warning: the file stays in place and takes
    effect the next time the bus starts.
    """

    def __init__(self, state: SystemState, reporter: ConsoleReporter) -> None:
        self.state = state
        self.reporter = reporter

    def write(self, path: str | Path, bus_name: str, owner: str = "root") -> bool:
        """Returns whether the broker reloaded."""
        target = self.state.path(path)
        fs.atomic_write_text(target, render_bus_policy(bus_name, owner), mode=POLICY_MODE)
        logger.info("Wrote bus policy %s for %s", target, bus_name)
        self.reporter.success(f"D-Bus configuration created: {path}")

        if self.state.bus.reload():
            self.reporter.success("D-Bus configuration reloaded")
            return True
        self.reporter.warning(
            "Could not reload D-Bus; the policy takes effect on the next bus restart"
        )
        return False
