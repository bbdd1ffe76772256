"""
Host capability layer.

Real adapters for the service manager (systemd), package manager (apt),
message bus (D-Bus), GPU query tool (nvidia-smi), and host facts, plus
in-memory counterparts.  :class:`SystemState` bundles them.
"""

from isaac_setup.system.commands import CommandResult, CommandRunner
from isaac_setup.system.state import SystemState

__all__ = ["CommandResult", "CommandRunner", "SystemState"]
