"""The system handle threaded through every provisioning step.

:class:`SystemState` bundles the filesystem root, the capability
adapters, the operator prompt, and the clock.  Steps receive it
explicitly; nothing in the provisioning layer reaches for globals, so a
test can swap every adapter for its in-memory counterpart and point
*root* at ``tmp_path``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from isaac_setup.system.bus import DBusBroker, IPCBroker
from isaac_setup.system.commands import CommandRunner
from isaac_setup.system.gpu import GpuQuery, NvidiaSmi
from isaac_setup.system.host import HostProbe, LocalHost
from isaac_setup.system.packages import AptPackageManager, PackageManager
from isaac_setup.system.services import ServiceManager, SystemdServiceManager

if TYPE_CHECKING:
    from isaac_setup.provisioning.prompts import Prompter

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


@dataclass
class SystemState:
    """Filesystem root, capability adapters, prompt, and clock.

    Parameters
    ----------
    root : Path
        Prefix for every absolute path the workflows touch (``/`` in
        production).
    host, services, packages, bus, gpu
        Capability adapters.
    runner : CommandRunner
        For tools without a dedicated adapter (wget, unzip, git...).
    prompt : Prompter
        Operator decision strategy.
    clock : Callable[[], datetime]
        Wall clock, used for backup stamps and summaries.
    sleep : Callable[[float], None]
        Used for the post-start settle interval.
    """

    root: Path
    host: HostProbe
    services: ServiceManager
    packages: PackageManager
    bus: IPCBroker
    gpu: GpuQuery
    runner: CommandRunner
    prompt: Prompter
    clock: Callable[[], datetime] = datetime.now
    sleep: Callable[[float], None] = field(default=time.sleep)

    def path(self, p: str | Path) -> Path:
        """Map an absolute system path onto :attr:`root`.

        ``~`` expands to the host's home directory first.
        """
        p = Path(p)
        if str(p).startswith("~"):
            p = self.host.home() / p.relative_to("~")
        if p.is_absolute():
            return self.root / p.relative_to("/")
        return self.root / p

    def stamp(self) -> str:
        """Timestamp string for backup names (``YYYYmmdd_HHMMSS``)."""
        return self.clock().strftime(TIMESTAMP_FORMAT)

    @classmethod
    def live(cls, prompt: Prompter) -> SystemState:
        """Build a state wired to the real host."""
        runner = CommandRunner()
        return cls(
            root=Path("/"),
            host=LocalHost(runner),
            services=SystemdServiceManager(runner),
            packages=AptPackageManager(runner),
            bus=DBusBroker(runner),
            gpu=NvidiaSmi(runner),
            runner=runner,
            prompt=prompt,
        )
