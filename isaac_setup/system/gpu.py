"""GPU query adapter (``nvidia-smi``).

Readings are parsed with :func:`src.utils.validators.parse_gpu_csv`, so
cells such as ``[N/A]`` become ``None`` instead of crashing the caller.
"""

from __future__ import annotations

import logging
from typing import Protocol

from isaac_setup.system.commands import CommandRunner
from src.utils.validators import GPU_QUERY_FIELDS, GpuPowerReading, parse_gpu_csv

logger = logging.getLogger(__name__)

NVIDIA_SMI = "nvidia-smi"


class GpuQuery(Protocol):
    """Capability interface for reading GPU power state."""

    def available(self) -> bool: ...

    def readings(self) -> list[GpuPowerReading]: ...

    def driver_version(self) -> str | None: ...

    def limits_table(self) -> str: ...


class NvidiaSmi:
    """:class:`GpuQuery` backed by the NVIDIA driver's query tool."""

    def __init__(self, runner: CommandRunner, executable: str = NVIDIA_SMI) -> None:
        self._runner = runner
        self.executable = executable

    def available(self) -> bool:
        return self._runner.which(self.executable) is not None

    def readings(self) -> list[GpuPowerReading]:
        result = self._runner.run(
            [
                self.executable,
                f"--query-gpu={','.join(GPU_QUERY_FIELDS)}",
                "--format=csv,noheader,nounits",
            ],
            hint="Check the driver with: nvidia-smi",
        )
        return parse_gpu_csv(result.stdout)

    def driver_version(self) -> str | None:
        result = self._runner.run(
            [self.executable, "--query-gpu=driver_version", "--format=csv,noheader"],
            check=False,
        )
        lines = [ln.strip() for ln in result.stdout.splitlines() if ln.strip()]
        return lines[0] if result.ok and lines else None

    def limits_table(self) -> str:
        """Human-readable ``index, name, power.limit`` CSV with header."""
        result = self._runner.run(
            [self.executable, "--query-gpu=index,name,power.limit", "--format=csv"],
            check=False,
        )
        return result.stdout
