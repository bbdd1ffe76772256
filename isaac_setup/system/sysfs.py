"""Readers for CPU frequency and power-supply state under ``/sys``.

Every function takes the filesystem *root* so tests can lay out a fake
sysfs tree under ``tmp_path``.  Missing files yield empty results rather
than errors: not every CPU driver exposes every knob.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

CPU_DIR = Path("sys/devices/system/cpu")
POWER_SUPPLY_DIR = Path("sys/class/power_supply")


def _read(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError:
        return None


def scaling_governors(root: Path) -> list[str]:
    """Governor of every CPU that exposes cpufreq, ordered by CPU number."""
    cpu_dir = Path(root) / CPU_DIR

    def cpu_number(p: Path) -> int:
        return int(p.parent.parent.name[3:])

    files = [
        p for p in cpu_dir.glob("cpu[0-9]*/cpufreq/scaling_governor")
        if p.parent.parent.name[3:].isdigit()
    ]
    governors = []
    for path in sorted(files, key=cpu_number):
        value = _read(path)
        if value:
            governors.append(value)
    return governors


def boost_enabled(root: Path) -> bool | None:
    """Whether turbo/boost is on, or ``None`` if the driver exposes neither knob.

    ``intel_pstate/no_turbo`` is inverted (0 means boost on); the generic
    ``cpufreq/boost`` used by AMD is direct (1 means boost on).
    """
    cpu_dir = Path(root) / CPU_DIR
    no_turbo = _read(cpu_dir / "intel_pstate" / "no_turbo")
    if no_turbo is not None:
        return no_turbo == "0"
    boost = _read(cpu_dir / "cpufreq" / "boost")
    if boost is not None:
        return boost == "1"
    return None


def has_battery(root: Path) -> bool:
    ps_dir = Path(root) / POWER_SUPPLY_DIR
    return any(
        _read(p) == "Battery" for p in ps_dir.glob("*/type")
    )


def on_ac_power(root: Path) -> bool:
    """True when any mains adapter reports online, or when there is no battery.

    A desktop without any power-supply entries counts as on AC.
    """
    ps_dir = Path(root) / POWER_SUPPLY_DIR
    mains_seen = False
    for type_file in ps_dir.glob("*/type"):
        if _read(type_file) != "Mains":
            continue
        mains_seen = True
        if _read(type_file.parent / "online") == "1":
            return True
    if mains_seen:
        return False
    return not has_battery(root)
