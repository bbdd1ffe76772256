"""TLP power-policy file rendering and writing.

The policy is declarative: one ``KEY=value`` line per setting, ``_ON_AC``
and ``_ON_BAT`` variants for everything that differs between power
sources.  The whole file is regenerated from two :class:`PowerProfile`
objects on every run; the previous file is copied to a timestamped
sibling before the new one is renamed into place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from isaac_setup.configs.loader import PowerProfile
from src.utils import fs

logger = logging.getLogger(__name__)

POLICY_MODE = 0o644


def _flag(value: bool) -> str:
    return "1" if value else "0"


def _section(title: str) -> list[str]:
    return ["", "# " + "-" * 60, f"# {title}", "# " + "-" * 60]


def policy_entries(ac: PowerProfile, battery: PowerProfile) -> list[tuple[str, str] | str]:
    """Ordered policy content: ``(key, value)`` pairs and comment lines.

    Raises
    ------
    ValueError
        If a key would appear twice.
    """
    def pair(key: str, on_ac: str, on_bat: str) -> list[tuple[str, str]]:
        return [(f"{key}_ON_AC", on_ac), (f"{key}_ON_BAT", on_bat)]

    entries: list[tuple[str, str] | str] = []
    entries += _section("General")
    entries += [("TLP_ENABLE", "1"), ("TLP_DEFAULT_MODE", "AC"), ("TLP_PERSISTENT_DEFAULT", "0")]

    entries += _section("CPU")
    entries += pair("CPU_SCALING_GOVERNOR", ac.governor, battery.governor)
    entries += pair("CPU_ENERGY_PERF_POLICY", ac.energy_perf_policy, battery.energy_perf_policy)
    entries += pair("CPU_SCALING_MIN_FREQ", str(ac.min_freq_khz), str(battery.min_freq_khz))
    entries += pair("CPU_SCALING_MAX_FREQ", str(ac.max_freq_khz), str(battery.max_freq_khz))
    entries += pair("CPU_BOOST", _flag(ac.boost), _flag(battery.boost))
    entries += pair("CPU_HWP_DYN_BOOST", _flag(ac.hwp_dyn_boost), _flag(battery.hwp_dyn_boost))

    entries += _section("Platform")
    entries += pair("PLATFORM_PROFILE", ac.platform_profile, battery.platform_profile)

    entries += _section("Disks")
    entries += pair("SATA_LINKPWR", ac.sata_linkpwr, battery.sata_linkpwr)
    entries += pair("AHCI_RUNTIME_PM", ac.ahci_runtime_pm, battery.ahci_runtime_pm)

    entries += _section("PCIe and runtime power management")
    entries += pair("PCIE_ASPM", ac.pcie_aspm, battery.pcie_aspm)
    entries += pair("RUNTIME_PM", ac.runtime_pm, battery.runtime_pm)

    entries += _section("Graphics")
    entries += pair("RADEON_DPM_PERF_LEVEL", "auto", "auto")
    entries += pair("RADEON_DPM_STATE", ac.radeon_dpm_state, battery.radeon_dpm_state)
    entries += [
        ("INTEL_GPU_MIN_FREQ_ON_AC", "0"), ("INTEL_GPU_MIN_FREQ_ON_BAT", "0"),
        ("INTEL_GPU_MAX_FREQ_ON_AC", "0"), ("INTEL_GPU_MAX_FREQ_ON_BAT", "0"),
        ("INTEL_GPU_BOOST_FREQ_ON_AC", "0"), ("INTEL_GPU_BOOST_FREQ_ON_BAT", "0"),
    ]

    entries += _section("USB")
    entries += [("USB_AUTOSUSPEND", "1")]

    entries += _section("Audio")
    entries += pair("SOUND_POWER_SAVE", str(ac.sound_power_save), str(battery.sound_power_save))

    entries += _section("Network")
    entries += pair(
        "WIFI_PWR",
        "on" if ac.wifi_power_save else "off",
        "on" if battery.wifi_power_save else "off",
    )
    entries += [("WOL_DISABLE", "Y")]

    entries += _section("Startup")
    entries += [("RESTORE_DEVICE_STATE_ON_STARTUP", "0")]

    seen: set[str] = set()
    for entry in entries:
        if isinstance(entry, tuple):
            if entry[0] in seen:
                raise ValueError(f"Duplicate policy key: {entry[0]}")
            seen.add(entry[0])
    return entries


def render_tlp_policy(
    ac: PowerProfile,
    battery: PowerProfile,
    generated_at: datetime | None = None,
) -> str:
    """Full policy file text.

    *generated_at* only affects the header comment; leave it ``None`` for
    byte-identical output across runs.
    """
    lines = [
        "# TLP power policy",
        "# Managed by isaac-setup; local edits are overwritten on the next run.",
        "# Performance on AC power, power saving on battery.",
    ]
    if generated_at is not None:
        lines.append(f"# Generated: {generated_at:%Y-%m-%d %H:%M:%S}")
    for entry in policy_entries(ac, battery):
        if isinstance(entry, tuple):
            lines.append(f"{entry[0]}={entry[1]}")
        else:
            lines.append(entry)
    return "\n".join(lines) + "\n"


def parse_policy(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines, ignoring comments and blanks.

    Raises
    ------
    ValueError
        If a key appears more than once.
    """
    values: dict[str, str] = {}
    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        if key in values:
            raise ValueError(f"Duplicate key {key} on line {lineno}")
        values[key] = value.strip().strip('"')
    return values


@dataclass(frozen=True)
class PolicyWriteResult:
    """Where the policy went and where the previous version was saved."""

    path: Path
    backup: Path | None
    changed: bool


class PolicyFileWriter:
    """Back up and atomically replace a policy file.

    Parameters
    ----------
    path : Path
        Target file (already mapped onto the filesystem root).
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def backup(self, stamp: str) -> Path | None:
        backup = fs.backup_file(self.path, stamp)
        if backup is not None:
            logger.info("Backed up %s to %s", self.path, backup)
        return backup

    def write(self, text: str) -> bool:
        """Write *text*; returns whether the content differed."""
        old = self.path.read_bytes() if self.path.is_file() else None
        new = text.encode("utf-8")
        fs.atomic_write_bytes(self.path, new, mode=POLICY_MODE)
        logger.info("Wrote policy %s (%d bytes)", self.path, len(new))
        return old != new

    def apply(self, text: str, stamp: str) -> PolicyWriteResult:
        backup = self.backup(stamp)
        changed = self.write(text)
        return PolicyWriteResult(self.path, backup, changed)
