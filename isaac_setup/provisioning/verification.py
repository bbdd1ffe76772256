"""Post-provisioning verification.

Reads the power state actually in effect and classifies it against what
was declared.  Verification reports; it never aborts a run.  A low GPU
power cap right after start is normal (dynamic boost raises it under
load), so a below-threshold reading is *inconclusive*, not a failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Sequence

from src.utils.validators import GpuPowerReading

logger = logging.getLogger(__name__)


class Verdict(Enum):
    CONFIRMED = auto()
    INCONCLUSIVE = auto()
    UNAVAILABLE = auto()


@dataclass(frozen=True)
class VerificationResult:
    """Classification of one observed quantity."""

    subject: str
    verdict: Verdict
    message: str
    guidance: tuple[str, ...] = ()

    @property
    def confirmed(self) -> bool:
        return self.verdict is Verdict.CONFIRMED


@dataclass(frozen=True)
class ObservedPowerState:
    """Snapshot taken after provisioning; never persisted."""

    gpus: tuple[GpuPowerReading, ...] = ()
    governors: tuple[str, ...] = ()
    boost_enabled: bool | None = None
    on_ac: bool = True

    @property
    def max_power_limit_w(self) -> float | None:
        limits = [g.power_limit_w for g in self.gpus if g.power_limit_w is not None]
        return max(limits) if limits else None

    @property
    def max_power_draw_w(self) -> float | None:
        draws = [g.power_draw_w for g in self.gpus if g.power_draw_w is not None]
        return max(draws) if draws else None


LOAD_TEST_GUIDANCE = (
    "Power limit may increase under load; test with a GPU workload:",
    "  watch -n 1 nvidia-smi --query-gpu=power.draw,power.limit --format=csv",
    "  then run a simulation or benchmark in another terminal",
)


def classify_power_limit(
    readings: Sequence[GpuPowerReading],
    threshold_w: float,
) -> VerificationResult:
    """Compare the highest GPU power cap with *threshold_w*.

    The cap is truncated to whole watts before comparing, matching how
    the vendor tool is usually read by eye.
    """
    state = ObservedPowerState(gpus=tuple(readings))
    limit = state.max_power_limit_w
    if limit is None:
        return VerificationResult(
            "gpu_power_limit", Verdict.UNAVAILABLE,
            "Could not read the current GPU power limit",
            ("Check manually with: nvidia-smi -q -d POWER",),
        )
    watts = int(limit)
    if watts >= threshold_w:
        return VerificationResult(
            "gpu_power_limit", Verdict.CONFIRMED,
            f"Dynamic Boost is active: {watts}W power limit",
        )
    return VerificationResult(
        "gpu_power_limit", Verdict.INCONCLUSIVE,
        f"Current power limit {watts}W is below {threshold_w:.0f}W",
        LOAD_TEST_GUIDANCE,
    )


def classify_governor(governors: Sequence[str], expected: str) -> VerificationResult:
    """All CPUs must run *expected* for a confirmed verdict."""
    if not governors:
        return VerificationResult(
            "cpu_governor", Verdict.UNAVAILABLE,
            "CPU frequency scaling is not exposed by this kernel",
        )
    unique = sorted(set(governors))
    if unique == [expected]:
        return VerificationResult(
            "cpu_governor", Verdict.CONFIRMED,
            f"CPU governor: {expected} on all {len(governors)} CPUs",
        )
    return VerificationResult(
        "cpu_governor", Verdict.INCONCLUSIVE,
        f"CPU governor is {', '.join(unique)} (expected {expected})",
        ("Settings may need a reboot or 'sudo tlp start' to take effect",),
    )


def classify_boost(boost_enabled: bool | None, expected: bool) -> VerificationResult:
    if boost_enabled is None:
        return VerificationResult(
            "cpu_boost", Verdict.UNAVAILABLE, "CPU boost state is not exposed",
        )
    label = "enabled" if boost_enabled else "disabled"
    if boost_enabled == expected:
        return VerificationResult("cpu_boost", Verdict.CONFIRMED, f"CPU boost: {label}")
    return VerificationResult(
        "cpu_boost", Verdict.INCONCLUSIVE,
        f"CPU boost is {label} (expected {'enabled' if expected else 'disabled'})",
        ("Some firmware locks boost; check BIOS settings",),
    )


def report_results(reporter, results: Sequence[VerificationResult]) -> None:
    """Print each result: success when confirmed, warning otherwise."""
    for result in results:
        logger.info("Verification %s: %s (%s)", result.subject, result.verdict.name, result.message)
        if result.confirmed:
            reporter.success(result.message)
        else:
            reporter.warning(result.message)
        for line in result.guidance:
            reporter.detail(line, indent=4)
