"""Tests for post-provisioning verification and the sysfs readers.

Validates that:
    - The GPU power cap is truncated to whole watts before comparison
    - Below-threshold caps are inconclusive (with load-test guidance)
    - Missing readings are "unavailable", never a failure
    - Governor and boost classification against the active profile
    - sysfs readers handle intel_pstate, cpufreq/boost and power supplies
"""

from __future__ import annotations

import pytest

from isaac_setup.provisioning.verification import (
    LOAD_TEST_GUIDANCE,
    ObservedPowerState,
    Verdict,
    classify_boost,
    classify_governor,
    classify_power_limit,
)
from isaac_setup.system import sysfs
from src.utils.validators import GpuPowerReading


def _gpu(limit: float | None, index: int = 0, draw: float | None = 10.0) -> GpuPowerReading:
    return GpuPowerReading(
        index=index, name="RTX", power_draw_w=draw, power_limit_w=limit,
    )


# ---------------------------------------------------------------------------
# GPU power limit
# ---------------------------------------------------------------------------


class TestPowerLimit:
    def test_confirmed_at_threshold(self) -> None:
        result = classify_power_limit([_gpu(150.0)], 150)
        assert result.verdict is Verdict.CONFIRMED
        assert result.message == "Dynamic Boost is active: 150W power limit"

    def test_truncated_not_rounded(self) -> None:
        result = classify_power_limit([_gpu(149.99)], 150)
        assert result.verdict is Verdict.INCONCLUSIVE
        assert "149W" in result.message
        assert result.guidance == LOAD_TEST_GUIDANCE

    def test_highest_gpu_wins(self) -> None:
        result = classify_power_limit([_gpu(80.0, 0), _gpu(175.0, 1)], 150)
        assert result.confirmed

    def test_unavailable(self) -> None:
        assert classify_power_limit([], 150).verdict is Verdict.UNAVAILABLE
        assert classify_power_limit([_gpu(None)], 150).verdict is Verdict.UNAVAILABLE

    def test_observed_maxima(self) -> None:
        state = ObservedPowerState(gpus=(_gpu(80.0, 0, draw=None), _gpu(120.0, 1, draw=30.0)))
        assert state.max_power_limit_w == 120.0
        assert state.max_power_draw_w == 30.0


# ---------------------------------------------------------------------------
# CPU
# ---------------------------------------------------------------------------


class TestCpuClassification:
    def test_all_cpus_match(self) -> None:
        result = classify_governor(["performance"] * 8, "performance")
        assert result.confirmed
        assert "8 CPUs" in result.message

    def test_mixed_governors(self) -> None:
        result = classify_governor(["performance", "powersave"], "performance")
        assert result.verdict is Verdict.INCONCLUSIVE

    def test_no_cpufreq(self) -> None:
        assert classify_governor([], "performance").verdict is Verdict.UNAVAILABLE

    @pytest.mark.parametrize("observed,expected,verdict", [
        (True, True, Verdict.CONFIRMED),
        (False, False, Verdict.CONFIRMED),
        (False, True, Verdict.INCONCLUSIVE),
        (None, True, Verdict.UNAVAILABLE),
    ])
    def test_boost(self, observed, expected, verdict) -> None:
        assert classify_boost(observed, expected).verdict is verdict


# ---------------------------------------------------------------------------
# sysfs readers
# ---------------------------------------------------------------------------


class TestSysfs:
    def test_governors_numeric_order(self, write_file, root) -> None:
        for n, gov in ((0, "performance"), (2, "powersave"), (10, "schedutil")):
            write_file(f"/sys/devices/system/cpu/cpu{n}/cpufreq/scaling_governor", gov + "\n")
        write_file("/sys/devices/system/cpu/cpufreq/policy0/scaling_governor", "ignored\n")
        assert sysfs.scaling_governors(root) == ["performance", "powersave", "schedutil"]

    def test_intel_no_turbo_inverted(self, write_file, root) -> None:
        write_file("/sys/devices/system/cpu/intel_pstate/no_turbo", "0\n")
        assert sysfs.boost_enabled(root) is True
        write_file("/sys/devices/system/cpu/intel_pstate/no_turbo", "1\n")
        assert sysfs.boost_enabled(root) is False

    def test_generic_boost(self, write_file, root) -> None:
        write_file("/sys/devices/system/cpu/cpufreq/boost", "1\n")
        assert sysfs.boost_enabled(root) is True

    def test_boost_unknown(self, root) -> None:
        assert sysfs.boost_enabled(root) is None

    def test_desktop_counts_as_ac(self, root) -> None:
        assert sysfs.on_ac_power(root) is True
        assert sysfs.has_battery(root) is False

    def test_laptop_on_battery(self, write_file, root) -> None:
        write_file("/sys/class/power_supply/BAT0/type", "Battery\n")
        write_file("/sys/class/power_supply/AC/type", "Mains\n")
        write_file("/sys/class/power_supply/AC/online", "0\n")
        assert sysfs.has_battery(root) is True
        assert sysfs.on_ac_power(root) is False

    def test_laptop_plugged_in(self, write_file, root) -> None:
        write_file("/sys/class/power_supply/BAT0/type", "Battery\n")
        write_file("/sys/class/power_supply/ADP1/type", "Mains\n")
        write_file("/sys/class/power_supply/ADP1/online", "1\n")
        assert sysfs.on_ac_power(root) is True
