"""Test schema validation for provisioning inputs.

Tests for src.utils.validators:
    - Power profiles accept the shipped AC/battery settings
    - Unknown governors, bad ranges and non-mappings are rejected
      with the power source named in the message
    - GPU query CSV parsing tolerates [N/A] cells and unit suffixes
    - Malformed GPU rows raise ValueError

Run:
    pytest tests/test_validators.py -v
"""

import pytest

from src.utils import validators


@pytest.fixture()
def ac_profile():
    return {
        "governor": "performance",
        "energy_perf_policy": "performance",
        "boost": True,
        "platform_profile": "performance",
    }


# ============================================================================
# POWER PROFILES
# ============================================================================

def test_valid_profile_defaults(ac_profile):
    profile = validators.validate_power_profile(ac_profile, source="ac")
    assert profile.governor == "performance"
    assert profile.hwp_dyn_boost is True
    assert profile.runtime_pm == "on"
    assert profile.min_freq_khz == 0


def test_unknown_governor(ac_profile):
    ac_profile["governor"] = "turbo"
    with pytest.raises(ValueError, match="'ac' validation failed"):
        validators.validate_power_profile(ac_profile, source="ac")


def test_freq_floor_above_ceiling(ac_profile):
    ac_profile.update(min_freq_khz=3_000_000, max_freq_khz=1_000_000)
    with pytest.raises(ValueError, match="exceeds max_freq_khz"):
        validators.validate_power_profile(ac_profile, source="battery")


def test_profile_must_be_mapping():
    with pytest.raises(ValueError, match="must be a mapping"):
        validators.validate_power_profile(["performance"], source="ac")


def test_sound_timeout_bounds(ac_profile):
    ac_profile["sound_power_save"] = -1
    with pytest.raises(ValueError):
        validators.validate_power_profile(ac_profile, source="ac")


# ============================================================================
# GPU READINGS
# ============================================================================

def test_parse_gpu_csv():
    text = "0, NVIDIA GeForce RTX 4090 Laptop GPU, 35.20, 175.00, 150.00\n"
    [reading] = validators.parse_gpu_csv(text)
    assert reading.index == 0
    assert reading.name == "NVIDIA GeForce RTX 4090 Laptop GPU"
    assert reading.power_draw_w == pytest.approx(35.2)
    assert reading.power_limit_w == pytest.approx(175.0)
    assert reading.default_limit_w == pytest.approx(150.0)


def test_parse_gpu_csv_unavailable_cells():
    text = "0, Tesla T4, [N/A], [Not Supported], 70.00 W\n\n1, A100, 50, 400, 400\n"
    first, second = validators.parse_gpu_csv(text)
    assert first.power_draw_w is None
    assert first.power_limit_w is None
    assert first.default_limit_w == pytest.approx(70.0)
    assert second.index == 1


def test_parse_gpu_csv_empty():
    assert validators.parse_gpu_csv("") == []


def test_parse_gpu_csv_wrong_columns():
    with pytest.raises(ValueError, match="Expected 5 columns"):
        validators.parse_gpu_csv("0, RTX 4090, 35.2\n")


def test_parse_gpu_csv_bad_value():
    with pytest.raises(ValueError, match="Invalid GPU query row"):
        validators.parse_gpu_csv("0, RTX 4090, lots, 175, 150\n")
