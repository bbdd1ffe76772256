"""Schema validation for provisioning inputs.

Provides centralized validation using pydantic:
    - Power profile schema: CPU governor, energy/performance policy,
      boost and device power settings for one power source (AC or battery)
    - GPU reading schema: one row of ``nvidia-smi --query-gpu`` CSV output,
      tolerant of ``[N/A]`` / ``[Not Supported]`` cells

All modules must use these validators for fail-fast error detection with
actionable messages (offending keys, allowed values).

Units:
    - Power: watts (W)
    - Audio power-save timeout: seconds (0 disables)

Usage:
    from src.utils import validators

    profile = validators.validate_power_profile(raw_dict, source="ac")
    readings = validators.parse_gpu_csv(nvidia_smi_stdout)
"""

import csv
import io
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


# ============================================================================
# POWER PROFILE SCHEMA
# ============================================================================

Governor = Literal["performance", "powersave", "schedutil", "ondemand", "conservative", "userspace"]
EnergyPerfPolicy = Literal["performance", "balance_performance", "default", "balance_power", "power"]
PlatformProfile = Literal["performance", "balanced", "low-power", "quiet"]
SataLinkPower = Literal["max_performance", "medium_power", "med_power_with_dipm", "min_power"]
PcieAspm = Literal["default", "performance", "powersave", "powersupersave"]
RuntimePm = Literal["on", "auto"]
RadeonDpmState = Literal["performance", "balanced", "battery"]


class PowerProfileV1(BaseModel):
    """Power settings applied while on one power source."""
    governor: Governor = Field(..., description="CPU scaling governor")
    energy_perf_policy: EnergyPerfPolicy = Field(..., description="CPU energy/performance preference")
    boost: bool = Field(..., description="Turbo/boost enabled")
    hwp_dyn_boost: bool = Field(True, description="Intel HWP dynamic boost")
    min_freq_khz: int = Field(0, ge=0, description="Scaling floor (0 = hardware minimum)")
    max_freq_khz: int = Field(9999999, ge=0, description="Scaling ceiling (9999999 = hardware maximum)")
    platform_profile: PlatformProfile = Field(..., description="ACPI platform profile")
    sata_linkpwr: SataLinkPower = Field("max_performance", description="SATA link power management")
    ahci_runtime_pm: RuntimePm = Field("on", description="AHCI runtime power management")
    pcie_aspm: PcieAspm = Field("default", description="PCIe active-state power management")
    runtime_pm: RuntimePm = Field("on", description="PCI(e) runtime power management")
    radeon_dpm_state: RadeonDpmState = Field("performance", description="Radeon DPM state")
    sound_power_save: int = Field(0, ge=0, le=600, description="Audio power-save timeout (s)")
    wifi_power_save: bool = Field(False, description="Wi-Fi power saving")

    @model_validator(mode='after')
    def validate_freq_range(self) -> 'PowerProfileV1':
        """Floor must not exceed ceiling."""
        if self.min_freq_khz > self.max_freq_khz:
            raise ValueError(
                f"min_freq_khz ({self.min_freq_khz}) exceeds max_freq_khz ({self.max_freq_khz})"
            )
        return self


def validate_power_profile(data: Dict[str, Any], source: str) -> PowerProfileV1:
    """Validate a raw power-profile mapping.

    Parameters
    ----------
    data : Dict[str, Any]
        Mapping loaded from YAML
    source : str
        Power source name used in error messages ("ac" or "battery")

    Returns
    -------
    PowerProfileV1
        Validated profile

    Raises
    ------
    ValueError
        If validation fails (with actionable error message)
    """
    if not isinstance(data, dict):
        raise ValueError(f"Power profile '{source}' must be a mapping, got {type(data).__name__}")
    try:
        return PowerProfileV1(**data)
    except ValidationError as e:
        raise ValueError(f"Power profile '{source}' validation failed: {e}") from e


# ============================================================================
# GPU READING SCHEMA
# ============================================================================

_UNAVAILABLE = {"", "n/a", "[n/a]", "[not supported]", "not supported", "[unknown error]"}


class GpuPowerReading(BaseModel):
    """Power state of a single GPU as reported by the vendor query tool."""
    index: int = Field(..., ge=0, description="GPU index")
    name: str = Field(..., description="Product name")
    power_draw_w: Optional[float] = Field(None, ge=0.0, description="Current power draw (W)")
    power_limit_w: Optional[float] = Field(None, ge=0.0, description="Enforced power cap (W)")
    default_limit_w: Optional[float] = Field(None, ge=0.0, description="Default power cap (W)")

    @field_validator('power_draw_w', 'power_limit_w', 'default_limit_w', mode='before')
    @classmethod
    def parse_watts(cls, v: Any) -> Optional[float]:
        if v is None:
            return None
        if isinstance(v, (int, float)):
            return float(v)
        text = str(v).strip()
        if text.lower() in _UNAVAILABLE:
            return None
        if text.upper().endswith("W"):
            text = text[:-1].strip()
        return float(text)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


GPU_QUERY_FIELDS = ("index", "name", "power.draw", "power.limit", "power.default_limit")


def parse_gpu_csv(text: str) -> List[GpuPowerReading]:
    """Parse ``--format=csv,noheader,nounits`` output for GPU_QUERY_FIELDS.

    Parameters
    ----------
    text : str
        Raw stdout, one GPU per line

    Returns
    -------
    List[GpuPowerReading]
        One reading per non-empty line

    Raises
    ------
    ValueError
        If a line has the wrong number of columns or an unparsable value
    """
    readings = []
    for row in csv.reader(io.StringIO(text), skipinitialspace=True):
        if not row or not any(cell.strip() for cell in row):
            continue
        if len(row) != len(GPU_QUERY_FIELDS):
            raise ValueError(
                f"Expected {len(GPU_QUERY_FIELDS)} columns in GPU query output, got {len(row)}: {row}"
            )
        try:
            readings.append(GpuPowerReading(
                index=row[0].strip(),
                name=row[1],
                power_draw_w=row[2],
                power_limit_w=row[3],
                default_limit_w=row[4],
            ))
        except ValidationError as e:
            raise ValueError(f"Invalid GPU query row {row}: {e}") from e
    return readings
