"""Provisioning configuration loading and validation."""

from isaac_setup.configs.loader import (
    ConfigError,
    CpuPowerConfig,
    GpuPowerConfig,
    IsaacLabConfig,
    IsaacSimConfig,
    PowerProfile,
    SetupConfig,
    load_config,
)

__all__ = [
    "ConfigError",
    "CpuPowerConfig",
    "GpuPowerConfig",
    "IsaacLabConfig",
    "IsaacSimConfig",
    "PowerProfile",
    "SetupConfig",
    "load_config",
]
