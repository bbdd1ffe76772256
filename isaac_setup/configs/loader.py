"""Configuration loader for workstation provisioning.

Loads and validates ``setup.yaml`` into typed, frozen dataclasses.  Every
path, package name, threshold and power-profile value comes from the
config; the workflows hardcode none of them.

Power profiles are checked against the pydantic schema in
:mod:`src.utils.validators` so a typo such as ``governor: perfomance``
fails at load time instead of producing a policy file the daemon ignores.

Usage::

    from isaac_setup.configs.loader import load_config
    cfg = load_config()                     # default path
    cfg = load_config("/custom/setup.yaml") # explicit path
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from src.utils.fs import load_yaml
from src.utils.validators import validate_power_profile

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

RL_FRAMEWORKS = ("all", "rsl_rl", "sb3", "skrl", "none")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# ---------------------------------------------------------------------------
# Dataclasses -- mirror the YAML structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PreflightConfig:
    """Host requirements shared by every workflow."""

    supported_os: str
    architectures: tuple[str, ...]
    min_glibc: str


@dataclass(frozen=True)
class PowerProfile:
    """Power settings for one power source (AC or battery)."""

    governor: str
    energy_perf_policy: str
    boost: bool
    hwp_dyn_boost: bool
    min_freq_khz: int
    max_freq_khz: int
    platform_profile: str
    sata_linkpwr: str
    ahci_runtime_pm: str
    pcie_aspm: str
    runtime_pm: str
    radeon_dpm_state: str
    sound_power_save: int
    wifi_power_save: bool


@dataclass(frozen=True)
class CpuPowerConfig:
    """TLP installation and policy settings."""

    service: str
    packages: tuple[str, ...]
    conflicting_packages: tuple[str, ...]
    conflicting_services: tuple[str, ...]
    policy_path: str
    summary_path: str
    settle_seconds: float
    ac: PowerProfile
    battery: PowerProfile


@dataclass(frozen=True)
class GpuPowerConfig:
    """nvidia-powerd service settings.

    ``expected_power_limit_w`` is the cap at or above which dynamic boost
    is considered confirmed.
    """

    service: str
    daemon_binary: str
    unit_path: str
    bus_policy_path: str
    bus_name: str
    log_dir: str
    backup_root: str
    summary_path: str
    expected_power_limit_w: float
    settle_seconds: float


@dataclass(frozen=True)
class IsaacSimConfig:
    """Isaac Sim standalone binary install settings."""

    version: str
    workspace_dir: str
    download_base_url: str
    min_disk_gb: float
    required_tools: tuple[str, ...]

    @property
    def extract_dir_name(self) -> str:
        return f"isaacsim-{self.version}"

    def archive_name(self, arch: str) -> str:
        return f"isaac-sim-standalone-{self.version}-linux-{arch}.zip"

    def download_url(self, arch: str) -> str:
        return f"{self.download_base_url.rstrip('/')}/{self.archive_name(arch)}"


@dataclass(frozen=True)
class IsaacLabConfig:
    """Isaac Lab source install settings."""

    repo_url: str
    branch: str
    python_version: str
    venv_name: str
    min_disk_gb: float
    required_tools: tuple[str, ...]
    recommended_tools: tuple[str, ...]
    default_framework: str


@dataclass(frozen=True)
class LoggingConfig:
    """Arguments for :func:`src.utils.logging_config.setup_logging`."""

    level: str
    file: str | None
    json: bool
    max_bytes: int = 0
    backup_count: int = 3


@dataclass(frozen=True)
class SetupConfig:
    """Top-level provisioning configuration."""

    preflight: PreflightConfig
    cpu_power: CpuPowerConfig
    gpu_power: GpuPowerConfig
    isaac_sim: IsaacSimConfig
    isaac_lab: IsaacLabConfig
    logging: LoggingConfig


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _str_tuple(value: Any, key: str) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ConfigError(f"'{key}' must be a list of strings, got {value!r}")
    return tuple(str(v) for v in value)


def _parse_profile(data: Any, source: str) -> PowerProfile:
    try:
        model = validate_power_profile(data, source)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    return PowerProfile(**model.model_dump())


def _parse_version(text: str) -> tuple[int, ...]:
    return tuple(int(part) for part in text.split("."))


def _validate_config(cfg: SetupConfig) -> None:
    """Cross-field checks that the per-field parsing cannot express."""
    pf = cfg.preflight
    if not pf.architectures:
        raise ConfigError("preflight.architectures must not be empty")
    try:
        _parse_version(pf.min_glibc)
    except ValueError as exc:
        raise ConfigError(
            f"preflight.min_glibc must be dotted numbers, got '{pf.min_glibc}'"
        ) from exc

    cpu = cfg.cpu_power
    if not cpu.packages:
        raise ConfigError("cpu_power.packages must not be empty")
    if cpu.service in cpu.conflicting_services:
        raise ConfigError(
            f"cpu_power.service '{cpu.service}' is also listed as conflicting"
        )
    if cpu.settle_seconds < 0:
        raise ConfigError(f"cpu_power.settle_seconds must be >= 0, got {cpu.settle_seconds}")
    if cpu.ac.governor == cpu.battery.governor:
        logger.warning(
            "AC and battery use the same governor '%s'; verification cannot "
            "tell the power sources apart", cpu.ac.governor,
        )

    gpu = cfg.gpu_power
    if gpu.expected_power_limit_w <= 0:
        raise ConfigError(
            f"gpu_power.expected_power_limit_w must be > 0, got {gpu.expected_power_limit_w}"
        )
    if gpu.settle_seconds < 0:
        raise ConfigError(f"gpu_power.settle_seconds must be >= 0, got {gpu.settle_seconds}")
    for key in ("daemon_binary", "unit_path", "bus_policy_path", "log_dir", "backup_root", "summary_path"):
        value = getattr(gpu, key)
        if not value.startswith("/"):
            raise ConfigError(f"gpu_power.{key} must be an absolute path, got '{value}'")

    if cfg.isaac_sim.min_disk_gb < 0 or cfg.isaac_lab.min_disk_gb < 0:
        raise ConfigError("min_disk_gb must be >= 0")
    if cfg.isaac_lab.default_framework not in RL_FRAMEWORKS:
        raise ConfigError(
            f"isaac_lab.default_framework must be one of {RL_FRAMEWORKS}, "
            f"got '{cfg.isaac_lab.default_framework}'"
        )

    if cfg.logging.level.upper() not in LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {LOG_LEVELS}, got '{cfg.logging.level}'")
    if cfg.logging.max_bytes < 0 or cfg.logging.backup_count < 0:
        raise ConfigError("logging.max_bytes and logging.backup_count must be >= 0")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(path: str | Path | None = None) -> SetupConfig:
    """Load and validate provisioning configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``setup.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    SetupConfig
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If any field is missing or fails validation.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        path = Path(__file__).parent / "setup.yaml"
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading configuration from %s", path)

    data: dict[str, Any] = load_yaml(path)
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")

    try:
        # -- preflight ------------------------------------------------------
        pf = data["preflight"]
        preflight = PreflightConfig(
            supported_os=str(pf["supported_os"]).lower(),
            architectures=_str_tuple(pf["architectures"], "preflight.architectures"),
            min_glibc=str(pf["min_glibc"]),
        )

        # -- cpu power ------------------------------------------------------
        cp = data["cpu_power"]
        cpu_power = CpuPowerConfig(
            service=str(cp["service"]),
            packages=_str_tuple(cp["packages"], "cpu_power.packages"),
            conflicting_packages=_str_tuple(
                cp.get("conflicting_packages", []), "cpu_power.conflicting_packages"
            ),
            conflicting_services=_str_tuple(
                cp.get("conflicting_services", []), "cpu_power.conflicting_services"
            ),
            policy_path=str(cp["policy_path"]),
            summary_path=str(cp["summary_path"]),
            settle_seconds=float(cp.get("settle_seconds", 2)),
            ac=_parse_profile(cp["ac"], "ac"),
            battery=_parse_profile(cp["battery"], "battery"),
        )

        # -- gpu power ------------------------------------------------------
        gp = data["gpu_power"]
        gpu_power = GpuPowerConfig(
            service=str(gp["service"]),
            daemon_binary=str(gp["daemon_binary"]),
            unit_path=str(gp["unit_path"]),
            bus_policy_path=str(gp["bus_policy_path"]),
            bus_name=str(gp["bus_name"]),
            log_dir=str(gp["log_dir"]),
            backup_root=str(gp["backup_root"]),
            summary_path=str(gp["summary_path"]),
            expected_power_limit_w=float(gp["expected_power_limit_w"]),
            settle_seconds=float(gp.get("settle_seconds", 2)),
        )

        # -- isaac sim ------------------------------------------------------
        sim = data["isaac_sim"]
        isaac_sim = IsaacSimConfig(
            version=str(sim["version"]),
            workspace_dir=str(sim["workspace_dir"]),
            download_base_url=str(sim["download_base_url"]),
            min_disk_gb=float(sim["min_disk_gb"]),
            required_tools=_str_tuple(sim["required_tools"], "isaac_sim.required_tools"),
        )

        # -- isaac lab ------------------------------------------------------
        lab = data["isaac_lab"]
        isaac_lab = IsaacLabConfig(
            repo_url=str(lab["repo_url"]),
            branch=str(lab.get("branch", "main")),
            python_version=str(lab["python_version"]),
            venv_name=str(lab["venv_name"]),
            min_disk_gb=float(lab["min_disk_gb"]),
            required_tools=_str_tuple(lab["required_tools"], "isaac_lab.required_tools"),
            recommended_tools=_str_tuple(
                lab.get("recommended_tools", []), "isaac_lab.recommended_tools"
            ),
            default_framework=str(lab.get("default_framework", "rsl_rl")),
        )

        # -- logging (optional) ---------------------------------------------
        lg = data.get("logging") or {}
        log_file = lg.get("file")
        logging_cfg = LoggingConfig(
            level=str(lg.get("level", "WARNING")).upper(),
            file=str(log_file) if log_file else None,
            json=bool(lg.get("json", False)),
            max_bytes=int(lg.get("max_bytes", 0)),
            backup_count=int(lg.get("backup_count", 3)),
        )

        config = SetupConfig(
            preflight=preflight,
            cpu_power=cpu_power,
            gpu_power=gpu_power,
            isaac_sim=isaac_sim,
            isaac_lab=isaac_lab,
            logging=logging_cfg,
        )

        _validate_config(config)
        logger.info("Configuration loaded successfully")
        return config

    except KeyError as exc:
        raise ConfigError(
            f"Missing required configuration key: {exc}"
        ) from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"Invalid configuration value: {exc}"
        ) from exc
