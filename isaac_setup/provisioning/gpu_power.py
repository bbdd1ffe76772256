"""GPU power daemon provisioner (nvidia-powerd).

``nvidia-powerd`` ships with the driver but is not always registered as
a service.  This workflow backs up whatever configuration exists, stops
any running instance, recreates the runtime directory, installs the
D-Bus policy and the systemd unit, and starts the daemon.

State mapping:
    - PREFLIGHT_OK: root, OS, nvidia-smi + GPU, daemon binary present
    - BACKED_UP: unit, bus policy and power-limit table copied to
      ``<backup_root>/nvidia_powerd_backup_<stamp>/``
    - STOPPED_OLD: stop if active, disable if enabled (best-effort)
    - RESOURCES_PROVISIONED: log dir (0755 root:root), bus policy, unit
    - SERVICE_ENABLED: daemon-reload + enable
    - SERVICE_STARTED: start, settle, active check
    - VERIFIED: status excerpt and recent journal lines shown, GPU power
      cap classified against the configured threshold, load-test steps
      printed
"""

from __future__ import annotations

import logging
from pathlib import Path

from isaac_setup.configs.loader import GpuPowerConfig, PreflightConfig
from isaac_setup.errors import CommandFailed
from isaac_setup.provisioning.bus_policy import BusPolicyWriter
from isaac_setup.provisioning.lifecycle import ServiceLifecycle
from isaac_setup.provisioning.preflight import PreflightChecker
from isaac_setup.provisioning.reporter import ConsoleReporter
from isaac_setup.provisioning.service_unit import powerd_unit
from isaac_setup.provisioning.summary import InstallationSummary, write_summary
from isaac_setup.provisioning.verification import (
    classify_power_limit,
    report_results,
)
from isaac_setup.provisioning.workflow import ProvisioningWorkflow
from isaac_setup.system.state import SystemState
from src.utils import fs
from src.utils.validators import GpuPowerReading

logger = logging.getLogger(__name__)

RUNTIME_DIR_MODE = 0o755
RUNTIME_DIR_OWNER = ("root", "root")

DAEMON_MISSING_HINT = (
    "nvidia-powerd ships with recent NVIDIA drivers; install or reinstall "
    "the driver package (e.g. nvidia-driver-550) and re-run"
)


def load_test_instructions(service: str, expected_limit_w: float) -> list[str]:
    """Manual steps for watching the power cap while the GPU is busy."""
    return [
        "1. Monitor GPU power in real time:",
        "     watch -n 0.5 nvidia-smi",
        "2. In another terminal, run a GPU workload:",
        "     cd ~/workspace/isaac-sim && ./isaac-sim.sh   # play a scene",
        "     glmark2                                     # sudo apt install glmark2",
        "3. Expected results:",
        f"     power limit shows the full {expected_limit_w:.0f}W",
        "     GPU utilization and temperature rise during load",
        "4. If power stays capped:",
        f"     journalctl -u {service} -n 50",
        f"     sudo systemctl restart {service}",
        "     sudo reboot",
    ]


class GpuPowerProvisioner(ProvisioningWorkflow):
    """Provision the NVIDIA dynamic boost daemon.

    Parameters
    ----------
    state : SystemState
        System handle.
    reporter : ConsoleReporter
        Operator output.
    config : GpuPowerConfig
        Daemon, unit, policy and log paths; verification threshold.
    preflight_config : PreflightConfig
        Supported OS family.
    """

    name = "configure_gpu_power"
    title = "NVIDIA Dynamic Boost (nvidia-powerd) Setup"

    def __init__(
        self,
        state: SystemState,
        reporter: ConsoleReporter,
        config: GpuPowerConfig,
        preflight_config: PreflightConfig,
    ) -> None:
        super().__init__(state, reporter)
        self.config = config
        self.preflight_config = preflight_config
        self.lifecycle = ServiceLifecycle(
            state, reporter, config.service, config.settle_seconds,
        )
        self.readings: list[GpuPowerReading] = []

    def intro(self) -> list[str]:
        return [
            "This will:",
            "  1. Back up existing configuration",
            f"  2. Stop any running {self.config.service} instance",
            "  3. Create the log directory, D-Bus policy and systemd unit",
            f"  4. Enable and start {self.config.service}",
            "  5. Verify the GPU power limit",
        ]

    # -- steps --------------------------------------------------------------

    def preflight(self) -> None:
        self.reporter.header("Preflight Checks")
        checker = PreflightChecker(self.state, self.reporter)
        checker.add(checker.check_root)
        checker.add(lambda: checker.check_os(self.preflight_config.supported_os))
        checker.add(checker.check_gpu)
        checker.add(lambda: checker.check_vendor_binary(
            self.config.daemon_binary, hint=DAEMON_MISSING_HINT,
        ))
        checker.run().raise_for_failures()
        self._show_power("Current GPU power state:")

    def backup(self) -> None:
        self.reporter.header("Creating Backup")
        backup_dir = self._backup_dir()
        fs.ensure_dir(backup_dir)

        for path in (self.config.unit_path, self.config.bus_policy_path):
            copied = fs.copy_into(self.state.path(path), backup_dir)
            if copied is not None:
                self.reporter.success(f"Backed up {path}")

        table = self.state.gpu.limits_table()
        if table.strip():
            fs.atomic_write_text(backup_dir / "gpu_power_limits.txt", table)
            self.reporter.success("Saved current GPU power limits")

        self.backups.append(backup_dir)
        self.reporter.success(f"Backup location: {backup_dir}")

    def _backup_dir(self) -> Path:
        base = self.state.path(self.config.backup_root)
        candidate = base / f"nvidia_powerd_backup_{self.state.stamp()}"
        n = 1
        while candidate.exists():
            candidate = base / f"nvidia_powerd_backup_{self.state.stamp()}_{n}"
            n += 1
        return candidate

    def stop_old(self) -> None:
        self.reporter.header("Stopping Existing Service")
        stopped = self.lifecycle.stop_if_running()
        disabled = self.lifecycle.disable_if_enabled()
        if stopped:
            self.reporter.success(f"Stopped {self.config.service}")
        if disabled:
            self.reporter.success(f"Disabled {self.config.service}")
        if not (stopped or disabled):
            self.reporter.info(f"No existing {self.config.service} instance running")

    def provision_resources(self) -> None:
        self.reporter.header("Setting Up Log Directory")
        log_dir = fs.reset_dir(self.state.path(self.config.log_dir), RUNTIME_DIR_MODE)
        self.state.host.chown(log_dir, *RUNTIME_DIR_OWNER)
        self.reporter.success(f"Log directory created: {self.config.log_dir}")

        self.reporter.header("Configuring D-Bus")
        BusPolicyWriter(self.state, self.reporter).write(
            self.config.bus_policy_path, self.config.bus_name,
        )

        self.reporter.header("Creating Service Unit")
        unit = powerd_unit(self.config.daemon_binary, self.config.log_dir)
        self.lifecycle.write_unit(unit, self.config.unit_path)

    def enable_service(self) -> None:
        self.reporter.header("Enabling Service")
        self.lifecycle.daemon_reload()
        self.lifecycle.enable()

    def start_service(self) -> None:
        self.reporter.header("Starting Service")
        self.lifecycle.start_and_verify()

    def verify(self) -> None:
        self.reporter.header("Verifying Dynamic Boost")
        self.lifecycle.show_status_excerpt()
        self._show_power("GPU power state:")
        result = classify_power_limit(self.readings, self.config.expected_power_limit_w)
        self.verification = [result]
        report_results(self.reporter, self.verification)
        self.show_load_test()

    def show_load_test(self) -> None:
        """How to confirm by hand that the cap rises under a GPU workload."""
        self.reporter.header("Testing GPU Power Under Load")
        for line in load_test_instructions(self.config.service, self.config.expected_power_limit_w):
            self.reporter.detail(line)

    # -- helpers ------------------------------------------------------------

    def _show_power(self, heading: str) -> None:
        try:
            self.readings = self.state.gpu.readings()
        except (CommandFailed, ValueError) as exc:
            logger.warning("GPU query failed: %s", exc)
            self.readings = []
            return
        self.reporter.info(heading)
        for r in self.readings:
            draw = "N/A" if r.power_draw_w is None else f"{r.power_draw_w:.1f} W"
            limit = "N/A" if r.power_limit_w is None else f"{r.power_limit_w:.1f} W"
            self.reporter.detail(f"GPU {r.index} ({r.name}): draw {draw}, limit {limit}", indent=4)

    def write_summary(self) -> Path:
        cfg = self.config
        summary = InstallationSummary(
            "NVIDIA Dynamic Boost Installation Information", self.state.clock(),
        )
        summary.fact("Driver Version", self.state.gpu.driver_version() or "unknown")
        summary.fact(
            "GPU(s)", ", ".join(f"{r.index}: {r.name}" for r in self.readings) or "unknown",
        )
        summary.fact("Daemon Binary", cfg.daemon_binary)
        summary.fact("Service File", cfg.unit_path)
        summary.fact("D-Bus Config", cfg.bus_policy_path)
        summary.fact("Log Directory", cfg.log_dir)
        summary.fact("Backup Directory", self.backups[0] if self.backups else "none")
        summary.fact(
            "Service Status",
            "active" if self.state.services.is_active(cfg.service) else "inactive",
        )
        if self.verification:
            summary.fact("Verification", self.verification[0].message)
        summary.section("Useful Commands", [
            f"systemctl status {cfg.service}",
            f"journalctl -u {cfg.service} -f",
            "nvidia-smi -q -d POWER",
            "watch -n 1 nvidia-smi --query-gpu=power.draw,power.limit --format=csv",
        ])
        summary.section("Testing Under Load", load_test_instructions(
            cfg.service, cfg.expected_power_limit_w,
        ))
        path = write_summary(self.state.path(cfg.summary_path), summary)
        self.reporter.success(f"Installation info saved to: {cfg.summary_path}")
        return path
