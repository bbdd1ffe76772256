"""CPU power policy provisioner (TLP).

Installs TLP, replaces ``/etc/tlp.conf`` with a policy generated from the
configured AC and battery profiles, masks daemons that would fight over
the same knobs, and starts the ``tlp`` service.

State mapping:
    - PREFLIGHT_OK: root, OS, apt available, battery/conflict warnings
    - BACKED_UP: packages installed (prompted when already present),
      existing policy copied aside
    - STOPPED_OLD: conflicting daemons masked and stopped, conflicting
      packages removed (best-effort)
    - RESOURCES_PROVISIONED: policy written atomically
    - SERVICE_ENABLED / SERVICE_STARTED: ``tlp`` enabled, started, active
    - VERIFIED: governor and boost compared with the profile for the
      current power source
"""

from __future__ import annotations

import logging
from pathlib import Path

from isaac_setup.configs.loader import CpuPowerConfig, PowerProfile, PreflightConfig
from isaac_setup.errors import CommandFailed
from isaac_setup.provisioning.lifecycle import ServiceLifecycle
from isaac_setup.provisioning.policy_file import PolicyFileWriter, render_tlp_policy
from isaac_setup.provisioning.preflight import PreflightChecker
from isaac_setup.provisioning.reporter import ConsoleReporter
from isaac_setup.provisioning.summary import InstallationSummary, write_summary
from isaac_setup.provisioning.verification import (
    ObservedPowerState,
    classify_boost,
    classify_governor,
    report_results,
)
from isaac_setup.provisioning.workflow import ProvisioningWorkflow
from isaac_setup.system import sysfs
from isaac_setup.system.state import SystemState

logger = logging.getLogger(__name__)


def _profile_lines(label: str, profile: PowerProfile) -> list[str]:
    return [
        f"{label}:",
        f"  Governor: {profile.governor}",
        f"  Energy policy: {profile.energy_perf_policy}",
        f"  Boost: {'enabled' if profile.boost else 'disabled'}",
        f"  Platform profile: {profile.platform_profile}",
    ]


class CpuPowerProvisioner(ProvisioningWorkflow):
    """Provision TLP with an AC-performance / battery-saving policy.

    Parameters
    ----------
    state : SystemState
        System handle.
    reporter : ConsoleReporter
        Operator output.
    config : CpuPowerConfig
        TLP paths, packages, conflicts and profiles.
    preflight_config : PreflightConfig
        Supported OS family.
    """

    name = "configure_cpu_power"
    title = "TLP CPU Power Management Setup"

    def __init__(
        self,
        state: SystemState,
        reporter: ConsoleReporter,
        config: CpuPowerConfig,
        preflight_config: PreflightConfig,
    ) -> None:
        super().__init__(state, reporter)
        self.config = config
        self.preflight_config = preflight_config
        self.lifecycle = ServiceLifecycle(
            state, reporter, config.service, config.settle_seconds,
        )
        self.policy = PolicyFileWriter(state.path(config.policy_path))
        self.observed: ObservedPowerState | None = None

    def intro(self) -> list[str]:
        return [
            "This will:",
            f"  1. Install {' '.join(self.config.packages)}",
            "  2. Configure performance mode on AC power",
            "  3. Configure power saving on battery",
            "  4. Disable conflicting power management daemons",
            f"  5. Enable and start the {self.config.service} service",
        ]

    # -- steps --------------------------------------------------------------

    def preflight(self) -> None:
        self.reporter.header("Preflight Checks")
        checker = PreflightChecker(self.state, self.reporter)
        checker.add(checker.check_root)
        checker.add(lambda: checker.check_os(self.preflight_config.supported_os))
        checker.add(lambda: checker.check_tools(required=["apt-get"]))
        checker.add(checker.check_battery)
        checker.add(lambda: checker.check_conflicting_services(self.config.conflicting_services))
        checker.run().raise_for_failures()

    def backup(self) -> None:
        self._install_packages()

        self.reporter.header("Backing Up Configuration")
        backup = self.policy.backup(self.state.stamp())
        if backup is None:
            self.reporter.info(f"No existing {self.config.policy_path} to back up")
            return
        self.backups.append(backup)
        self.reporter.success(f"Backup created: {backup}")

    def _install_packages(self) -> None:
        self.reporter.header("Installing TLP")
        packages = self.state.packages
        main = self.config.packages[0]
        if packages.is_installed(main):
            version = packages.installed_version(main) or "unknown"
            self.reporter.info(f"{main} is already installed (version {version})")
            if not self.state.prompt.confirm(f"Reinstall {main}?", default=False):
                self.reporter.info("Keeping the installed version")
                return

        self.reporter.info("Updating package lists...")
        packages.update()
        self.reporter.info(f"Installing {' '.join(self.config.packages)}...")
        packages.install(self.config.packages)
        self.reporter.success(
            f"{main} installed (version {packages.installed_version(main) or 'unknown'})"
        )

    def stop_old(self) -> None:
        self.reporter.header("Disabling Conflicting Services")
        for name in self.config.conflicting_services:
            self.lifecycle.mask(name)
            if self.lifecycle.stop_if_running(name):
                self.reporter.success(f"Stopped {name}")

        installed = [
            p for p in self.config.conflicting_packages
            if self.state.packages.is_installed(p)
        ]
        if not installed:
            self.reporter.info("No conflicting packages installed")
            return
        try:
            self.state.packages.remove(installed)
            self.reporter.success(f"Removed {' '.join(installed)}")
        except CommandFailed as exc:
            logger.warning("Could not remove %s: %s", installed, exc)
            self.reporter.warning(f"Could not remove {' '.join(installed)} (continuing)")

    def provision_resources(self) -> None:
        self.reporter.header("Writing Power Policy")
        text = render_tlp_policy(self.config.ac, self.config.battery)
        changed = self.policy.write(text)
        if changed:
            self.reporter.success(f"Policy written: {self.config.policy_path}")
        else:
            self.reporter.success(f"Policy unchanged: {self.config.policy_path}")

    def enable_service(self) -> None:
        self.reporter.header("Enabling TLP Service")
        self.lifecycle.enable()

    def start_service(self) -> None:
        self.lifecycle.start_and_verify()

    def verify(self) -> None:
        self.reporter.header("Verifying Configuration")
        root = self.state.root
        on_ac = sysfs.on_ac_power(root)
        profile = self.config.ac if on_ac else self.config.battery
        self.observed = ObservedPowerState(
            governors=tuple(sysfs.scaling_governors(root)),
            boost_enabled=sysfs.boost_enabled(root),
            on_ac=on_ac,
        )
        self.reporter.info(f"Power source: {'AC' if on_ac else 'battery'}")
        self.verification = [
            classify_governor(self.observed.governors, profile.governor),
            classify_boost(self.observed.boost_enabled, profile.boost),
        ]
        report_results(self.reporter, self.verification)

    def write_summary(self) -> Path:
        main = self.config.packages[0]
        summary = InstallationSummary("TLP Installation Information", self.state.clock())
        summary.fact("TLP Version", self.state.packages.installed_version(main) or "unknown")
        summary.fact("Configuration File", self.config.policy_path)
        summary.fact("Backup File", self.backups[0] if self.backups else "none")
        if self.observed is not None:
            summary.fact("Power Source", "AC" if self.observed.on_ac else "battery")
        summary.section(
            "Applied Settings",
            _profile_lines("AC power", self.config.ac)
            + _profile_lines("Battery", self.config.battery),
        )
        summary.section("Useful Commands", [
            "tlp-stat -s        # System information",
            "tlp-stat -p        # Processor information",
            "tlp-stat -b        # Battery information",
            "sudo tlp start     # Re-apply settings",
            f"systemctl status {self.config.service}",
        ])
        path = write_summary(self.state.path(self.config.summary_path), summary)
        self.reporter.success(f"Installation info saved to: {self.config.summary_path}")
        return path
