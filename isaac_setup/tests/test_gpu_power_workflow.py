"""End-to-end tests for the nvidia-powerd provisioner.

Validates that:
    - A host with the daemon binary reaches VERIFIED with the log
      directory (0755, root:root), bus policy and unit in place
    - The summary records the driver version and verification verdict
    - A missing daemon binary fails preflight and writes nothing
    - Running twice converges and keeps both backups
    - A crash after start or an interrupt aborts without rollback
    - Closed stdin aborts before anything is touched
"""

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from isaac_setup.configs.loader import SetupConfig
from isaac_setup.errors import InputClosed, MissingDependency, PreflightFailed, ServiceNotRunning
from isaac_setup.provisioning.gpu_power import GpuPowerProvisioner
from isaac_setup.provisioning.prompts import ConsolePrompter
from isaac_setup.provisioning.verification import Verdict
from isaac_setup.provisioning.workflow import STATE_ORDER, ProvisionState
from isaac_setup.system.memory import (
    FakeHost,
    InMemoryBroker,
    InMemoryServiceManager,
    StaticGpuQuery,
)
from isaac_setup.system.state import SystemState
from src.utils.validators import GpuPowerReading

UNIT = "etc/systemd/system/nvidia-powerd.service"
BUS_POLICY = "etc/dbus-1/system.d/nvidia-powerd.conf"
LOG_DIR = "var/log/nvtopps"
BACKUP = "root/nvidia_powerd_backup_20250115_103000"


@pytest.fixture()
def daemon(write_file) -> Path:
    return write_file("/usr/bin/nvidia-powerd", "#!/bin/sh\n")


@pytest.fixture()
def provisioner(
    state: SystemState, reporter, config: SetupConfig, daemon: Path,
) -> GpuPowerProvisioner:
    return GpuPowerProvisioner(state, reporter, config.gpu_power, config.preflight)


def _new(state: SystemState, reporter, config: SetupConfig) -> GpuPowerProvisioner:
    return GpuPowerProvisioner(state, reporter, config.gpu_power, config.preflight)


# ---------------------------------------------------------------------------
# Fresh install
# ---------------------------------------------------------------------------


class TestFreshInstall:
    def test_reaches_verified(self, provisioner: GpuPowerProvisioner) -> None:
        outcome = provisioner.run()
        assert outcome.state is ProvisionState.VERIFIED
        assert provisioner.history == list(STATE_ORDER)

    def test_log_dir(
        self, provisioner: GpuPowerProvisioner, root: Path, host: FakeHost,
    ) -> None:
        provisioner.run()
        log_dir = root / LOG_DIR
        assert log_dir.is_dir()
        assert stat.S_IMODE(log_dir.stat().st_mode) == 0o755
        assert host.chowned == [(log_dir, "root", "root")]

    def test_stale_logs_removed(
        self, provisioner: GpuPowerProvisioner, root: Path, write_file,
    ) -> None:
        write_file(f"/{LOG_DIR}/old.log", "stale\n")
        provisioner.run()
        assert list((root / LOG_DIR).iterdir()) == []

    def test_unit_and_policy_written(
        self, provisioner: GpuPowerProvisioner, root: Path, bus: InMemoryBroker,
    ) -> None:
        provisioner.run()
        unit = (root / UNIT).read_text(encoding="utf-8")
        assert "ExecStart=/usr/bin/nvidia-powerd" in unit
        assert "ReadWritePaths=/var/log/nvtopps" in unit
        assert 'own="nvidia.powerd.server"' in (root / BUS_POLICY).read_text(encoding="utf-8")
        assert bus.reloads == 1

    def test_service_enabled_and_active(
        self, provisioner: GpuPowerProvisioner, services: InMemoryServiceManager,
    ) -> None:
        provisioner.run()
        assert services.is_enabled("nvidia-powerd")
        assert services.is_active("nvidia-powerd")
        ops = [op for op, name in services.calls if name in ("nvidia-powerd", "")]
        assert ops == ["daemon-reload", "enable", "start"]

    def test_backup_contains_power_limits(
        self, provisioner: GpuPowerProvisioner, root: Path,
    ) -> None:
        outcome = provisioner.run()
        assert outcome.backups == [root / BACKUP]
        table = (root / BACKUP / "gpu_power_limits.txt").read_text(encoding="utf-8")
        assert "175.00 W" in table

    def test_summary(self, provisioner: GpuPowerProvisioner, root: Path) -> None:
        outcome = provisioner.run()
        text = outcome.summary_path.read_text(encoding="utf-8")
        assert outcome.summary_path == root / "root" / "nvidia_powerd_installation_info.txt"
        assert "Driver Version: 550.54.14" in text
        assert "Service Status: active" in text
        assert "Verification: Dynamic Boost is active: 175W power limit" in text

    def test_verification_confirmed(self, provisioner: GpuPowerProvisioner) -> None:
        outcome = provisioner.run()
        assert [r.verdict for r in outcome.verification] == [Verdict.CONFIRMED]

    def test_verify_shows_status_and_recent_logs(
        self, provisioner: GpuPowerProvisioner, services: InMemoryServiceManager, out,
    ) -> None:
        services.journal_lines["nvidia-powerd"] = [f"nvidia-powerd: line {n}" for n in range(30)]
        provisioner.run()
        text = out.getvalue()
        assert "Active: active (running)" in text
        assert "Recent service logs:" in text
        assert "nvidia-powerd: line 29" in text
        assert "nvidia-powerd: line 19\n" not in text

    def test_load_test_instructions(
        self, provisioner: GpuPowerProvisioner, out,
    ) -> None:
        outcome = provisioner.run()
        text = out.getvalue()
        assert "Testing GPU Power Under Load" in text
        assert "watch -n 0.5 nvidia-smi" in text
        assert "power limit shows the full 150W" in text
        assert "Testing Under Load:" in outcome.summary_path.read_text(encoding="utf-8")

    def test_low_limit_is_inconclusive_not_fatal(
        self, provisioner: GpuPowerProvisioner, state: SystemState,
    ) -> None:
        state.gpu = StaticGpuQuery([GpuPowerReading(index=0, name="RTX", power_limit_w=80.0)])
        outcome = provisioner.run()
        assert outcome.state is ProvisionState.VERIFIED
        assert outcome.verification[0].verdict is Verdict.INCONCLUSIVE

    def test_unreachable_bus_is_warning(
        self, provisioner: GpuPowerProvisioner, bus: InMemoryBroker, root: Path,
    ) -> None:
        bus.reachable = False
        outcome = provisioner.run()
        assert outcome.state is ProvisionState.VERIFIED
        assert (root / BUS_POLICY).is_file()


# ---------------------------------------------------------------------------
# Preflight failures
# ---------------------------------------------------------------------------


class TestPreflight:
    def test_missing_daemon_writes_nothing(
        self, state: SystemState, reporter, config: SetupConfig, root: Path,
    ) -> None:
        provisioner = _new(state, reporter, config)
        with pytest.raises(PreflightFailed) as info:
            provisioner.run()
        assert [f.kind for f in info.value.failures] == [MissingDependency]
        assert provisioner.status is ProvisionState.ABORTED
        assert not (root / "etc").exists()
        assert not (root / "var").exists()
        assert not (root / "root").exists()

    def test_no_gpu_and_no_daemon_both_reported(
        self, state: SystemState, reporter, config: SetupConfig, gpu: StaticGpuQuery,
    ) -> None:
        gpu.present = False
        with pytest.raises(PreflightFailed) as info:
            _new(state, reporter, config).run()
        assert [f.name for f in info.value.failures] == ["gpu", "vendor_binary"]


# ---------------------------------------------------------------------------
# Re-run and aborts
# ---------------------------------------------------------------------------


class TestRerunAndAbort:
    def test_second_run_converges(
        self,
        provisioner: GpuPowerProvisioner,
        state: SystemState,
        reporter,
        config: SetupConfig,
        root: Path,
        services: InMemoryServiceManager,
    ) -> None:
        provisioner.run()
        unit_first = (root / UNIT).read_bytes()

        outcome = _new(state, reporter, config).run()

        assert outcome.state is ProvisionState.VERIFIED
        assert (root / UNIT).read_bytes() == unit_first
        assert services.is_active("nvidia-powerd")
        second_backup = root / f"{BACKUP}_1"
        assert outcome.backups == [second_backup]
        assert (second_backup / "nvidia-powerd.service").read_bytes() == unit_first
        assert (root / BACKUP).is_dir()
        assert ("stop", "nvidia-powerd") in services.calls

    def test_crash_after_start(
        self, provisioner: GpuPowerProvisioner, services: InMemoryServiceManager,
    ) -> None:
        services.crash_on_start.add("nvidia-powerd")
        with pytest.raises(ServiceNotRunning):
            provisioner.run()
        assert provisioner.history[-2:] == [
            ProvisionState.SERVICE_ENABLED, ProvisionState.ABORTED,
        ]
        assert provisioner.summary_path is None

    def test_interrupt_leaves_files(
        self, provisioner: GpuPowerProvisioner, root: Path, monkeypatch,
    ) -> None:
        def interrupted() -> None:
            raise KeyboardInterrupt

        monkeypatch.setattr(provisioner, "enable_service", interrupted)
        with pytest.raises(KeyboardInterrupt):
            provisioner.run()
        assert provisioner.status is ProvisionState.ABORTED
        assert (root / UNIT).is_file()
        assert (root / LOG_DIR).is_dir()

    def test_closed_stdin_changes_nothing(
        self, provisioner: GpuPowerProvisioner, state: SystemState,
        root: Path, write_file, services: InMemoryServiceManager,
    ) -> None:
        def closed(prompt: str) -> str:
            raise EOFError

        state.prompt = ConsolePrompter(read=closed)
        keep = write_file(f"/{LOG_DIR}/keep.log", "previous run\n")
        with pytest.raises(InputClosed):
            provisioner.run()
        assert provisioner.history == [ProvisionState.NOT_CHECKED, ProvisionState.ABORTED]
        assert keep.read_text(encoding="utf-8") == "previous run\n"
        assert not (root / UNIT).exists()
        assert services.calls == []
