"""Tests for ServiceLifecycle.

Validates that:
    - The forward path (write unit, reload, enable, start) is fail-fast
    - Teardown (stop, disable, mask) is best-effort
    - A refused start dumps status and journal before re-raising
    - An unreadable status or journal never replaces the start failure
    - A service that dies after start raises ServiceNotRunning
    - The settle interval goes through the injected sleep
"""

from __future__ import annotations

import dataclasses
import io
from pathlib import Path

import pytest

from isaac_setup.errors import CommandFailed, ServiceNotRunning
from isaac_setup.provisioning.lifecycle import ServiceLifecycle
from isaac_setup.provisioning.service_unit import powerd_unit
from isaac_setup.system.commands import CommandResult
from isaac_setup.system.memory import InMemoryServiceManager, RecordingRunner
from isaac_setup.system.services import SystemdServiceManager
from isaac_setup.system.state import SystemState

UNIT_PATH = "/etc/systemd/system/nvidia-powerd.service"


@pytest.fixture()
def lifecycle(state: SystemState, reporter) -> ServiceLifecycle:
    return ServiceLifecycle(state, reporter, "nvidia-powerd", settle_seconds=2.0)


@pytest.fixture()
def installed(lifecycle: ServiceLifecycle) -> ServiceLifecycle:
    lifecycle.write_unit(powerd_unit("/usr/bin/nvidia-powerd", "/var/log/nvtopps"), UNIT_PATH)
    lifecycle.daemon_reload()
    return lifecycle


# ---------------------------------------------------------------------------
# Forward path
# ---------------------------------------------------------------------------


class TestForwardPath:
    def test_write_unit(self, lifecycle: ServiceLifecycle, root: Path) -> None:
        path = lifecycle.write_unit(
            powerd_unit("/usr/bin/nvidia-powerd", "/var/log/nvtopps"), UNIT_PATH,
        )
        assert path == root / "etc/systemd/system/nvidia-powerd.service"
        text = path.read_text(encoding="utf-8")
        assert "ExecStart=/usr/bin/nvidia-powerd" in text
        assert path.stat().st_mode & 0o777 == 0o644

    def test_enable_before_reload_fails(self, lifecycle: ServiceLifecycle) -> None:
        with pytest.raises(CommandFailed) as info:
            lifecycle.enable()
        assert info.value.exit_code == 5

    def test_happy_path(
        self, installed: ServiceLifecycle, services: InMemoryServiceManager, sleeps: list[float],
    ) -> None:
        installed.enable()
        installed.start_and_verify()
        assert services.is_enabled("nvidia-powerd")
        assert services.is_active("nvidia-powerd")
        assert sleeps == [2.0]
        ops = [op for op, _ in services.calls]
        assert ops == ["daemon-reload", "enable", "start"]

    def test_zero_settle_skips_sleep(self, state: SystemState, reporter, sleeps: list[float]) -> None:
        ServiceLifecycle(state, reporter, "x", settle_seconds=0).settle()
        assert sleeps == []

    def test_reload_failure_propagates(
        self, lifecycle: ServiceLifecycle, services: InMemoryServiceManager,
    ) -> None:
        services.fail_on("daemon-reload", "")
        with pytest.raises(CommandFailed):
            lifecycle.daemon_reload()


class TestStartFailures:
    def test_refused_start_dumps_diagnostics(
        self, installed: ServiceLifecycle, services: InMemoryServiceManager, out: io.StringIO,
    ) -> None:
        services.fail_on("start", "nvidia-powerd")
        services.journal_lines["nvidia-powerd"] = ["nvidia-powerd: failed to open /dev/nvidia0"]
        with pytest.raises(CommandFailed) as info:
            installed.start_and_verify()
        text = out.getvalue()
        assert "Failed to start nvidia-powerd" in text
        assert "Active: inactive (dead)" in text
        assert "failed to open /dev/nvidia0" in text
        assert "journalctl -u nvidia-powerd" in info.value.hint

    def test_unreadable_journal_keeps_start_failure(
        self, state: SystemState, reporter, out: io.StringIO,
    ) -> None:
        def systemctl(argv, cwd):
            if argv[1] == "start":
                return CommandResult(argv, 5, "", "Unit nvidia-powerd.service not found.")
            return CommandResult(argv, 3, "● nvidia-powerd.service\n   Active: failed\n")

        def journalctl(argv, cwd):
            raise CommandFailed(argv, 127, "", "No such file or directory: 'journalctl'")

        runner = RecordingRunner({"systemctl": systemctl, "journalctl": journalctl})
        state = dataclasses.replace(state, services=SystemdServiceManager(runner))
        lifecycle = ServiceLifecycle(state, reporter, "nvidia-powerd")

        with pytest.raises(CommandFailed) as info:
            lifecycle.start()
        assert info.value.exit_code == 5
        assert "journalctl -u nvidia-powerd" in info.value.hint
        assert "Active: failed" in out.getvalue()
        assert "Recent logs:" not in out.getvalue()

    def test_unreadable_status_still_shows_journal(
        self, installed: ServiceLifecycle, services: InMemoryServiceManager,
        out: io.StringIO, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken_status(name: str) -> str:
            raise CommandFailed(["systemctl", "status", name], 127, "", "not found")

        monkeypatch.setattr(services, "status", broken_status)
        services.journal_lines["nvidia-powerd"] = ["nvidia-powerd: started"]
        installed.dump_diagnostics()
        text = out.getvalue()
        assert "Service status:" not in text
        assert "nvidia-powerd: started" in text

    def test_crash_after_start(
        self, installed: ServiceLifecycle, services: InMemoryServiceManager, out: io.StringIO,
    ) -> None:
        services.crash_on_start.add("nvidia-powerd")
        with pytest.raises(ServiceNotRunning, match="nvidia-powerd failed to start"):
            installed.start_and_verify()
        assert "Service status:" in out.getvalue()


# ---------------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------------


class TestTeardown:
    def test_stop_only_when_running(
        self, lifecycle: ServiceLifecycle, services: InMemoryServiceManager,
    ) -> None:
        assert lifecycle.stop_if_running() is False
        services.add_unit("nvidia-powerd", enabled=True, active=True)
        assert lifecycle.stop_if_running() is True
        assert not services.is_active("nvidia-powerd")

    def test_stop_failure_is_warning(
        self, lifecycle: ServiceLifecycle, services: InMemoryServiceManager, out: io.StringIO,
    ) -> None:
        services.add_unit("nvidia-powerd", enabled=True, active=True)
        services.fail_on("stop", "nvidia-powerd")
        assert lifecycle.stop_if_running() is False
        assert "Could not stop nvidia-powerd" in out.getvalue()

    def test_disable_failure_is_warning(
        self, lifecycle: ServiceLifecycle, services: InMemoryServiceManager,
    ) -> None:
        services.add_unit("nvidia-powerd", enabled=True)
        services.fail_on("disable")
        assert lifecycle.disable_if_enabled() is False
        assert services.is_enabled("nvidia-powerd")

    def test_mask_unknown_unit(
        self, lifecycle: ServiceLifecycle, services: InMemoryServiceManager,
    ) -> None:
        assert lifecycle.mask("laptop-mode") is True
        assert services.unit("laptop-mode").masked
