"""Service lifecycle: write unit, reload, enable, start, verify active.

The forward path is fail-fast: a failure in ``write_unit``,
``daemon_reload``, ``enable`` or ``start`` raises and no later step runs.
Tearing down the old instance (``stop_if_running``,
``disable_if_enabled``, ``mask``) is best-effort: failures are logged as
warnings and the run continues.
"""

from __future__ import annotations

import logging
from pathlib import Path

from isaac_setup.errors import CommandFailed, ServiceNotRunning
from isaac_setup.provisioning.reporter import ConsoleReporter
from isaac_setup.provisioning.service_unit import ServiceUnit
from isaac_setup.system.state import SystemState
from src.utils import fs

logger = logging.getLogger(__name__)

UNIT_MODE = 0o644
JOURNAL_LINES = 50
EXCERPT_JOURNAL_LINES = 10
STATUS_FIELDS = ("Active:", "Main PID:", "Tasks:")


class ServiceLifecycle:
    """Drive one service through the service manager.

    Parameters
    ----------
    state : SystemState
        System handle.
    reporter : ConsoleReporter
        Operator output.
    service : str
        Unit name without the ``.service`` suffix.
    settle_seconds : float
        Pause between start and the active check.
    """

    def __init__(
        self,
        state: SystemState,
        reporter: ConsoleReporter,
        service: str,
        settle_seconds: float = 2.0,
    ) -> None:
        self.state = state
        self.reporter = reporter
        self.service = service
        self.settle_seconds = settle_seconds

    @property
    def _diagnose_hint(self) -> str:
        return f"Check logs: journalctl -u {self.service} -n {JOURNAL_LINES} --no-pager"

    # -- forward path (fatal) -----------------------------------------------

    def write_unit(self, unit: ServiceUnit, path: str | Path) -> Path:
        target = self.state.path(path)
        fs.atomic_write_text(target, unit.render(), mode=UNIT_MODE)
        logger.info("Wrote unit file %s", target)
        self.reporter.success(f"Service file created: {path}")
        return target

    def daemon_reload(self) -> None:
        self.state.services.daemon_reload()
        self.reporter.success("systemd configuration reloaded")

    def enable(self) -> None:
        self.state.services.enable(self.service)
        self.reporter.success(f"{self.service} enabled (will start on boot)")

    def start(self) -> None:
        """Start the service, dumping status and journal if it refuses."""
        try:
            self.state.services.start(self.service)
        except CommandFailed as exc:
            self.reporter.error(f"Failed to start {self.service}")
            self.dump_diagnostics()
            raise CommandFailed(
                exc.args_list, exc.returncode, exc.stdout, exc.stderr,
                hint=self._diagnose_hint,
            ) from exc
        self.reporter.success(f"{self.service} start requested")

    def settle(self) -> None:
        if self.settle_seconds > 0:
            logger.debug("Waiting %.1fs for %s to settle", self.settle_seconds, self.service)
            self.state.sleep(self.settle_seconds)

    def ensure_active(self) -> None:
        if self.state.services.is_active(self.service):
            self.reporter.success(f"{self.service} is running")
            return
        self.reporter.error(f"{self.service} is not running after start")
        self.dump_diagnostics()
        raise ServiceNotRunning(
            f"Service {self.service} failed to start", hint=self._diagnose_hint,
        )

    def start_and_verify(self) -> None:
        self.start()
        self.settle()
        self.ensure_active()

    # -- teardown (best-effort) ---------------------------------------------

    def _best_effort(self, action: str, name: str) -> bool:
        try:
            getattr(self.state.services, action)(name)
        except CommandFailed as exc:
            logger.warning("Best-effort %s of %s failed: %s", action, name, exc)
            self.reporter.warning(f"Could not {action} {name} (continuing)")
            return False
        return True

    def stop_if_running(self, name: str | None = None) -> bool:
        name = name or self.service
        if not self.state.services.is_active(name):
            return False
        self.reporter.info(f"Stopping {name}...")
        return self._best_effort("stop", name)

    def disable_if_enabled(self, name: str | None = None) -> bool:
        name = name or self.service
        if not self.state.services.is_enabled(name):
            return False
        return self._best_effort("disable", name)

    def mask(self, name: str) -> bool:
        return self._best_effort("mask", name)

    # -- diagnostics --------------------------------------------------------

    def _read_diagnostic(self, action: str, *args) -> str:
        try:
            return getattr(self.state.services, action)(self.service, *args)
        except CommandFailed as exc:
            logger.warning("Could not read %s of %s: %s", action, self.service, exc)
            return ""

    def dump_diagnostics(self) -> None:
        """Show unit status and recent journal lines; never raises."""
        status = self._read_diagnostic("status")
        if status.strip():
            self.reporter.info("Service status:")
            self.reporter.detail(status)
        journal = self._read_diagnostic("journal", JOURNAL_LINES)
        if journal.strip():
            self.reporter.info("Recent logs:")
            self.reporter.detail(journal)

    def show_status_excerpt(self, journal_lines: int = EXCERPT_JOURNAL_LINES) -> None:
        """Key status fields plus the last few journal lines of a running unit."""
        status = self._read_diagnostic("status")
        fields = [
            line.strip() for line in status.splitlines()
            if line.strip().startswith(STATUS_FIELDS)
        ]
        if fields:
            self.reporter.info("Service status:")
            self.reporter.detail("\n".join(fields))
        journal = self._read_diagnostic("journal", journal_lines)
        if journal.strip():
            self.reporter.info("Recent service logs:")
            self.reporter.detail(journal)
