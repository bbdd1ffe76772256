"""Preflight checks.

Each check inspects the host through :class:`SystemState` and returns a
:class:`CheckResult`; nothing here mutates the system.  A workflow queues
its checks on a :class:`PreflightChecker`, runs them *all*, and only then
aborts with every fatal failure listed together.

Severity:
    - FAIL: fatal, collected into :class:`PreflightFailed`
    - WARN: reported, run continues (missing recommended tool, no battery,
      conflicting daemon still active)
    - PASS

Disk space is the one soft check that asks the operator: "no" turns it
into a fatal failure, "yes" passes with a warning.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Callable, Iterable, Mapping

from isaac_setup.errors import (
    CommandFailed,
    EnvironmentUnsupported,
    MissingDependency,
    PreflightFailed,
    ProvisionError,
    ResourceInsufficient,
)
from isaac_setup.provisioning.reporter import ConsoleReporter
from isaac_setup.system import sysfs
from isaac_setup.system.state import SystemState

logger = logging.getLogger(__name__)

_LEADING_DIGITS = re.compile(r"\d+")

# Install hints for tools the workflows need
TOOL_HINTS: dict[str, str] = {
    "wget": "sudo apt-get install wget",
    "unzip": "sudo apt-get install unzip",
    "git": "sudo apt-get install git",
    "gcc": "sudo apt-get install build-essential",
    "uv": "curl -LsSf https://astral.sh/uv/install.sh | sh",
    "apt-get": "This tool supports Debian/Ubuntu hosts only",
    "nvidia-smi": "Install the NVIDIA driver (e.g. sudo ubuntu-drivers install)",
}


class CheckStatus(Enum):
    PASS = auto()
    WARN = auto()
    FAIL = auto()


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one preflight check.

    ``kind`` names the error class a FAIL belongs to so the report can
    say *why* the host is unsuitable, not just that it is.
    """

    name: str
    status: CheckStatus
    message: str
    hint: str = ""
    kind: type[ProvisionError] | None = None

    @property
    def failed(self) -> bool:
        return self.status is CheckStatus.FAIL

    @classmethod
    def ok(cls, name: str, message: str) -> CheckResult:
        return cls(name, CheckStatus.PASS, message)

    @classmethod
    def warn(cls, name: str, message: str, hint: str = "") -> CheckResult:
        return cls(name, CheckStatus.WARN, message, hint)

    @classmethod
    def fail(
        cls,
        name: str,
        message: str,
        kind: type[ProvisionError],
        hint: str = "",
    ) -> CheckResult:
        return cls(name, CheckStatus.FAIL, message, hint, kind)


@dataclass
class PreflightReport:
    """Accumulated results of one preflight run."""

    results: list[CheckResult] = field(default_factory=list)

    @property
    def failures(self) -> list[CheckResult]:
        return [r for r in self.results if r.failed]

    @property
    def warnings(self) -> list[CheckResult]:
        return [r for r in self.results if r.status is CheckStatus.WARN]

    @property
    def passed(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        """Raise :class:`PreflightFailed` listing every fatal result."""
        failures = self.failures
        if failures:
            hints = [f"{f.name}: {f.hint}" for f in failures if f.hint]
            raise PreflightFailed(failures, hint="\n".join(hints))


def parse_version(text: str) -> tuple[int, ...]:
    """``"2.35"`` → ``(2, 35)``; compares numerically so 2.4 < 2.35."""
    parts = []
    for piece in text.strip().split("."):
        match = _LEADING_DIGITS.match(piece)
        if match is None:
            break
        parts.append(int(match.group()))
        if match.end() != len(piece):
            break
    if not parts:
        raise ValueError(f"Not a version string: {text!r}")
    return tuple(parts)


# ---------------------------------------------------------------------------
# Checker
# ---------------------------------------------------------------------------


class PreflightChecker:
    """Queue and run preflight checks against a :class:`SystemState`.

    Usage::

        checker = PreflightChecker(state, reporter)
        checker.add(checker.check_root)
        checker.add(lambda: checker.check_tools(["wget", "unzip"]))
        report = checker.run()
        report.raise_for_failures()

    ``check_tools`` returns one result per tool, so every missing tool is
    named individually.
    """

    def __init__(self, state: SystemState, reporter: ConsoleReporter) -> None:
        self.state = state
        self.reporter = reporter
        self._checks: list[Callable[[], CheckResult | Iterable[CheckResult]]] = []

    def add(self, check: Callable[[], CheckResult | Iterable[CheckResult]]) -> None:
        self._checks.append(check)

    def run(self) -> PreflightReport:
        report = PreflightReport()
        for check in self._checks:
            outcome = check()
            results = [outcome] if isinstance(outcome, CheckResult) else list(outcome)
            for result in results:
                self._show(result)
                report.results.append(result)
        logger.info(
            "Preflight finished: %d checks, %d failed, %d warnings",
            len(report.results), len(report.failures), len(report.warnings),
        )
        return report

    def _show(self, result: CheckResult) -> None:
        if result.status is CheckStatus.PASS:
            self.reporter.success(result.message)
        elif result.status is CheckStatus.WARN:
            self.reporter.warning(result.message)
            if result.hint:
                self.reporter.detail(result.hint, indent=4)
        else:
            self.reporter.error(result.message)
            if result.hint:
                self.reporter.detail(result.hint, indent=4)

    # -- individual checks --------------------------------------------------

    def check_root(self) -> CheckResult:
        if self.state.host.is_root():
            return CheckResult.ok("root", "Running with root privileges")
        return CheckResult.fail(
            "root", "This script must be run as root",
            EnvironmentUnsupported, hint="Re-run with sudo",
        )

    def check_os(self, supported: str = "linux") -> CheckResult:
        family = self.state.host.os_family()
        if family == supported:
            return CheckResult.ok("os", f"Operating system: {family}")
        return CheckResult.fail(
            "os", f"Unsupported operating system: {family} (need {supported})",
            EnvironmentUnsupported,
        )

    def check_architecture(self, allowed: Iterable[str]) -> CheckResult:
        allowed = tuple(allowed)
        arch = self.state.host.architecture()
        if arch in allowed:
            return CheckResult.ok("architecture", f"Architecture: {arch}")
        return CheckResult.fail(
            "architecture",
            f"Unsupported architecture: {arch} (supported: {', '.join(allowed)})",
            EnvironmentUnsupported,
        )

    def check_glibc(self, minimum: str) -> CheckResult:
        found = self.state.host.glibc_version()
        if found is None:
            return CheckResult.fail(
                "glibc", "Could not determine the GLIBC version",
                EnvironmentUnsupported, hint="Is this a glibc-based distribution?",
            )
        try:
            ok = parse_version(found) >= parse_version(minimum)
        except ValueError:
            return CheckResult.fail(
                "glibc", f"Unrecognised GLIBC version: {found}", EnvironmentUnsupported,
            )
        if ok:
            return CheckResult.ok("glibc", f"GLIBC version: {found}")
        return CheckResult.fail(
            "glibc", f"GLIBC {found} is too old (need {minimum} or newer)",
            EnvironmentUnsupported, hint="Upgrade to Ubuntu 22.04 or newer",
        )

    def check_disk_space(self, path: str | Path, required_gb: float) -> CheckResult:
        """Soft check: asks whether to continue when space is short."""
        target = self.state.path(path)
        free_gb = self.state.host.free_disk_gb(target)
        if free_gb >= required_gb:
            return CheckResult.ok(
                "disk_space", f"Disk space: {free_gb:.0f} GB available",
            )
        message = f"Only {free_gb:.0f} GB free at {path} ({required_gb:.0f} GB recommended)"
        self.reporter.warning(message)
        if self.state.prompt.confirm("Continue anyway?", default=False):
            return CheckResult.warn("disk_space", f"{message}; continuing at operator request")
        return CheckResult.fail(
            "disk_space", message, ResourceInsufficient,
            hint="Free up disk space or choose another location",
        )

    def check_tools(
        self,
        required: Iterable[str] = (),
        recommended: Iterable[str] = (),
        hints: Mapping[str, str] | None = None,
    ) -> list[CheckResult]:
        hints = {**TOOL_HINTS, **(hints or {})}
        results = []
        for tool in required:
            if self.state.host.which(tool):
                results.append(CheckResult.ok(f"tool:{tool}", f"{tool} found"))
            else:
                results.append(CheckResult.fail(
                    f"tool:{tool}", f"Required tool not found: {tool}",
                    MissingDependency, hint=hints.get(tool, ""),
                ))
        for tool in recommended:
            if self.state.host.which(tool):
                results.append(CheckResult.ok(f"tool:{tool}", f"{tool} found"))
            else:
                results.append(CheckResult.warn(
                    f"tool:{tool}", f"Recommended tool not found: {tool}",
                    hint=hints.get(tool, ""),
                ))
        return results

    def check_vendor_binary(self, path: str | Path, hint: str = "") -> CheckResult:
        target = self.state.path(path)
        if target.is_file():
            return CheckResult.ok("vendor_binary", f"Found {path}")
        return CheckResult.fail(
            "vendor_binary", f"Vendor daemon not found: {path}",
            MissingDependency, hint=hint,
        )

    def check_gpu(self) -> CheckResult:
        gpu = self.state.gpu
        if not gpu.available():
            return CheckResult.fail(
                "gpu", "nvidia-smi not found", MissingDependency,
                hint=TOOL_HINTS["nvidia-smi"],
            )
        try:
            readings = gpu.readings()
        except (CommandFailed, ValueError) as exc:
            return CheckResult.fail(
                "gpu", f"nvidia-smi could not query the GPU: {exc}",
                MissingDependency, hint="Check the driver with: nvidia-smi",
            )
        if not readings:
            return CheckResult.warn("gpu", "nvidia-smi found but no GPU was reported")
        names = ", ".join(sorted({r.name for r in readings}))
        return CheckResult.ok("gpu", f"GPU detected: {names} (count: {len(readings)})")

    def check_battery(self) -> CheckResult:
        if sysfs.has_battery(self.state.root):
            return CheckResult.ok("battery", "Battery detected (laptop system)")
        return CheckResult.warn(
            "battery", "No battery detected; AC settings apply permanently",
        )

    def check_conflicting_services(self, names: Iterable[str]) -> list[CheckResult]:
        results = []
        for name in names:
            if self.state.services.is_active(name):
                results.append(CheckResult.warn(
                    f"conflict:{name}",
                    f"Conflicting service is running: {name} (it will be masked)",
                ))
        return results

    def check_install_present(self, path: str | Path, marker: str, hint: str) -> CheckResult:
        """Fail unless ``<path>/<marker>`` exists (e.g. an Isaac Sim install)."""
        target = self.state.path(path)
        if (target / marker).exists():
            return CheckResult.ok("install_present", f"Found {path}")
        return CheckResult.fail(
            "install_present", f"{Path(path) / marker} not found",
            MissingDependency, hint=hint,
        )
