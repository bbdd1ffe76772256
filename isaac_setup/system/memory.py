"""In-memory capability adapters.

Stand-ins for the real adapters that keep all state in Python objects and
record every call, so workflows can run unprivileged against a temporary
filesystem root.  Failures are injected per operation and unit name.

Usage::

    services = InMemoryServiceManager(root=tmp_path, known_units=["dbus"])
    services.fail_on("start", "nvidia-powerd")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Mapping, Sequence

from isaac_setup.errors import CommandFailed
from isaac_setup.system.commands import EXIT_NOT_FOUND, CommandResult
from src.utils.validators import GpuPowerReading

logger = logging.getLogger(__name__)

UNIT_DIR = Path("etc/systemd/system")


def _unit_name(name: str) -> str:
    return name[: -len(".service")] if name.endswith(".service") else name


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@dataclass
class UnitRecord:
    """Runtime state of one unit as the in-memory manager sees it."""

    loaded: bool = False
    enabled: bool = False
    active: bool = False
    masked: bool = False


class InMemoryServiceManager:
    """Service manager that learns units from unit files under *root*.

    Parameters
    ----------
    root : Path
        Filesystem root; ``daemon_reload`` scans ``<root>/etc/systemd/system``.
    known_units : Iterable[str]
        Units provided by installed packages (loaded from the start).
    """

    def __init__(self, root: Path, known_units: Iterable[str] = ()) -> None:
        self.root = Path(root)
        self.units: dict[str, UnitRecord] = {
            _unit_name(n): UnitRecord(loaded=True) for n in known_units
        }
        self.calls: list[tuple[str, str]] = []
        self.crash_on_start: set[str] = set()
        self.journal_lines: dict[str, list[str]] = {}
        self._failures: dict[str, set[str]] = {}

    # -- test controls ------------------------------------------------------

    def fail_on(self, op: str, name: str = "*") -> None:
        """Make *op* on unit *name* (``"*"`` for any) raise CommandFailed."""
        self._failures.setdefault(op, set()).add(_unit_name(name))

    def add_unit(self, name: str, *, enabled: bool = False, active: bool = False) -> None:
        self.units[_unit_name(name)] = UnitRecord(loaded=True, enabled=enabled, active=active)

    def unit(self, name: str) -> UnitRecord:
        return self.units.setdefault(_unit_name(name), UnitRecord())

    # -- helpers ------------------------------------------------------------

    def _record(self, op: str, name: str = "") -> None:
        self.calls.append((op, _unit_name(name)))
        wanted = self._failures.get(op, set())
        if "*" in wanted or _unit_name(name) in wanted:
            raise CommandFailed(
                ["systemctl", op, name] if name else ["systemctl", op],
                1, "", f"Injected failure: {op} {name}".strip(),
            )

    def _require_loaded(self, op: str, name: str) -> UnitRecord:
        rec = self.unit(name)
        if not rec.loaded:
            raise CommandFailed(
                ["systemctl", op, name], 5, "",
                f"Unit {_unit_name(name)}.service not found.",
            )
        if rec.masked and op in ("enable", "start"):
            raise CommandFailed(
                ["systemctl", op, name], 1, "",
                f"Unit {_unit_name(name)}.service is masked.",
            )
        return rec

    # -- ServiceManager -----------------------------------------------------

    def daemon_reload(self) -> None:
        self._record("daemon-reload")
        unit_dir = self.root / UNIT_DIR
        for path in unit_dir.glob("*.service"):
            self.unit(path.stem).loaded = True

    def enable(self, name: str) -> None:
        self._record("enable", name)
        self._require_loaded("enable", name).enabled = True

    def disable(self, name: str) -> None:
        self._record("disable", name)
        self._require_loaded("disable", name).enabled = False

    def start(self, name: str) -> None:
        self._record("start", name)
        rec = self._require_loaded("start", name)
        rec.active = _unit_name(name) not in self.crash_on_start

    def stop(self, name: str) -> None:
        self._record("stop", name)
        self._require_loaded("stop", name).active = False

    def mask(self, name: str) -> None:
        self._record("mask", name)
        rec = self.unit(name)
        rec.masked = True
        rec.enabled = False

    def reload(self, name: str) -> None:
        self._record("reload", name)
        rec = self._require_loaded("reload", name)
        if not rec.active:
            raise CommandFailed(
                ["systemctl", "reload", name], 7, "",
                f"Unit {_unit_name(name)}.service is not active.",
            )

    def is_active(self, name: str) -> bool:
        rec = self.units.get(_unit_name(name))
        return bool(rec and rec.active)

    def is_enabled(self, name: str) -> bool:
        rec = self.units.get(_unit_name(name))
        return bool(rec and rec.enabled)

    def status(self, name: str) -> str:
        rec = self.units.get(_unit_name(name), UnitRecord())
        state = "active (running)" if rec.active else "inactive (dead)"
        return f"● {_unit_name(name)}.service\n     Active: {state}\n"

    def journal(self, name: str, lines: int = 50) -> str:
        return "\n".join(self.journal_lines.get(_unit_name(name), [])[-lines:])


# ---------------------------------------------------------------------------
# Packages
# ---------------------------------------------------------------------------


class InMemoryPackageManager:
    """Package manager with a fixed catalogue of installable packages.

    Parameters
    ----------
    available : Mapping[str, str]
        Package name to version for everything the "repository" offers.
    installed : Iterable[str]
        Packages already installed at start.
    on_install : Callable[[str], None] | None
        Called with each package name after it is installed (e.g. to
        register the unit the package ships).
    """

    def __init__(
        self,
        available: Mapping[str, str],
        installed: Iterable[str] = (),
        on_install: Callable[[str], None] | None = None,
    ) -> None:
        self.available = dict(available)
        self.installed: set[str] = set(installed)
        self.on_install = on_install
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.fail_update = False

    def update(self) -> None:
        self.calls.append(("update", ()))
        if self.fail_update:
            raise CommandFailed(["apt-get", "update"], 100, "", "Temporary failure resolving")

    def install(self, packages: Sequence[str]) -> None:
        self.calls.append(("install", tuple(packages)))
        missing = [p for p in packages if p not in self.available]
        if missing:
            raise CommandFailed(
                ["apt-get", "install", "-y", *packages], 100, "",
                f"E: Unable to locate package {missing[0]}",
            )
        for pkg in packages:
            self.installed.add(pkg)
            if self.on_install is not None:
                self.on_install(pkg)

    def remove(self, packages: Sequence[str]) -> None:
        self.calls.append(("remove", tuple(packages)))
        for pkg in packages:
            self.installed.discard(pkg)

    def is_installed(self, package: str) -> bool:
        return package in self.installed

    def installed_version(self, package: str) -> str | None:
        if package not in self.installed:
            return None
        return self.available.get(package, "0")


# ---------------------------------------------------------------------------
# Bus, GPU, host
# ---------------------------------------------------------------------------


class InMemoryBroker:
    """Message bus that is either reachable or not."""

    def __init__(self, reachable: bool = True) -> None:
        self.reachable = reachable
        self.reloads = 0

    def reload(self) -> bool:
        if not self.reachable:
            return False
        self.reloads += 1
        return True


class StaticGpuQuery:
    """GPU query returning fixed readings."""

    def __init__(
        self,
        readings: Sequence[GpuPowerReading] = (),
        driver: str | None = "550.54.14",
        present: bool = True,
    ) -> None:
        self._readings = list(readings)
        self.driver = driver
        self.present = present

    def available(self) -> bool:
        return self.present

    def readings(self) -> list[GpuPowerReading]:
        if not self.present:
            raise CommandFailed(["nvidia-smi"], EXIT_NOT_FOUND, "", "nvidia-smi: not found")
        return list(self._readings)

    def driver_version(self) -> str | None:
        return self.driver if self.present else None

    def limits_table(self) -> str:
        lines = ["index, name, power.limit [W]"]
        for r in self._readings:
            limit = "[N/A]" if r.power_limit_w is None else f"{r.power_limit_w:.2f} W"
            lines.append(f"{r.index}, {r.name}, {limit}")
        return "\n".join(lines) + "\n"


@dataclass
class FakeHost:
    """Host probe with settable facts; records ``chown`` calls."""

    os: str = "linux"
    arch: str = "x86_64"
    glibc: str | None = "2.35"
    free_gb: float = 500.0
    tools: set[str] = field(default_factory=lambda: {"nvidia-smi", "apt-get"})
    root_user: bool = True
    home_dir: Path = Path("/root")
    chowned: list[tuple[Path, str, str]] = field(default_factory=list)

    def os_family(self) -> str:
        return self.os

    def architecture(self) -> str:
        return self.arch

    def glibc_version(self) -> str | None:
        return self.glibc

    def free_disk_gb(self, path: Path) -> float:
        return self.free_gb

    def which(self, name: str) -> str | None:
        return f"/usr/bin/{name}" if name in self.tools else None

    def is_root(self) -> bool:
        return self.root_user

    def chown(self, path: Path, user: str, group: str) -> None:
        self.chowned.append((Path(path), user, group))

    def home(self) -> Path:
        return self.home_dir


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class RecordingRunner:
    """Command runner that records invocations instead of executing them.

    *handlers* maps an executable name (``args[0]``'s basename) to a
    callable ``(args, cwd) -> CommandResult | None``; a ``None`` return or
    a missing handler means success with empty output.
    """

    def __init__(
        self,
        handlers: Mapping[str, Callable[[tuple[str, ...], Path | None], CommandResult | None]] | None = None,
        tools: Iterable[str] = (),
    ) -> None:
        self.handlers = dict(handlers or {})
        self.tools = set(tools)
        self.calls: list[tuple[tuple[str, ...], Path | None]] = []

    def run(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        capture: bool = True,
        timeout: float | None = None,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        hint: str = "",
    ) -> CommandResult:
        argv = tuple(str(a) for a in args)
        where = Path(cwd) if cwd is not None else None
        self.calls.append((argv, where))
        handler = self.handlers.get(Path(argv[0]).name)
        result = handler(argv, where) if handler else None
        if result is None:
            result = CommandResult(args=argv, returncode=0)
        if check and not result.ok:
            raise CommandFailed(argv, result.returncode, result.stdout, result.stderr, hint)
        return result

    def which(self, name: str) -> str | None:
        return f"/usr/bin/{name}" if name in self.tools else None

    def commands(self) -> list[tuple[str, ...]]:
        return [argv for argv, _ in self.calls]
