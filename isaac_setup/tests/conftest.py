"""Shared fixtures: a SystemState rooted at ``tmp_path`` with in-memory adapters."""

from __future__ import annotations

import io
from datetime import datetime
from pathlib import Path

import pytest

from isaac_setup.configs.loader import SetupConfig, load_config
from isaac_setup.provisioning.prompts import ScriptedPrompter
from isaac_setup.provisioning.reporter import ConsoleReporter
from isaac_setup.system.memory import (
    FakeHost,
    InMemoryBroker,
    InMemoryPackageManager,
    InMemoryServiceManager,
    RecordingRunner,
    StaticGpuQuery,
)
from isaac_setup.system.state import SystemState
from src.utils.validators import GpuPowerReading

FIXED_NOW = datetime(2025, 1, 15, 10, 30, 0)

CATALOGUE = {
    "tlp": "1.6.1",
    "tlp-rdw": "1.6.1",
    "power-profiles-daemon": "0.10.1",
    "laptop-mode-tools": "1.74",
}


def write(root: Path, rel: str, text: str) -> Path:
    """Create ``<root>/<rel>`` with *text*, making parents as needed."""
    path = root / rel.lstrip("/")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def reading(limit: float | None, index: int = 0, name: str = "NVIDIA GeForce RTX 4090 Laptop GPU") -> GpuPowerReading:
    return GpuPowerReading(
        index=index, name=name, power_draw_w=12.5,
        power_limit_w=limit, default_limit_w=limit,
    )


@pytest.fixture()
def root(tmp_path: Path) -> Path:
    r = tmp_path / "sysroot"
    r.mkdir()
    return r


@pytest.fixture()
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture()
def services(root: Path) -> InMemoryServiceManager:
    return InMemoryServiceManager(root, known_units=["dbus"])


@pytest.fixture()
def packages(services: InMemoryServiceManager) -> InMemoryPackageManager:
    def register_unit(pkg: str) -> None:
        if pkg == "tlp":
            services.add_unit("tlp")

    return InMemoryPackageManager(CATALOGUE, on_install=register_unit)


@pytest.fixture()
def bus() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture()
def gpu() -> StaticGpuQuery:
    return StaticGpuQuery([reading(175.0)])


@pytest.fixture()
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture()
def prompter() -> ScriptedPrompter:
    return ScriptedPrompter()


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def state(
    root: Path,
    host: FakeHost,
    services: InMemoryServiceManager,
    packages: InMemoryPackageManager,
    bus: InMemoryBroker,
    gpu: StaticGpuQuery,
    runner: RecordingRunner,
    prompter: ScriptedPrompter,
    sleeps: list[float],
) -> SystemState:
    return SystemState(
        root=root,
        host=host,
        services=services,
        packages=packages,
        bus=bus,
        gpu=gpu,
        runner=runner,
        prompt=prompter,
        clock=lambda: FIXED_NOW,
        sleep=sleeps.append,
    )


@pytest.fixture()
def out() -> io.StringIO:
    return io.StringIO()


@pytest.fixture()
def reporter(out: io.StringIO) -> ConsoleReporter:
    return ConsoleReporter(out, color=False)


@pytest.fixture()
def config() -> SetupConfig:
    """The default setup.yaml shipped with the package."""
    return load_config()


@pytest.fixture()
def write_file(root: Path):
    """``write_file("/etc/tlp.conf", "...")`` creates the file under *root*."""
    return lambda rel, text: write(root, rel, text)
