"""Shared scaffolding for the sequential installers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from isaac_setup.errors import OperatorCancelled
from isaac_setup.provisioning.reporter import ConsoleReporter
from isaac_setup.system.state import SystemState

logger = logging.getLogger(__name__)


@dataclass
class InstallOutcome:
    """Where things were installed and what was left behind."""

    install_dir: Path
    version: str | None = None
    info_path: Path | None = None
    notes: list[str] = field(default_factory=list)


class Installer(ABC):
    """Base installer: intro, "Proceed?" prompt, then :meth:`install`."""

    name = "install"
    title = "Installer"

    def __init__(self, state: SystemState, reporter: ConsoleReporter) -> None:
        self.state = state
        self.reporter = reporter

    def intro(self) -> list[str]:
        return []

    @abstractmethod
    def install(self) -> InstallOutcome:
        """Perform every install step in order."""

    def run(self, confirm: bool = True) -> InstallOutcome:
        self.reporter.header(self.title)
        for line in self.intro():
            self.reporter.detail(line)
        if confirm and not self.state.prompt.confirm("Proceed?", default=True):
            raise OperatorCancelled(f"{self.title} cancelled")
        outcome = self.install()
        logger.info("%s finished: %s", self.name, outcome.install_dir)
        return outcome
