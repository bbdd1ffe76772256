"""Provisioning state machine.

Every provisioner walks the same ordered states::

    NOT_CHECKED → PREFLIGHT_OK → BACKED_UP → STOPPED_OLD
        → RESOURCES_PROVISIONED → SERVICE_ENABLED → SERVICE_STARTED → VERIFIED

Each arrow is one step method; the state advances only after the step
returns.  Any exception (including Ctrl+C) moves the workflow to ABORTED
and propagates.  Nothing is rolled back: files already written stay, and
re-running the workflow converges to the same end state.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Callable

from isaac_setup.errors import OperatorCancelled
from isaac_setup.provisioning.reporter import ConsoleReporter
from isaac_setup.provisioning.verification import VerificationResult
from isaac_setup.system.state import SystemState
from src.utils.logging_config import log_context, push_context

logger = logging.getLogger(__name__)


class ProvisionState(Enum):
    NOT_CHECKED = auto()
    PREFLIGHT_OK = auto()
    BACKED_UP = auto()
    STOPPED_OLD = auto()
    RESOURCES_PROVISIONED = auto()
    SERVICE_ENABLED = auto()
    SERVICE_STARTED = auto()
    VERIFIED = auto()
    ABORTED = auto()


STATE_ORDER: tuple[ProvisionState, ...] = (
    ProvisionState.NOT_CHECKED,
    ProvisionState.PREFLIGHT_OK,
    ProvisionState.BACKED_UP,
    ProvisionState.STOPPED_OLD,
    ProvisionState.RESOURCES_PROVISIONED,
    ProvisionState.SERVICE_ENABLED,
    ProvisionState.SERVICE_STARTED,
    ProvisionState.VERIFIED,
)


@dataclass
class ProvisionOutcome:
    """What a completed run produced."""

    state: ProvisionState
    verification: list[VerificationResult] = field(default_factory=list)
    backups: list[Path] = field(default_factory=list)
    summary_path: Path | None = None
    elapsed_s: float = 0.0


class ProvisioningWorkflow(ABC):
    """Base class: subclasses implement one method per transition.

    Parameters
    ----------
    state : SystemState
        System handle shared by every step.
    reporter : ConsoleReporter
        Operator output.
    """

    name = "provision"
    title = "Provisioning"

    def __init__(self, state: SystemState, reporter: ConsoleReporter) -> None:
        self.state = state
        self.reporter = reporter
        self.status = ProvisionState.NOT_CHECKED
        self.history: list[ProvisionState] = [ProvisionState.NOT_CHECKED]
        self.backups: list[Path] = []
        self.verification: list[VerificationResult] = []
        self.summary_path: Path | None = None

    # -- steps (override) ---------------------------------------------------

    @abstractmethod
    def preflight(self) -> None:
        """Check the host; raise PreflightFailed before anything is touched."""

    @abstractmethod
    def backup(self) -> None:
        """Copy existing configuration aside and record it in :attr:`backups`."""

    @abstractmethod
    def stop_old(self) -> None: ...

    @abstractmethod
    def provision_resources(self) -> None: ...

    @abstractmethod
    def enable_service(self) -> None: ...

    @abstractmethod
    def start_service(self) -> None: ...

    @abstractmethod
    def verify(self) -> None:
        """Fill :attr:`verification`; inconclusive results must not raise."""

    def write_summary(self) -> Path | None:
        """Called once VERIFIED is reached; returns the summary path."""
        return None

    def intro(self) -> list[str]:
        """Lines shown before the initial confirmation prompt."""
        return []

    # -- machine ------------------------------------------------------------

    def steps(self) -> list[tuple[ProvisionState, Callable[[], None]]]:
        return [
            (ProvisionState.PREFLIGHT_OK, self.preflight),
            (ProvisionState.BACKED_UP, self.backup),
            (ProvisionState.STOPPED_OLD, self.stop_old),
            (ProvisionState.RESOURCES_PROVISIONED, self.provision_resources),
            (ProvisionState.SERVICE_ENABLED, self.enable_service),
            (ProvisionState.SERVICE_STARTED, self.start_service),
            (ProvisionState.VERIFIED, self.verify),
        ]

    def _advance(self, target: ProvisionState) -> None:
        if self.status is ProvisionState.ABORTED:
            raise RuntimeError(f"{self.name}: cannot advance an aborted workflow")
        expected = STATE_ORDER[STATE_ORDER.index(self.status) + 1]
        if target is not expected:
            raise RuntimeError(
                f"{self.name}: illegal transition {self.status.name} -> {target.name}"
            )
        logger.info("%s: %s -> %s", self.name, self.status.name, target.name)
        self.status = target
        self.history.append(target)

    def _abort(self, exc: BaseException) -> None:
        logger.error(
            "%s aborted in state %s: %s", self.name, self.status.name,
            exc.__class__.__name__,
        )
        self.status = ProvisionState.ABORTED
        self.history.append(ProvisionState.ABORTED)

    def confirm_start(self) -> None:
        """Show the intro and ask to proceed; "no" raises OperatorCancelled."""
        self.reporter.header(self.title)
        for line in self.intro():
            self.reporter.detail(line)
        if not self.state.prompt.confirm("Proceed?", default=True):
            raise OperatorCancelled(f"{self.title} cancelled")

    def run(self, confirm: bool = True) -> ProvisionOutcome:
        """Execute every step in order.

        Raises
        ------
        ProvisionError
            From any fatal step; the workflow is ABORTED first.
        KeyboardInterrupt
            Propagated unchanged after marking the workflow ABORTED.
        """
        started = time.monotonic()
        with log_context(workflow=self.name):
            try:
                if confirm:
                    self.confirm_start()
                for target, step in self.steps():
                    push_context(step=target.name.lower())
                    step()
                    self._advance(target)
                self.summary_path = self.write_summary()
            except BaseException as exc:
                self._abort(exc)
                raise

        return ProvisionOutcome(
            state=self.status,
            verification=list(self.verification),
            backups=list(self.backups),
            summary_path=self.summary_path,
            elapsed_s=time.monotonic() - started,
        )
