"""Error taxonomy for provisioning and installation.

Every fatal condition is a :class:`ProvisionError` subclass carrying the
process exit code and an optional remediation hint that the CLI prints
after the error line.  Soft conditions (low disk space the operator
accepted, an unreachable message bus, inconclusive verification) are
reported as warnings and never raised.
"""

from __future__ import annotations

from typing import Sequence


class ProvisionError(Exception):
    """Base exception for all fatal provisioning errors."""

    exit_code = 1

    def __init__(self, message: str, hint: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint


class EnvironmentUnsupported(ProvisionError):
    """Wrong OS family, architecture, or too old a system library."""

    pass


class MissingDependency(ProvisionError):
    """A required tool or vendor binary is not installed."""

    pass


class ResourceInsufficient(ProvisionError):
    """Not enough disk space and the operator declined to continue."""

    pass


class ServiceNotRunning(ProvisionError):
    """The service was started but is not active after the settle interval."""

    pass


class OperatorCancelled(ProvisionError):
    """The operator declined the initial confirmation prompt."""

    exit_code = 0


class InputClosed(OperatorCancelled):
    """Standard input ended while a prompt was waiting for an answer.

    Unattended runs (cron, a pipe) land here instead of taking defaults;
    the non-zero exit code tells the caller nothing was confirmed.
    """

    exit_code = 1


class PreflightFailed(ProvisionError):
    """One or more fatal preflight checks failed.

    Carries every failed check so the operator sees the full list at once.
    """

    def __init__(self, failures: Sequence, hint: str = "") -> None:
        names = ", ".join(f.name for f in failures)
        super().__init__(f"Preflight failed: {names}", hint)
        self.failures = tuple(failures)


class CommandFailed(ProvisionError):
    """An external command exited non-zero.

    The command's own exit code becomes the process exit code.
    """

    def __init__(
        self,
        args: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
        hint: str = "",
    ) -> None:
        self.args_list = tuple(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        message = f"Command failed ({returncode}): {' '.join(self.args_list)}"
        if detail:
            message += f": {detail}"
        super().__init__(message, hint)

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return self.returncode if self.returncode > 0 else 1
