"""External command execution.

Every adapter that talks to the host (systemctl, apt-get, nvidia-smi,
wget, git...) goes through :class:`CommandRunner` so that failures carry
the exit code, captured output, and a remediation hint in one
:class:`~isaac_setup.errors.CommandFailed`.

Long-running commands (downloads, package installs) pass
``capture=False`` so the tool's own progress output reaches the terminal.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

from isaac_setup.errors import CommandFailed

logger = logging.getLogger(__name__)

# Captured stderr kept in errors and logs
_OUTPUT_TAIL = 2000

# Conventional shell codes for "not found" and "timed out"
EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124

# Distinguishes "use the runner default" from an explicit None (no limit)
_DEFAULT_TIMEOUT: Any = object()


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Thin wrapper around :func:`subprocess.run`.

    Parameters
    ----------
    timeout : float | None
        Default timeout in seconds; ``None`` waits indefinitely.
    env : Mapping[str, str] | None
        Extra environment variables merged over the inherited environment.
    """

    def __init__(
        self,
        timeout: float | None = 300.0,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.timeout = timeout
        self.env = dict(env) if env else None

    def run(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        capture: bool = True,
        timeout: float | None = _DEFAULT_TIMEOUT,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        hint: str = "",
    ) -> CommandResult:
        """Run *args* and return its result.

        Parameters
        ----------
        args : Sequence[str]
            Command and arguments; never passed through a shell.
        check : bool
            Raise :class:`CommandFailed` on a non-zero exit.
        capture : bool
            Capture stdout/stderr.  ``False`` streams them to the terminal.
        timeout : float | None
            Overrides the runner default for this call; ``None`` means no limit.
        cwd : str | Path | None
            Working directory.
        env : Mapping[str, str] | None
            Extra environment variables for this call only.
        hint : str
            Remediation hint attached to a raised :class:`CommandFailed`.

        Raises
        ------
        CommandFailed
            If *check* is set and the command fails, is missing, or times out.
            A missing executable or a timeout always raises.
        """
        argv = [str(a) for a in args]
        logger.debug("Running: %s", " ".join(argv))

        merged = None
        if self.env or env:
            merged = {**os.environ, **(self.env or {}), **(env or {})}

        try:
            proc = subprocess.run(
                argv,
                capture_output=capture,
                text=True,
                timeout=self.timeout if timeout is _DEFAULT_TIMEOUT else timeout,
                cwd=str(cwd) if cwd is not None else None,
                env=merged,
            )
        except FileNotFoundError as exc:
            raise CommandFailed(argv, EXIT_NOT_FOUND, "", str(exc), hint) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandFailed(
                argv, EXIT_TIMEOUT, "", f"timed out after {exc.timeout}s", hint,
            ) from exc

        result = CommandResult(
            args=tuple(argv),
            returncode=proc.returncode,
            stdout=(proc.stdout or "") if capture else "",
            stderr=(proc.stderr or "")[-_OUTPUT_TAIL:] if capture else "",
        )
        if not result.ok:
            logger.debug(
                "Command exited %d: %s\n%s", result.returncode, " ".join(argv),
                result.stderr.strip(),
            )
            if check:
                raise CommandFailed(
                    argv, result.returncode, result.stdout, result.stderr, hint,
                )
        return result

    def which(self, name: str) -> str | None:
        """Return the absolute path of executable *name*, or ``None``."""
        return shutil.which(name)
