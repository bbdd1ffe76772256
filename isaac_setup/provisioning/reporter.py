"""Operator-facing progress output.

Status lines with a leading symbol, coloured when the stream is a
terminal.  Purely cosmetic: the reporter holds no provisioning state.
Every line is mirrored to the module logger at DEBUG so a log file
captures the same narrative.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

logger = logging.getLogger(__name__)

_COLORS = {
    "header": "\033[34m",   # Blue
    "success": "\033[32m",  # Green
    "error": "\033[31m",    # Red
    "warning": "\033[33m",  # Yellow
    "info": "\033[36m",     # Cyan
    "reset": "\033[0m",
}

_SYMBOLS = {
    "success": "✓",
    "error": "✗",
    "warning": "⚠",
    "info": "ℹ",
}


class ConsoleReporter:
    """Print status lines to *stream*.

    Parameters
    ----------
    stream : TextIO | None
        Output stream, default ``sys.stdout``.
    color : bool | None
        Force colour on or off; ``None`` enables it only for a TTY.
    """

    def __init__(self, stream: TextIO | None = None, color: bool | None = None) -> None:
        self.stream = stream if stream is not None else sys.stdout
        if color is None:
            isatty = getattr(self.stream, "isatty", None)
            color = bool(isatty and isatty())
        self.color = color

    def _paint(self, kind: str, text: str) -> str:
        if not self.color:
            return text
        return f"{_COLORS[kind]}{text}{_COLORS['reset']}"

    def _emit(self, line: str) -> None:
        print(line, file=self.stream, flush=True)

    def _status(self, kind: str, message: str) -> None:
        logger.debug("[%s] %s", kind, message)
        self._emit(self._paint(kind, f"{_SYMBOLS[kind]} {message}"))

    def header(self, title: str) -> None:
        logger.debug("== %s ==", title)
        rule = "=" * 60
        self._emit("")
        self._emit(self._paint("header", rule))
        self._emit(self._paint("header", f"  {title}"))
        self._emit(self._paint("header", rule))

    def success(self, message: str) -> None:
        self._status("success", message)

    def error(self, message: str) -> None:
        self._status("error", message)

    def warning(self, message: str) -> None:
        self._status("warning", message)

    def info(self, message: str) -> None:
        self._status("info", message)

    def detail(self, text: str, indent: int = 2) -> None:
        """Print unstyled, indented lines (command output, file listings)."""
        pad = " " * indent
        for line in text.rstrip("\n").splitlines():
            self._emit(f"{pad}{line}")
