"""Unified logging configuration for the provisioning entry points.

Every script calls setup_logging() once with the ``logging`` section of
setup.yaml (command-line flags win).  Logging is the diagnostic channel:
the operator reads the provisioning reporter, and an administrator reads
the log file afterwards to see which commands ran and why a run aborted.

Provides:
    - stderr handler (human format, ANSI level colours on a TTY)
    - Optional file handler, human or JSON lines, size-rotated on request
    - Contextual fields carried on every record (app, workflow, step)
    - Python warnings routed to logging
    - Uncaught exceptions logged before the interpreter exits

Public API:
    setup_logging(log_level="INFO", log_file="/var/log/isaac-setup.log",
                  context={"app": "configure_gpu_power"})
    get_logger(name)
    push_context(step="backed_up") / pop_context(["step"])
    with log_context(service="tlp"): ...
    install_excepthook()
    shutdown()

Format examples:
    Human: 2025-01-15T10:30:00.123Z | INFO     | app=configure_cpu_power step=backed_up | Backup created
    JSON:  {"t": "2025-01-15T10:30:00.123000+00:00", "lvl": "INFO", "name": "...", "msg": "...", "app": "..."}

Timestamps are always UTC so logs from several hosts line up.

Idempotent: repeated setup_logging() calls replace handlers instead of
stacking them.
"""

import contextlib
import contextvars
import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional


# Fields attached to every record; copied on write, never mutated in place
_context_var = contextvars.ContextVar('logging_context', default={})

# Handlers installed by setup_logging (removed again on the next call)
_installed: List[logging.Handler] = []

_LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
_RESET = '\033[0m'


class ContextFormatter(logging.Formatter):
    """Formatter that appends the current context fields.

    Parameters
    ----------
    fmt_mode : str
        "human" (pipe-separated line) or "json" (one object per line)
    use_color : bool
        Colour the level name; ignored unless the stream is a TTY
    stream : file-like, optional
        Stream the handler writes to, used for the TTY check
    """

    def __init__(self, fmt_mode: str = "human", use_color: bool = False, stream=None):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown log format: {fmt_mode}. Use 'human' or 'json'.")
        self.fmt_mode = fmt_mode
        isatty = getattr(stream, "isatty", None)
        self.use_color = bool(use_color and isatty and isatty())

    def format(self, record: logging.LogRecord) -> str:
        context = _context_var.get({})
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if self.fmt_mode == "json":
            return self._format_json(record, ts, context)
        return self._format_human(record, ts, context)

    def _format_json(self, record: logging.LogRecord, ts: datetime, context: dict) -> str:
        entry = {
            't': ts.isoformat(),
            'lvl': record.levelname,
            'name': record.name,
            'pid': os.getpid(),
            'msg': record.getMessage(),
        }
        entry.update(context)
        if record.exc_info:
            entry['exc'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)

    def _format_human(self, record: logging.LogRecord, ts: datetime, context: dict) -> str:
        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{_LEVEL_COLORS.get(record.levelname, '')}{level}{_RESET}"

        parts = [ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z', level]
        if context:
            parts.append(' '.join(f"{k}={v}" for k, v in context.items()))
        parts.append(record.getMessage())
        line = ' | '.join(parts)

        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    max_bytes: int = 0,
    backup_count: int = 3,
    capture_warnings: bool = True,
    context: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Configure the root logger (idempotent).

    Parameters
    ----------
    log_level : str
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL"
    log_file : str, optional
        Also log to this file; parent directories are created
    json : bool
        JSON lines in the log file instead of the human format
    color : bool
        Colour level names on the console when it is a TTY
    to_stderr : bool
        Attach the console handler, default True
    max_bytes : int
        Rotate the log file at this size; 0 disables rotation
    backup_count : int
        Rotated files to keep when max_bytes is set
    capture_warnings : bool
        Route Python warnings to logging, default True
    context : dict, optional
        Initial contextual fields, e.g. {"app": "configure_cpu_power"}

    Returns
    -------
    dict
        {"handlers": [...]} as installed

    Raises
    ------
    ValueError
        If *log_level* is not a known level name
    OSError
        If the log file cannot be opened
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    root = logging.getLogger()
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()

    root.setLevel(level)

    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(ContextFormatter("human", color, sys.stderr))
        _installed.append(console)

    if log_file:
        _installed.append(_create_file_handler(log_file, json, max_bytes, backup_count))

    for handler in _installed:
        root.addHandler(handler)

    if context:
        push_context(**context)

    if capture_warnings:
        logging.captureWarnings(True)

    return {'handlers': list(_installed)}


def _create_file_handler(
    log_file: str,
    json_format: bool,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    """File handler, size-rotated when max_bytes > 0."""
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    if max_bytes > 0:
        handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
        )
    else:
        handler = logging.FileHandler(log_file, encoding="utf-8")

    handler.setFormatter(ContextFormatter("json" if json_format else "human"))
    return handler


def get_logger(name: str) -> logging.Logger:
    """Get logger by name (typically __name__)."""
    return logging.getLogger(name)


def push_context(**kwargs) -> None:
    """Add contextual fields to all subsequent log records.

    Examples
    --------
    >>> push_context(app="configure_gpu_power")
    >>> push_context(step="backed_up")
    >>> logger.info("Copied")  # → "... | app=configure_gpu_power step=backed_up | Copied"
    """
    current = _context_var.get({})
    _context_var.set({**current, **kwargs})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Remove contextual fields; all of them when *keys* is None."""
    if keys is None:
        _context_var.set({})
        return
    current = dict(_context_var.get({}))
    for key in keys:
        current.pop(key, None)
    _context_var.set(current)


@contextlib.contextmanager
def log_context(**kwargs) -> Iterator[None]:
    """Attach fields for the duration of a block, then restore the previous set."""
    token = _context_var.set({**_context_var.get({}), **kwargs})
    try:
        yield
    finally:
        _context_var.reset(token)


def install_excepthook() -> None:
    """Log uncaught exceptions at CRITICAL; Ctrl+C goes to the default hook."""
    def log_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logging.getLogger(__name__).critical(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback),
        )

    sys.excepthook = log_exception


def shutdown() -> None:
    """Flush and close every handler; call at the end of main()."""
    logging.shutdown()
