"""Shared plumbing for the provisioning and install entry points.

Every script parses the same base flags, configures logging from the
YAML ``logging`` section (flags win), builds a live :class:`SystemState`
and hands a workflow to :func:`execute`, which owns the mapping from
outcome to process exit code:

    0    success, or the operator declined to proceed
    1    fatal provisioning or configuration error
    130  interrupted (Ctrl+C or SIGTERM)
    N    a failed external command's own exit code
"""

from __future__ import annotations

import argparse
import logging
import signal
import time
from typing import Any, Callable, Protocol

from isaac_setup.configs.loader import ConfigError, SetupConfig, load_config
from isaac_setup.errors import OperatorCancelled, ProvisionError
from isaac_setup.provisioning.prompts import AssumeYes, ConsolePrompter
from isaac_setup.provisioning.reporter import ConsoleReporter
from isaac_setup.system.state import SystemState
from src.utils.logging_config import install_excepthook, setup_logging, shutdown

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


class Runnable(Protocol):
    title: str

    def run(self, confirm: bool = True) -> Any: ...


Factory = Callable[[SystemState, ConsoleReporter, SetupConfig], Runnable]


def build_parser(description: str, epilog: str | None = None) -> argparse.ArgumentParser:
    """Argument parser with the flags every entry point shares."""
    parser = argparse.ArgumentParser(
        description=description,
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config", "-c", default=None,
        help="Path to setup.yaml (default: bundled config)",
    )
    parser.add_argument(
        "--yes", "-y", action="store_true",
        help="Answer yes to every confirmation (non-interactive)",
    )
    parser.add_argument(
        "--log-level", default=None,
        help="Console/file log level (overrides config)",
    )
    parser.add_argument(
        "--log-file", default=None,
        help="Also write logs to this file (overrides config)",
    )
    return parser


def format_elapsed(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def _raise_interrupt(signum: int, frame: Any) -> None:
    raise KeyboardInterrupt(f"signal {signum}")


def install_signal_handlers() -> None:
    """Treat SIGTERM like Ctrl+C so both abort through the same path."""
    signal.signal(signal.SIGTERM, _raise_interrupt)


def execute(runnable: Runnable, reporter: ConsoleReporter, confirm: bool = True) -> int:
    """Run *runnable* and translate its outcome into an exit code."""
    started = time.monotonic()
    try:
        runnable.run(confirm=confirm)
    except ProvisionError as exc:
        if isinstance(exc, OperatorCancelled) and exc.exit_code == EXIT_OK:
            reporter.info(f"{exc.message}; nothing was changed")
            return EXIT_OK
        reporter.error(exc.message)
        if exc.hint:
            reporter.detail(f"Hint: {exc.hint}")
        logger.error("%s failed: %s", runnable.title, exc.message)
        return exc.exit_code
    except KeyboardInterrupt:
        reporter.warning(f"{runnable.title} interrupted; completed steps are kept")
        logger.warning("%s interrupted", runnable.title)
        return EXIT_INTERRUPTED
    except Exception:
        logger.exception("Unexpected error during %s", runnable.title)
        reporter.error(f"Unexpected error during {runnable.title} (see log for details)")
        return EXIT_FAILURE

    reporter.header(f"{runnable.title} Complete")
    reporter.success(f"Elapsed: {format_elapsed(time.monotonic() - started)}")
    return EXIT_OK


def main_for(
    app: str,
    args: argparse.Namespace,
    factory: Factory,
    reporter: ConsoleReporter | None = None,
) -> int:
    """Load config, set up logging and run the workflow *factory* builds.

    Parameters
    ----------
    app : str
        Logged as the ``app`` context field.
    args : argparse.Namespace
        Parsed base flags (see :func:`build_parser`).
    factory : Factory
        ``(state, reporter, config) -> workflow``.
    reporter : ConsoleReporter, optional
        Defaults to one writing to stdout.
    """
    reporter = reporter or ConsoleReporter()
    try:
        config = load_config(args.config)
    except (ConfigError, FileNotFoundError) as exc:
        reporter.error(f"Configuration error: {exc}")
        return EXIT_FAILURE

    try:
        setup_logging(
            log_level=args.log_level or config.logging.level,
            log_file=args.log_file or config.logging.file,
            json=config.logging.json,
            max_bytes=config.logging.max_bytes,
            backup_count=config.logging.backup_count,
            context={"app": app},
        )
    except (ValueError, OSError) as exc:
        reporter.error(f"Logging setup failed: {exc}")
        return EXIT_FAILURE
    install_excepthook()
    install_signal_handlers()

    prompt = AssumeYes() if args.yes else ConsolePrompter()
    state = SystemState.live(prompt)
    try:
        return execute(factory(state, reporter, config), reporter)
    finally:
        shutdown()
