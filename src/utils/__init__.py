"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Config validation (validators)
    - Atomic I/O, backups and symlinks (fs)
    - Unified logging (logging_config)

No module in utils/ may import from upper layers (isaac_setup.*).

Convenience imports:
    from src.utils import fs, validators
    from src.utils.logging_config import setup_logging, get_logger
"""

# Re-export commonly used modules for convenience
from . import fs
from . import logging_config
from . import validators

# Common functions for direct import
from .logging_config import get_logger, log_context, push_context, setup_logging

__all__ = [
    # Modules
    'fs',
    'logging_config',
    'validators',
    # Direct exports
    'get_logger',
    'log_context',
    'push_context',
    'setup_logging',
]
