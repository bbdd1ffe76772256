"""Shared low-level utilities for the isaac_setup provisioning tools.

Architecture layers (strict one-way dependency):
    isaac_setup/scripts/ → isaac_setup/{provisioning,install}/ → isaac_setup/system/ → src/utils/

Key invariants:
    - Every file write is atomic (temp file + rename in the same directory)
    - Backups never overwrite an earlier backup
    - YAML-only configs
"""

__version__ = "0.3.0"
