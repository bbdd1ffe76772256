#!/usr/bin/env python3
"""Download and install the Isaac Sim standalone release.

Usage::

    python -m isaac_setup.scripts.install_isaac_sim
    isaac-install-sim --yes
"""

from __future__ import annotations

import sys

from isaac_setup.cli import build_parser, main_for
from isaac_setup.install.isaac_sim import IsaacSimInstaller


def main() -> None:
    parser = build_parser("Install Isaac Sim (standalone binary)")
    args = parser.parse_args()
    sys.exit(main_for(
        "install_isaac_sim",
        args,
        lambda state, reporter, cfg: IsaacSimInstaller(
            state, reporter, cfg.isaac_sim, cfg.preflight,
        ),
    ))


if __name__ == "__main__":
    main()
