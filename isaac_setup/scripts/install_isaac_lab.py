#!/usr/bin/env python3
"""Install Isaac Lab from source on top of an Isaac Sim install.

Run ``isaac-install-sim`` first; this script links the Isaac Sim
directory into the Isaac Lab checkout.

Usage::

    python -m isaac_setup.scripts.install_isaac_lab
    isaac-install-lab --yes --log-file ~/isaac_lab_install.log
"""

from __future__ import annotations

import sys

from isaac_setup.cli import build_parser, main_for
from isaac_setup.install.isaac_lab import IsaacLabInstaller


def main() -> None:
    parser = build_parser("Install Isaac Lab (source + uv environment)")
    args = parser.parse_args()
    sys.exit(main_for(
        "install_isaac_lab",
        args,
        lambda state, reporter, cfg: IsaacLabInstaller(
            state, reporter, cfg.isaac_lab, cfg.isaac_sim,
        ),
    ))


if __name__ == "__main__":
    main()
