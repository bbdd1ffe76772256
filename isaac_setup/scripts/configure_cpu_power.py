#!/usr/bin/env python3
"""Install TLP and apply the workstation CPU power policy.

Installs the TLP packages, masks conflicting power managers, writes
``/etc/tlp.conf`` (backing up the previous file) and starts the service.
Re-running is safe: the policy is rewritten with the same content and
every earlier backup is kept.

Usage::

    sudo python -m isaac_setup.scripts.configure_cpu_power
    sudo isaac-configure-cpu-power --yes --log-level INFO
"""

from __future__ import annotations

import sys

from isaac_setup.cli import build_parser, main_for
from isaac_setup.provisioning.cpu_power import CpuPowerProvisioner


def main() -> None:
    parser = build_parser(
        "Configure TLP CPU power management",
        epilog="Must be run as root.",
    )
    args = parser.parse_args()
    sys.exit(main_for(
        "configure_cpu_power",
        args,
        lambda state, reporter, cfg: CpuPowerProvisioner(
            state, reporter, cfg.cpu_power, cfg.preflight,
        ),
    ))


if __name__ == "__main__":
    main()
