#!/usr/bin/env python3
"""Register and start the NVIDIA dynamic boost daemon (nvidia-powerd).

Backs up the existing unit and D-Bus policy, recreates the daemon's log
directory, installs a hardened systemd unit and checks that the GPU
power cap reaches the configured threshold.

Usage::

    sudo python -m isaac_setup.scripts.configure_gpu_power
    sudo isaac-configure-gpu-power --config my_setup.yaml --yes
"""

from __future__ import annotations

import sys

from isaac_setup.cli import build_parser, main_for
from isaac_setup.provisioning.gpu_power import GpuPowerProvisioner


def main() -> None:
    parser = build_parser(
        "Configure the nvidia-powerd GPU power daemon",
        epilog="Must be run as root.",
    )
    args = parser.parse_args()
    sys.exit(main_for(
        "configure_gpu_power",
        args,
        lambda state, reporter, cfg: GpuPowerProvisioner(
            state, reporter, cfg.gpu_power, cfg.preflight,
        ),
    ))


if __name__ == "__main__":
    main()
