"""
Isaac Setup Package.

Provisioning and installation tooling for a Linux robotics-simulation
workstation: CPU power policy (TLP), GPU dynamic boost daemon
(nvidia-powerd), and the Isaac Sim / Isaac Lab installers.

Subpackages:
    system: Capability adapters (commands, services, packages, bus, GPU, host)
    provisioning: Preflight, policy writers, service lifecycle, workflows
    install: Isaac Sim and Isaac Lab installers
    configs: Provisioning configuration loading and validation
    scripts: Command-line entry points
"""

__version__ = "0.3.0"

__all__ = ["system", "provisioning", "install", "configs", "scripts"]
