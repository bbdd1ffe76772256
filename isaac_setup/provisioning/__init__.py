"""
Provisioning workflows.

Preflight, policy writers, service lifecycle, verification, and the two
provisioners built from them (CPU power policy and GPU power daemon).
"""

from isaac_setup.provisioning.cpu_power import CpuPowerProvisioner
from isaac_setup.provisioning.gpu_power import GpuPowerProvisioner
from isaac_setup.provisioning.workflow import ProvisionOutcome, ProvisionState

__all__ = [
    "CpuPowerProvisioner",
    "GpuPowerProvisioner",
    "ProvisionOutcome",
    "ProvisionState",
]
