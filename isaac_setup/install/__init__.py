"""Isaac Sim and Isaac Lab installers."""

from isaac_setup.install.isaac_lab import IsaacLabInstaller
from isaac_setup.install.isaac_sim import IsaacSimInstaller

__all__ = ["IsaacLabInstaller", "IsaacSimInstaller"]
