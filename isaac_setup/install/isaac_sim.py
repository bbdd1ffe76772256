"""Isaac Sim standalone binary installer.

Downloads the release archive into the workspace, extracts it to
``isaacsim-<version>`` and points the ``isaac-sim`` symlink at it.  An
archive already on disk is reused; an existing extraction is re-extracted
only when the operator asks for it.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from isaac_setup.configs.loader import IsaacSimConfig, PreflightConfig
from isaac_setup.errors import CommandFailed, MissingDependency
from isaac_setup.install.base import InstallOutcome, Installer
from isaac_setup.provisioning.preflight import PreflightChecker
from isaac_setup.provisioning.reporter import ConsoleReporter
from isaac_setup.provisioning.summary import InstallationSummary, write_summary
from isaac_setup.system.commands import EXIT_TIMEOUT
from isaac_setup.system.state import SystemState
from src.utils import fs

logger = logging.getLogger(__name__)

LINK_NAME = "isaac-sim"
LAUNCHER = "isaac-sim.sh"
TEST_LAUNCH_TIMEOUT_S = 60


def read_version(install_dir: Path) -> str | None:
    """Contents of the ``VERSION`` file shipped in the release, if any."""
    version_file = Path(install_dir) / "VERSION"
    if not version_file.is_file():
        return None
    return version_file.read_text(encoding="utf-8").strip() or None


class IsaacSimInstaller(Installer):
    """Install the Isaac Sim standalone release.

    Parameters
    ----------
    state : SystemState
        System handle (``runner`` is used for wget and unzip).
    reporter : ConsoleReporter
        Operator output.
    config : IsaacSimConfig
        Version, workspace and download settings.
    preflight_config : PreflightConfig
        OS, architecture and glibc requirements.
    """

    name = "install_isaac_sim"
    title = "Isaac Sim Installation"

    def __init__(
        self,
        state: SystemState,
        reporter: ConsoleReporter,
        config: IsaacSimConfig,
        preflight_config: PreflightConfig,
    ) -> None:
        super().__init__(state, reporter)
        self.config = config
        self.preflight_config = preflight_config
        self.workspace = state.path(config.workspace_dir)

    @property
    def extract_dir(self) -> Path:
        return self.workspace / self.config.extract_dir_name

    @property
    def link_path(self) -> Path:
        return self.workspace / LINK_NAME

    def intro(self) -> list[str]:
        return [
            f"Version:   {self.config.version}",
            f"Workspace: {self.config.workspace_dir}",
            f"Disk:      {self.config.min_disk_gb:.0f} GB recommended",
        ]

    # -- steps --------------------------------------------------------------

    def preflight(self) -> None:
        self.reporter.header("Preflight Checks")
        pf = self.preflight_config
        checker = PreflightChecker(self.state, self.reporter)
        checker.add(lambda: checker.check_os(pf.supported_os))
        checker.add(lambda: checker.check_architecture(pf.architectures))
        checker.add(lambda: checker.check_glibc(pf.min_glibc))
        checker.add(lambda: checker.check_disk_space(
            self.config.workspace_dir, self.config.min_disk_gb,
        ))
        checker.add(lambda: checker.check_tools(required=self.config.required_tools))
        checker.run().raise_for_failures()

    @property
    def archive_path(self) -> Path:
        return self.workspace / self.config.archive_name(self.state.host.architecture())

    def reuse_existing(self) -> bool:
        """True when an extraction exists and the operator keeps it."""
        if not self.extract_dir.exists():
            return False
        self.reporter.info(f"{self.extract_dir.name} already exists")
        if self.state.prompt.confirm("Re-extract (removes the existing directory)?", default=False):
            shutil.rmtree(self.extract_dir)
            return False
        self.reporter.info("Keeping the existing extraction")
        return True

    def download(self, archive: Path) -> Path:
        self.reporter.header("Downloading Isaac Sim")
        if archive.is_file():
            self.reporter.info(f"Archive already present: {archive.name}")
            return archive

        url = self.config.download_url(self.state.host.architecture())
        self.reporter.info(f"Downloading {url}")
        self.state.runner.run(
            ["wget", "-c", "-O", str(archive), url],
            capture=False,
            timeout=None,
            hint="Check network access; re-running resumes the download",
        )
        self.reporter.success(f"Downloaded {archive.name}")
        return archive

    def extract(self, archive: Path) -> None:
        self.reporter.header("Extracting Isaac Sim")
        self.reporter.info(f"Extracting to {self.extract_dir} (this may take a few minutes)...")
        self.state.runner.run(
            ["unzip", "-q", str(archive), "-d", str(self.extract_dir)],
            capture=False,
            timeout=None,
            hint=f"The archive may be corrupt; delete {archive.name} and re-run",
        )
        self.reporter.success("Extraction complete")

    def link(self) -> None:
        fs.symlink_atomic(self.config.extract_dir_name, self.link_path)
        self.reporter.success(f"Symlink {LINK_NAME} -> {self.config.extract_dir_name}")

    def verify(self) -> str | None:
        self.reporter.header("Verifying Installation")
        launcher = self.link_path / LAUNCHER
        if not launcher.exists():
            raise MissingDependency(
                f"Installation incomplete: {launcher} not found",
                hint="Re-run and choose to re-extract the archive",
            )
        self.reporter.success(f"Found {LAUNCHER}")
        version = read_version(self.link_path)
        if version:
            self.reporter.success(f"Isaac Sim version: {version}")
        else:
            self.reporter.warning("VERSION file not found")
        return version

    def cleanup(self, archive: Path) -> None:
        if archive.is_file() and self.state.prompt.confirm(
            f"Remove {archive.name} to save disk space?", default=True,
        ):
            fs.safe_remove(archive)
            self.reporter.success(f"Removed {archive.name}")

    def test_launch(self) -> None:
        """Start the launcher with ``--help``; running into the timeout counts as a pass."""
        if not self.state.prompt.confirm("Test Isaac Sim installation (launches simulator)?", default=True):
            return
        self.reporter.info("Testing Isaac Sim...")
        self.reporter.warning("Simulator window will open. Close it manually to continue.")
        try:
            result = self.state.runner.run(
                [str(self.link_path / LAUNCHER), "--help"],
                check=False,
                timeout=TEST_LAUNCH_TIMEOUT_S,
                cwd=self.link_path,
            )
        except CommandFailed as exc:
            if exc.returncode == EXIT_TIMEOUT:
                logger.info("Launch test hit the %ds timeout", TEST_LAUNCH_TIMEOUT_S)
                self.reporter.info("Test completed (timeout is normal)")
            else:
                self.reporter.warning(f"Launch test did not complete: {exc.message}")
            return
        if result.ok:
            self.reporter.success("Launch test passed")
        else:
            self.reporter.info(f"Test completed (launcher exited with code {result.returncode})")

    def write_info(self, version: str | None) -> Path:
        summary = InstallationSummary("Isaac Sim Installation Information", self.state.clock())
        summary.fact("Version", version or self.config.version)
        summary.fact("Install Directory", self.extract_dir)
        summary.fact("Symlink", self.link_path)
        summary.fact("Architecture", self.state.host.architecture())
        summary.fact("Download URL", self.config.download_url(self.state.host.architecture()))
        summary.section("Usage", [
            f"cd {self.link_path}",
            "./isaac-sim.sh                 # Launch the full app",
            "./python.sh script.py          # Run a standalone Python script",
            "./isaac-sim.selector.sh        # Choose an experience",
        ])
        return write_summary(self.extract_dir / "INSTALLATION_INFO.txt", summary)

    # -- orchestration ------------------------------------------------------

    def install(self) -> InstallOutcome:
        self.preflight()
        fs.ensure_dir(self.workspace)
        archive = self.archive_path
        if not self.reuse_existing():
            self.download(archive)
            self.extract(archive)
        self.link()
        version = self.verify()
        self.cleanup(archive)
        self.test_launch()
        info = self.write_info(version)
        self.reporter.success(f"Isaac Sim installed at {self.link_path}")
        return InstallOutcome(self.extract_dir, version, info)
