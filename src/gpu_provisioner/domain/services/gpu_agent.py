"""Google Cloud GPU monitoring agent.

Reports GPU and GPU memory utilization to Cloud Monitoring. Installed
only when the ``install-gpu-agent`` metadata flag is true.

References:
    - https://github.com/GoogleCloudPlatform/compute-gpu-monitoring
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from gpu_provisioner.domain.entities.platform import PlatformIdentity
from gpu_provisioner.domain.exceptions import InstallationError
from gpu_provisioner.domain.services.retry_executor import RetryExecutor
from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.ports.outbound import (
    CommandRunnerPort,
    PackageManagerPort,
    SupervisorPort,
)

logger = logging.getLogger(__name__)

AGENT_REPO_URL = "https://github.com/GoogleCloudPlatform/compute-gpu-monitoring.git"
AGENT_UNIT = "google_gpu_monitoring_agent_venv.service"


class GpuAgentInstaller:
    """Clone the agent, build its virtualenv and start its service."""

    def __init__(
        self,
        platform: PlatformIdentity,
        runner: CommandRunnerPort,
        packages: PackageManagerPort,
        executor: RetryExecutor,
        supervisor: SupervisorPort,
        paths: NodePaths,
    ) -> None:
        self._platform = platform
        self._runner = runner
        self._packages = packages
        self._executor = executor
        self._supervisor = supervisor
        self._paths = paths

    @property
    def checkout(self) -> Path:
        return self._paths.gpu_agent_root / "compute-gpu-monitoring"

    def download(self) -> None:
        self._executor.require(lambda: self._packages.install("git"), "install git")

        root = self._paths.gpu_agent_root
        root.mkdir(parents=True, exist_ok=True)
        root.chmod(0o777)
        if self.checkout.exists():
            logger.info(f"{self.checkout} already cloned")
            return
        self._executor.require_command(self._runner, ["git", "clone", AGENT_REPO_URL, str(self.checkout)])

    def install_dependencies(self) -> None:
        if self._platform.uses_apt:
            self._executor.require(lambda: self._packages.install("python3-venv"), "install python3-venv")

        linux_dir = self.checkout / "linux"
        result = self._runner.run(["python3", "-m", "venv", "venv"], cwd=linux_dir)
        if not result.ok:
            raise InstallationError(f"Failed to create the agent virtualenv: {result.stderr.strip()}")

        pip = str(linux_dir / "venv" / "bin" / "pip")
        self._executor.require_command(self._runner, [pip, "install", "wheel"], cwd=linux_dir)
        self._executor.require_command(self._runner, [pip, "install", "-Ur", "requirements.txt"], cwd=linux_dir)

    def start_service(self) -> None:
        source = self.checkout / "linux" / "systemd" / AGENT_UNIT
        unit_dir = self._paths.systemd_lib_dir
        unit_dir.mkdir(parents=True, exist_ok=True)
        unit_file = unit_dir / AGENT_UNIT
        shutil.copy(source, unit_file)

        if not self._supervisor.enable_unit_file(unit_file):
            raise InstallationError(f"Failed to enable {AGENT_UNIT}")

    def install(self) -> None:
        """Deploy the agent.

        Raises:
            RetryExhaustedError: A download or package step never succeeded.
            InstallationError: The virtualenv or service setup failed.
        """
        self.download()
        self.install_dependencies()
        self.start_service()
        logger.info("GPU metrics agent successfully deployed.")
