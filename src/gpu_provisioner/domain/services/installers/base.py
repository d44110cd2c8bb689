"""Base class for OS-family NVIDIA driver and CUDA toolkit installers."""

from __future__ import annotations

import logging
from abc import ABCMeta, abstractmethod
from pathlib import Path
from typing import Sequence

from gpu_provisioner.domain.entities.context import ProvisioningContext
from gpu_provisioner.domain.entities.platform import OSFamily
from gpu_provisioner.domain.exceptions import InstallationError
from gpu_provisioner.domain.services.kernel_maintenance import KernelMaintenance
from gpu_provisioner.domain.services.retry_executor import RetryExecutor
from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.ports.outbound import (
    ArtifactFetcherPort,
    CommandRunnerPort,
    PackageManagerPort,
)

logger = logging.getLogger(__name__)


class DriverInstaller(metaclass=ABCMeta):
    """Install the NVIDIA driver and CUDA toolkit on one OS family.

    Subclasses implement the two install steps. ``install()`` is the
    fixed sequence every family goes through.
    """

    family: OSFamily

    def __init__(
        self,
        context: ProvisioningContext,
        runner: CommandRunnerPort,
        packages: PackageManagerPort,
        fetcher: ArtifactFetcherPort,
        executor: RetryExecutor,
        kernel: KernelMaintenance,
        paths: NodePaths,
    ) -> None:
        self.context = context
        self.runner = runner
        self.packages = packages
        self.fetcher = fetcher
        self.executor = executor
        self.kernel = kernel
        self.paths = paths

    @abstractmethod
    def install_driver(self) -> None:
        """Install the kernel driver."""
        pass

    @abstractmethod
    def install_toolkit(self) -> None:
        """Install the CUDA toolkit."""
        pass

    def register_header_unit(self) -> None:
        """Keep kernel headers current across kernel updates."""
        self.kernel.register_header_sync()

    def install(self) -> None:
        """Install driver and toolkit, then refresh the linker cache.

        Raises:
            RetryExhaustedError: A retried step never succeeded.
            InstallationError: A non-retried step failed.
        """
        logger.info(
            f"Installing NVIDIA driver {self.context.versions.driver_version} and "
            f"CUDA {self.context.versions.toolkit_version} on {self.context.platform}"
        )
        self.install_driver()
        self.install_toolkit()
        self.register_header_unit()
        self.refresh_linker_cache()
        logger.info("NVIDIA GPU driver provided by NVIDIA was installed successfully")

    def refresh_linker_cache(self) -> None:
        self.check(["ldconfig"], "linker cache refresh")

    def install_headers(self) -> None:
        release = self.kernel.running_kernel()
        package = f"linux-headers-{release}"
        self.executor.require(lambda: self.packages.install(package), f"install {package}")

    def download(self, url: str, destination: Path) -> Path:
        """Fetch an artifact with retries."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        self.executor.require(lambda: self.fetcher.fetch(url, destination), f"download {url}")
        return destination

    def check(self, argv: Sequence[str], step: str) -> None:
        """Run a command once; failure is fatal.

        Raises:
            InstallationError: If the command exits non-zero.
        """
        result = self.runner.run(argv)
        if not result.ok:
            raise InstallationError(
                f"{step} failed with exit code {result.returncode}: {result.stderr.strip()}"
            )
