"""OS-family driver installers."""

from __future__ import annotations

from gpu_provisioner.domain.entities.context import ProvisioningContext
from gpu_provisioner.domain.entities.platform import OSFamily
from gpu_provisioner.domain.exceptions import UnsupportedPlatformError
from gpu_provisioner.domain.services.installers.base import DriverInstaller
from gpu_provisioner.domain.services.installers.debian import DebianInstaller
from gpu_provisioner.domain.services.installers.rocky import RockyInstaller
from gpu_provisioner.domain.services.installers.ubuntu import UbuntuInstaller
from gpu_provisioner.domain.services.kernel_maintenance import KernelMaintenance
from gpu_provisioner.domain.services.retry_executor import RetryExecutor
from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.ports.outbound import (
    ArtifactFetcherPort,
    CommandRunnerPort,
    PackageManagerPort,
)

INSTALLERS: dict[OSFamily, type[DriverInstaller]] = {
    OSFamily.DEBIAN: DebianInstaller,
    OSFamily.UBUNTU: UbuntuInstaller,
    OSFamily.ROCKY: RockyInstaller,
}


def get_installer(
    context: ProvisioningContext,
    runner: CommandRunnerPort,
    packages: PackageManagerPort,
    fetcher: ArtifactFetcherPort,
    executor: RetryExecutor,
    kernel: KernelMaintenance,
    paths: NodePaths,
) -> DriverInstaller:
    """Pick the installer for the context's OS family.

    Raises:
        UnsupportedPlatformError: If no installer handles the family.
    """
    installer_class = INSTALLERS.get(context.platform.family)
    if installer_class is None:
        raise UnsupportedPlatformError(f"Unsupported OS: '{context.platform.family}'")
    return installer_class(context, runner, packages, fetcher, executor, kernel, paths)


__all__ = [
    "DebianInstaller",
    "DriverInstaller",
    "INSTALLERS",
    "RockyInstaller",
    "UbuntuInstaller",
    "get_installer",
]
