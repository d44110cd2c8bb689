"""Rocky Linux installer: NVIDIA dnf repository and driver module streams."""

from __future__ import annotations

from gpu_provisioner.domain.entities.platform import OSFamily
from gpu_provisioner.domain.entities.versions import NVIDIA_BASE_DL_URL
from gpu_provisioner.domain.services.installers.base import DriverInstaller


class RockyInstaller(DriverInstaller):
    """Rocky 8 and 9.

    Packages come prebuilt for the running kernel, so no header sync
    unit is registered.
    """

    family = OSFamily.ROCKY

    @property
    def repo_url(self) -> str:
        rhel = f"rhel{self.context.platform.major}"
        return f"{NVIDIA_BASE_DL_URL}/cuda/repos/{rhel}/x86_64/cuda-{rhel}.repo"

    def install_driver(self) -> None:
        stream = f"nvidia-driver:{self.context.versions.driver_branch}"
        self.executor.require(lambda: self.packages.add_repository(self.repo_url), f"add repo {self.repo_url}")
        self.executor.require(self.packages.clean, "dnf clean all")
        self.executor.require(lambda: self.packages.module_install(stream), f"module install {stream}")

    def install_toolkit(self) -> None:
        package = f"cuda-toolkit-{self.context.versions.toolkit_dashed}"
        self.executor.require(lambda: self.packages.install(package), f"install {package}")
        self.check(["modprobe", "nvidia"], "loading the nvidia kernel module")

    def register_header_unit(self) -> None:
        pass
