"""Ubuntu installer: CUDA local repository package plus apt."""

from __future__ import annotations

import logging
import shutil

from gpu_provisioner.domain.entities.platform import OSFamily
from gpu_provisioner.domain.entities.versions import NVIDIA_BASE_DL_URL
from gpu_provisioner.domain.exceptions import InstallationError
from gpu_provisioner.domain.services.installers.base import DriverInstaller

logger = logging.getLogger(__name__)

PIN_FILE = "cuda-repository-pin-600"


class UbuntuInstaller(DriverInstaller):
    """Ubuntu 18.04, 20.04 and 22.04."""

    family = OSFamily.UBUNTU

    @property
    def repo_release(self) -> str:
        """NVIDIA repository release name, e.g. "ubuntu2004"."""
        return f"ubuntu{self.context.platform.major}04"

    @property
    def pin_url(self) -> str:
        release = self.repo_release
        return f"{NVIDIA_BASE_DL_URL}/cuda/repos/{release}/x86_64/cuda-{release}.pin"

    @property
    def local_installer(self) -> str:
        versions = self.context.versions
        return (
            f"cuda-repo-{self.repo_release}-{versions.toolkit_dashed}-local_"
            f"{versions.toolkit_version}-{versions.driver_version}-1_amd64.deb"
        )

    def install_driver(self) -> None:
        versions = self.context.versions
        self.install_headers()

        self.download(self.pin_url, self.paths.apt_preferences_dir / PIN_FILE)
        local_deb = self.download(
            f"{NVIDIA_BASE_DL_URL}/cuda/{versions.toolkit_version}/local_installers/{self.local_installer}",
            self.paths.work_dir / "local-installer.deb",
        )
        self.executor.require(
            lambda: self.packages.install_local(local_deb), f"install {self.local_installer}"
        )
        self.install_repo_keyring()

        self.executor.require(self.packages.update_index, "package index refresh")
        package = f"cuda-drivers-{versions.driver_branch}"
        self.executor.require(
            lambda: self.packages.install(package, no_recommends=True), f"install {package}"
        )

    def install_toolkit(self) -> None:
        package = f"cuda-toolkit-{self.context.versions.toolkit_dashed}"
        self.executor.require(
            lambda: self.packages.install(package, no_recommends=True), f"install {package}"
        )

    def install_repo_keyring(self) -> None:
        """Copy the local repository's signing key into the apt keyring dir."""
        repo_dir = self.paths.cuda_repo_root / (
            f"cuda-repo-{self.repo_release}-{self.context.versions.toolkit_dashed}-local"
        )
        keyrings = sorted(repo_dir.glob("cuda-*-keyring.gpg"))
        if not keyrings:
            raise InstallationError(f"No CUDA repository keyring found in {repo_dir}")

        self.paths.keyring_dir.mkdir(parents=True, exist_ok=True)
        for keyring in keyrings:
            shutil.copy(keyring, self.paths.keyring_dir / keyring.name)
            logger.debug(f"Installed keyring {keyring.name}")
