"""Debian installer: NVIDIA runfiles on top of the CUDA apt keyring."""

from __future__ import annotations

import logging
import re

from gpu_provisioner.domain.entities.platform import OSFamily
from gpu_provisioner.domain.entities.versions import NVIDIA_BASE_DL_URL
from gpu_provisioner.domain.services.installers.base import DriverInstaller

logger = logging.getLogger(__name__)

CUDA_KEYRING_URL = f"{NVIDIA_BASE_DL_URL}/cuda/repos/ubuntu1804/x86_64/cuda-keyring_1.0-1_all.deb"

_MAIN_COMPONENT_RE = re.compile(r"^Components: main\b", re.MULTILINE)


def enable_contrib(sources: str) -> str:
    """Add contrib to the first "Components: main" stanza of a deb822 file."""
    if re.search(r"^Components:.*\bcontrib\b", sources, re.MULTILINE):
        return sources
    return _MAIN_COMPONENT_RE.sub("Components: main contrib", sources, count=1)


class DebianInstaller(DriverInstaller):
    """Debian 10, 11 and 12."""

    family = OSFamily.DEBIAN

    def install_driver(self) -> None:
        self.install_headers()
        self.enable_contrib_repository()
        self.executor.require(self.packages.update_index, "package index refresh")

        if self.context.platform.major == "10":
            self.executor.require(lambda: self.packages.remove("libglvnd0"), "remove libglvnd0")
            self.executor.require(
                lambda: self.packages.install("ca-certificates-java"),
                "install ca-certificates-java",
            )

        keyring = self.download(CUDA_KEYRING_URL, self.paths.work_dir / "cuda-keyring.deb")
        self.executor.require(lambda: self.packages.install_local(keyring), f"install {keyring.name}")

        runfile = self.download(self.context.driver_url, self.paths.work_dir / "driver.run")
        self.check(
            ["bash", str(runfile), "--silent", "--install-libglvnd"],
            f"NVIDIA driver {self.context.installer_driver_version} runfile",
        )

    def install_toolkit(self) -> None:
        runfile = self.download(self.context.toolkit_url, self.paths.work_dir / "cuda.run")
        self.check(
            ["bash", str(runfile), "--silent", "--toolkit", "--no-opengl-libs"],
            f"CUDA {self.context.versions.toolkit_version} runfile",
        )

    def enable_contrib_repository(self) -> None:
        if self.context.platform.major == "12":
            sources = self.paths.debian_sources
            if sources.exists():
                sources.write_text(enable_contrib(sources.read_text()))
            else:
                logger.warning(f"{sources} not found, relying on add-apt-repository")

        self.executor.require(
            lambda: self.packages.add_repository("contrib"), "enable the contrib component"
        )
