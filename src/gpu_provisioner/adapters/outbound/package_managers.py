"""PackageManagerPort implementations for apt and dnf.

Each method runs a single command; retrying is up to the caller.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from gpu_provisioner.domain.entities.platform import PlatformIdentity
from gpu_provisioner.ports.outbound import CommandRunnerPort, PackageManagerPort

logger = logging.getLogger(__name__)


class AptPackageManager:
    """apt-get / dpkg, non-interactive."""

    name = "apt"
    ENV = {"DEBIAN_FRONTEND": "noninteractive"}

    def __init__(self, runner: CommandRunnerPort) -> None:
        self._runner = runner

    def _run(self, argv: Sequence[str]) -> bool:
        return self._runner.run(argv, env=self.ENV).ok

    def install(self, *packages: str, no_recommends: bool = False) -> bool:
        argv = ["apt-get", "install", "-y", "-q"]
        if no_recommends:
            argv.append("--no-install-recommends")
        return self._run([*argv, *packages])

    def remove(self, *packages: str) -> bool:
        return self._run(["apt-get", "remove", "-y", *packages])

    def update_index(self) -> bool:
        return self._run(["apt-get", "update"])

    def clean(self) -> bool:
        return self._run(["apt-get", "clean"])

    def add_repository(self, repository: str) -> bool:
        return self._run(["add-apt-repository", "-y", repository])

    def module_install(self, stream: str) -> bool:
        logger.error(f"apt has no module streams (requested {stream})")
        return False

    def install_local(self, package_file: Path) -> bool:
        return self._run(["dpkg", "-i", str(package_file)])

    def is_available(self, package: str) -> bool:
        return self._run(["apt-cache", "show", package])

    def repair(self) -> bool:
        return self._run(["dpkg", "--configure", "-a"])

    def install_command(self, *packages: str) -> list[str]:
        return ["/usr/bin/apt-get", "install", "-y", "-q", *packages]


class DnfPackageManager:
    """dnf, quiet and non-interactive."""

    name = "dnf"

    def __init__(self, runner: CommandRunnerPort) -> None:
        self._runner = runner

    def _run(self, argv: Sequence[str]) -> bool:
        return self._runner.run(argv).ok

    def install(self, *packages: str, no_recommends: bool = False) -> bool:
        argv = ["dnf", "-y", "-q", "install"]
        if no_recommends:
            argv.append("--setopt=install_weak_deps=False")
        return self._run([*argv, *packages])

    def remove(self, *packages: str) -> bool:
        return self._run(["dnf", "-y", "-q", "remove", *packages])

    def update_index(self) -> bool:
        return self._run(["dnf", "-q", "makecache"])

    def clean(self) -> bool:
        return self._run(["dnf", "clean", "all"])

    def add_repository(self, repository: str) -> bool:
        return self._run(["dnf", "config-manager", "--add-repo", repository])

    def module_install(self, stream: str) -> bool:
        return self._run(["dnf", "-y", "-q", "module", "install", stream])

    def install_local(self, package_file: Path) -> bool:
        return self._run(["dnf", "-y", "-q", "install", str(package_file)])

    def is_available(self, package: str) -> bool:
        return self._run(["dnf", "list", package])

    def repair(self) -> bool:
        # rpm transactions are atomic; nothing to finish after a reboot
        return True

    def install_command(self, *packages: str) -> list[str]:
        return ["/usr/bin/dnf", "-y", "-q", "install", *packages]


def package_manager_for(platform: PlatformIdentity, runner: CommandRunnerPort) -> PackageManagerPort:
    """Pick the package manager of the platform's family."""
    if platform.uses_apt:
        return AptPackageManager(runner)
    return DnfPackageManager(runner)
