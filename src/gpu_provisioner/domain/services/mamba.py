"""Mambaforge conda base for GPU Python workloads."""

from __future__ import annotations

import hashlib
import logging
import shutil
from pathlib import Path

from gpu_provisioner.domain.entities.platform import PlatformIdentity
from gpu_provisioner.domain.exceptions import InstallationError
from gpu_provisioner.domain.services.retry_executor import RetryExecutor
from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.ports.outbound import (
    ArtifactFetcherPort,
    CommandRunnerPort,
    PackageManagerPort,
)

logger = logging.getLogger(__name__)

MINIFORGE_VERSION = "23.1.0-1"
MINIFORGE_SHA256 = "cba9a744454039944480871ed30d89e4e51a944a579b461dd9af60ea96560886"
MINIFORGE_URL = (
    "https://github.com/conda-forge/miniforge/releases/download/"
    f"{MINIFORGE_VERSION}/Mambaforge-{MINIFORGE_VERSION}-Linux-x86_64.sh"
)


def sha256sum(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


class MambaBootstrapper:
    """Install a fresh Mambaforge prefix."""

    def __init__(
        self,
        platform: PlatformIdentity,
        runner: CommandRunnerPort,
        packages: PackageManagerPort,
        fetcher: ArtifactFetcherPort,
        executor: RetryExecutor,
        paths: NodePaths,
        expected_sha256: str = MINIFORGE_SHA256,
    ) -> None:
        self._platform = platform
        self._runner = runner
        self._packages = packages
        self._fetcher = fetcher
        self._executor = executor
        self._paths = paths
        self._expected_sha256 = expected_sha256

    def download_installer(self) -> Path:
        """Download and verify the Mambaforge installer.

        Raises:
            RetryExhaustedError: The download never succeeded.
            InstallationError: The checksum does not match.
        """
        installer = self._paths.work_dir / "miniforge.sh"
        installer.parent.mkdir(parents=True, exist_ok=True)
        self._executor.require(lambda: self._fetcher.fetch(MINIFORGE_URL, installer), f"download {MINIFORGE_URL}")

        actual = sha256sum(installer)
        if actual != self._expected_sha256:
            raise InstallationError(
                f"Checksum mismatch for {installer.name}: expected {self._expected_sha256}, got {actual}"
            )
        return installer

    def install(self) -> None:
        prefix = self._paths.mamba_prefix
        if self._platform.uses_apt:
            self._executor.require(lambda: self._packages.install("libarchive13"), "install libarchive13")

        if prefix.exists():
            logger.info(f"Removing previous installation at {prefix}")
            shutil.rmtree(prefix)

        installer = self.download_installer()
        result = self._runner.run(["bash", str(installer), "-b", "-p", str(prefix)], env={"HOME": "/root"})
        if not result.ok:
            raise InstallationError(f"Mambaforge installer failed: {result.stderr.strip()}")

        conda = str(prefix / "bin" / "conda")
        self._executor.require_command(self._runner, [conda, "update", "--yes", "-n", "base", "-c", "defaults", "conda"])
        result = self._runner.run([conda, "config", "--set", "always_yes", "yes", "--set", "changeps1", "no"])
        if not result.ok:
            raise InstallationError(f"conda config failed: {result.stderr.strip()}")
        self._executor.require_command(self._runner, [conda, "install", "mamba", "-c", "conda-forge"])
        logger.info(f"Mambaforge {MINIFORGE_VERSION} installed at {prefix}")
