"""Platform detection and preflight checks.

Runs before anything touches the node. An unsupported distribution or
release, or Secure Boot being on (unsigned NVIDIA modules would not
load), stops the procedure.
"""

from __future__ import annotations

import logging

from gpu_provisioner.domain.entities.platform import (
    SUPPORTED_RELEASES,
    OSFamily,
    PlatformIdentity,
)
from gpu_provisioner.domain.exceptions import (
    SecureBootEnabledError,
    UnsupportedPlatformError,
)
from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.ports.outbound import CommandRunnerPort

logger = logging.getLogger(__name__)

BUSTER_BACKPORTS = "deb.debian.org/debian buster-backports"
ARCHIVED_BUSTER_BACKPORTS = "archive.debian.org/debian buster-backports"


class PlatformPreflight:
    """Detect the OS and verify it can be provisioned."""

    def __init__(self, runner: CommandRunnerPort, paths: NodePaths) -> None:
        self._runner = runner
        self._apt_sources_list = paths.apt_sources_list

    def detect_platform(self) -> PlatformIdentity:
        """Detect the distribution via lsb_release.

        Raises:
            UnsupportedPlatformError: If the distribution is unknown.
        """
        distributor = self._runner.run(["lsb_release", "-is"]).stdout.strip().lower()
        release = self._runner.run(["lsb_release", "-rs"]).stdout.strip()

        try:
            family = OSFamily(distributor)
        except ValueError:
            raise UnsupportedPlatformError(f"Unsupported OS: '{distributor}'") from None

        platform = PlatformIdentity(family=family, release=release)
        logger.info(f"Detected platform {platform}")
        return platform

    def secure_boot_enabled(self) -> bool:
        result = self._runner.run(["mokutil", "--sb-state"])
        if not result.ok:
            logger.warning("mokutil unavailable, assuming Secure Boot is disabled")
            return False
        # "SecureBoot enabled"
        return result.stdout.split()[1:2] == ["enabled"]

    def check(self, platform: PlatformIdentity) -> None:
        """Verify the release is supported and Secure Boot is off.

        Raises:
            UnsupportedPlatformError: Release not supported.
            SecureBootEnabledError: Secure Boot is enabled.
        """
        if not platform.is_supported_release:
            supported = ", ".join(sorted(SUPPORTED_RELEASES[platform.family]))
            raise UnsupportedPlatformError(
                f"The {platform.family.value.capitalize()} version ({platform.major}) is not "
                f"supported. Supported versions: {supported}"
            )

        if self.secure_boot_enabled():
            raise SecureBootEnabledError(
                "Secure Boot is enabled. Please disable Secure Boot while creating the cluster."
            )

    def repair_package_sources(self, platform: PlatformIdentity) -> bool:
        """Point Debian 10 backports at the archive mirror.

        Returns:
            True if the sources list was changed.
        """
        if platform.family is not OSFamily.DEBIAN or platform.major != "10":
            return False
        if not self._apt_sources_list.exists():
            return False

        content = self._apt_sources_list.read_text()
        if BUSTER_BACKPORTS not in content:
            return False

        self._apt_sources_list.write_text(content.replace(BUSTER_BACKPORTS, ARCHIVED_BUSTER_BACKPORTS))
        logger.info(f"Switched buster-backports to archive.debian.org in {self._apt_sources_list}")
        return True
