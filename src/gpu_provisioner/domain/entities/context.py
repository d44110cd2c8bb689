"""Provisioning context: every resolved setting of one run.

Built once by the VersionResolver and then passed explicitly to every
component. Nothing reads process-wide state after resolution.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from gpu_provisioner.domain.entities.platform import PlatformIdentity
from gpu_provisioner.domain.entities.versions import LegacyToolkit, VersionTriple

MASTER_ROLE = "Master"
SPARK_RUNTIME = "SPARK"


@dataclass(frozen=True)
class ProvisioningContext:
    """Immutable result of version and flag resolution."""
    platform: PlatformIdentity
    versions: VersionTriple
    framework_version: str             # Spark "major.minor", e.g. "3.3"
    installer_driver_version: str      # driver used for the Debian runfile
    driver_url: str
    toolkit_url: str
    legacy: Optional[LegacyToolkit] = None
    runtime: str = SPARK_RUNTIME
    role: str = ""
    master: str = ""
    install_gpu_agent: bool = False

    @property
    def is_master(self) -> bool:
        return self.role == MASTER_ROLE

    @property
    def framework_major(self) -> str:
        return self.framework_version.split(".")[0]
