"""Domain entities for GPU node provisioning.

- PlatformIdentity: detected OS family and release
- VersionTriple / LegacyToolkit: resolved driver, toolkit and library versions
- AcceleratorTopology: GPU presence and MIG state of the node
- ProvisioningContext: immutable settings threaded through every step
"""

from gpu_provisioner.domain.entities.context import (
    MASTER_ROLE,
    SPARK_RUNTIME,
    ProvisioningContext,
)
from gpu_provisioner.domain.entities.platform import (
    SUPPORTED_RELEASES,
    OSFamily,
    PlatformIdentity,
)
from gpu_provisioner.domain.entities.topology import (
    MIG_SCRIPTS_DIR,
    STANDARD_DISCOVERY_PATH,
    AcceleratorTopology,
)
from gpu_provisioner.domain.entities.versions import (
    LEGACY_TOOLKITS,
    LegacyToolkit,
    VersionTriple,
    lookup_legacy,
)

__all__ = [
    # Platform
    "OSFamily",
    "PlatformIdentity",
    "SUPPORTED_RELEASES",
    # Versions
    "VersionTriple",
    "LegacyToolkit",
    "LEGACY_TOOLKITS",
    "lookup_legacy",
    # Topology
    "AcceleratorTopology",
    "MIG_SCRIPTS_DIR",
    "STANDARD_DISCOVERY_PATH",
    # Context
    "ProvisioningContext",
    "MASTER_ROLE",
    "SPARK_RUNTIME",
]
