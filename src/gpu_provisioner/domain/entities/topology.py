"""Accelerator topology of a single node.

Computed once per node. In MIG (partitioned) mode, YARN discovers GPUs
through a node-local wrapper script bundle instead of the stock
nvidia-smi binary, and the NVIDIA driver is assumed to be pre-installed.
"""

from __future__ import annotations

from dataclasses import dataclass

STANDARD_DISCOVERY_PATH = "/usr/bin"
MIG_SCRIPTS_DIR = "/usr/local/yarn-mig-scripts/"


@dataclass(frozen=True)
class AcceleratorTopology:
    """GPU presence and MIG partitioning state."""
    present: bool
    partitioned: bool = False
    partition_count: int = 0
    device_major_capability: int = 0    # major number of the nvidia-caps device class
    discovery_tool_path: str = STANDARD_DISCOVERY_PATH

    @classmethod
    def absent(cls) -> AcceleratorTopology:
        """Topology of a node without an NVIDIA device."""
        return cls(present=False)

    @property
    def requires_driver_install(self) -> bool:
        return self.present and not self.partitioned
