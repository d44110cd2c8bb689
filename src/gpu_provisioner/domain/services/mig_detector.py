"""Detection of MIG (Multi-Instance GPU) partitioning.

"Is there an NVIDIA device" and "is MIG enabled" are separate checks. A
node can carry a GPU whose driver is not installed yet, in which case
nvidia-smi is missing and the node is simply not partitioned.

When every visible GPU reports MIG mode "Enabled", YARN must discover
GPUs through NVIDIA's MIG wrapper scripts, and the image is assumed to
already ship a compatible driver.

References:
    - https://github.com/NVIDIA/spark-rapids-examples/tree/branch-22.10/examples/MIG-Support
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from gpu_provisioner.domain.entities.topology import MIG_SCRIPTS_DIR, AcceleratorTopology
from gpu_provisioner.domain.services.retry_executor import RetryExecutor
from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.ports.outbound import ArtifactFetcherPort, CommandRunnerPort

logger = logging.getLogger(__name__)

NVIDIA_SMI = "/usr/bin/nvidia-smi"
MIG_SCRIPTS_URL = (
    "https://raw.githubusercontent.com/NVIDIA/spark-rapids-examples/branch-22.10/"
    "examples/MIG-Support/yarn-unpatched/scripts"
)
MIG_SCRIPTS = ("nvidia-smi", "mig2gpu.sh")
MIG_ENABLED = "Enabled"

_CAPS_RE = re.compile(r"^\s*(\d+)\s+nvidia-caps\s*$", re.MULTILINE)


def is_partitioned(modes: list[str]) -> bool:
    """True iff every GPU reports exactly the same mode and it is Enabled."""
    return set(modes) == {MIG_ENABLED}


def parse_caps_major(proc_devices: str) -> Optional[int]:
    """Find the character-device major number of nvidia-caps."""
    match = _CAPS_RE.search(proc_devices)
    return int(match.group(1)) if match else None


class MigDetector:
    """Build the AcceleratorTopology of this node."""

    def __init__(
        self,
        runner: CommandRunnerPort,
        fetcher: ArtifactFetcherPort,
        executor: RetryExecutor,
        paths: NodePaths,
    ) -> None:
        self._runner = runner
        self._fetcher = fetcher
        self._executor = executor
        self._paths = paths

    def accelerator_present(self) -> bool:
        """Check the PCI bus for an NVIDIA device."""
        result = self._runner.run(["lspci"])
        return result.ok and "NVIDIA" in result.stdout

    def partition_modes(self) -> list[str]:
        """Current MIG mode of every visible GPU; empty if unknown."""
        result = self._runner.run(
            [NVIDIA_SMI, "--query-gpu=mig.mode.current", "--format=csv,noheader"]
        )
        if not result.ok:
            return []
        return result.lines

    def partition_count(self) -> int:
        result = self._runner.run([NVIDIA_SMI, "-L"])
        if not result.ok:
            return 0
        return sum(1 for line in result.lines if "MIG" in line)

    def caps_major(self) -> int:
        try:
            major = parse_caps_major(self._paths.proc_devices.read_text())
        except OSError as e:
            logger.warning(f"Cannot read {self._paths.proc_devices}: {e}")
            return 0
        return major or 0

    def fetch_mig_scripts(self) -> None:
        """Download the MIG wrapper scripts YARN uses for discovery."""
        target = self._paths.resolve(MIG_SCRIPTS_DIR)
        target.mkdir(parents=True, exist_ok=True)
        target.chmod(0o755)

        for script in MIG_SCRIPTS:
            url = f"{MIG_SCRIPTS_URL}/{script}"
            destination = target / script
            self._executor.require(lambda: self._fetcher.fetch(url, destination), f"download {url}")
            destination.chmod(0o755)

    def detect(self) -> AcceleratorTopology:
        """Detect GPU presence and MIG state; fetch MIG scripts if needed."""
        if not self.accelerator_present():
            logger.info("No NVIDIA device on the PCI bus")
            return AcceleratorTopology.absent()

        modes = self.partition_modes()
        if not is_partitioned(modes):
            logger.info(f"MIG not active (modes: {modes or 'unavailable'})")
            return AcceleratorTopology(present=True)

        topology = AcceleratorTopology(
            present=True,
            partitioned=True,
            partition_count=self.partition_count(),
            device_major_capability=self.caps_major(),
            discovery_tool_path=MIG_SCRIPTS_DIR,
        )
        logger.info(
            f"MIG enabled: {topology.partition_count} instances, "
            f"nvidia-caps major {topology.device_major_capability}"
        )
        self.fetch_mig_scripts()
        return topology
