"""Outbound adapters - Implementations of outbound port interfaces.

Real adapters drive the node (subprocess, systemctl, package managers,
HTTP); the mock host adapters keep everything in memory for tests.
"""

from gpu_provisioner.adapters.outbound.gce_metadata import GceMetadata
from gpu_provisioner.adapters.outbound.hadoop_config import HadoopConfigStore
from gpu_provisioner.adapters.outbound.http_fetcher import HttpFetcher
from gpu_provisioner.adapters.outbound.mock_host import (
    MockCommandRunner,
    MockFetcher,
    MockMetadata,
    MockPackageManager,
    MockSupervisor,
)
from gpu_provisioner.adapters.outbound.package_managers import (
    AptPackageManager,
    DnfPackageManager,
    package_manager_for,
)
from gpu_provisioner.adapters.outbound.subprocess_runner import SubprocessRunner
from gpu_provisioner.adapters.outbound.systemd import SystemdSupervisor

__all__ = [
    # Node
    "AptPackageManager",
    "DnfPackageManager",
    "GceMetadata",
    "HadoopConfigStore",
    "HttpFetcher",
    "SubprocessRunner",
    "SystemdSupervisor",
    "package_manager_for",
    # Mock host
    "MockCommandRunner",
    "MockFetcher",
    "MockMetadata",
    "MockPackageManager",
    "MockSupervisor",
]
