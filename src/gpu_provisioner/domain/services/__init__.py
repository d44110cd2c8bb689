"""Domain services for GPU node provisioning.

Services implement the provisioning steps:
- VersionResolver: driver/toolkit/library versions and download URLs
- RetryExecutor: fixed-interval bounded retries
- DriverInstaller: per-OS-family NVIDIA driver and CUDA installation
- YarnConfigurator: YARN GPU resource scheduling and isolation
- MigDetector: GPU presence and MIG partitioning
- KernelMaintenance: kernel header sync and kernel upgrade
"""

from gpu_provisioner.domain.services.gpu_agent import GpuAgentInstaller
from gpu_provisioner.domain.services.installers import DriverInstaller, get_installer
from gpu_provisioner.domain.services.kernel_maintenance import KernelMaintenance
from gpu_provisioner.domain.services.mamba import MambaBootstrapper
from gpu_provisioner.domain.services.mig_detector import MigDetector, is_partitioned
from gpu_provisioner.domain.services.preflight import PlatformPreflight
from gpu_provisioner.domain.services.retry_executor import RetryExecutor
from gpu_provisioner.domain.services.spark_rapids import SparkRapidsInstaller
from gpu_provisioner.domain.services.version_resolver import VersionResolver
from gpu_provisioner.domain.services.yarn_configurator import YarnConfigurator

__all__ = [
    "DriverInstaller",
    "GpuAgentInstaller",
    "KernelMaintenance",
    "MambaBootstrapper",
    "MigDetector",
    "PlatformPreflight",
    "RetryExecutor",
    "SparkRapidsInstaller",
    "VersionResolver",
    "YarnConfigurator",
    "get_installer",
    "is_partitioned",
]
