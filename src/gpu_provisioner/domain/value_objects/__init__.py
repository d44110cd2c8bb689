"""Value objects for GPU node provisioning."""

from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.domain.value_objects.retry_policy import RetryPolicy
from gpu_provisioner.domain.value_objects.systemd_unit import SystemdUnit

__all__ = [
    "NodePaths",
    "RetryPolicy",
    "SystemdUnit",
]
