"""Application layer for the GPU node provisioner.

Sequences domain services into a provisioning run.
"""

from gpu_provisioner.application.provisioner import NodeProvisioner, ProvisioningResult

__all__ = [
    "NodeProvisioner",
    "ProvisioningResult",
]
