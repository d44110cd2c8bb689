"""Inbound adapters for the GPU node provisioner.

Provides the command-line entry point run as a cluster initialization action.
"""

from gpu_provisioner.adapters.inbound.cli import main

__all__ = ["main"]
