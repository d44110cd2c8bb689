"""Exception hierarchy for node provisioning.

Every ProvisioningError is fatal: the procedure stops, prints a diagnostic
to stderr and exits with status 1. The node is left in whatever partial
state it reached; nothing is rolled back.

RebootScheduled is deliberately NOT a ProvisioningError. It ends the
current run after a kernel upgrade; the procedure starts over on the
next boot.
"""

from __future__ import annotations


class ProvisioningError(Exception):
    """Fatal provisioning failure."""
    pass


class UnsupportedPlatformError(ProvisioningError):
    """OS family or release is not supported."""
    pass


class UnsupportedFrameworkError(ProvisioningError):
    """Installed Spark major version is not supported."""
    pass


class UnsupportedRuntimeError(ProvisioningError):
    """RAPIDS runtime selector is not supported."""
    pass


class UnsupportedVersionError(ProvisioningError):
    """Resolved driver/toolkit versions are incomplete or malformed."""
    pass


class SecureBootEnabledError(ProvisioningError):
    """Secure Boot prevents loading unsigned NVIDIA kernel modules."""
    pass


class RetryExhaustedError(ProvisioningError):
    """A retried operation failed on every attempt."""

    def __init__(self, description: str, attempts: int) -> None:
        super().__init__(f"{description} failed after {attempts} attempts")
        self.description = description
        self.attempts = attempts


class InstallationError(ProvisioningError):
    """A non-retried installation step failed."""
    pass


class RebootScheduled(Exception):
    """The node is rebooting; the rest of this run must not execute."""

    def __init__(self, kernel_version: str) -> None:
        super().__init__(f"Rebooting into kernel {kernel_version}")
        self.kernel_version = kernel_version
