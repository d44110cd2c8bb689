"""Outbound ports - External collaborators of the provisioning core.

The core never talks to the operating system directly. Package managers,
the metadata service, Hadoop configuration files, systemd and the content
distribution network are all reached through these interfaces.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence

from gpu_provisioner.domain.exceptions import ProvisioningError
from gpu_provisioner.domain.value_objects.systemd_unit import SystemdUnit


# =============================================================================
# Command Runner Port
# =============================================================================


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command execution."""
    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def lines(self) -> list[str]:
        """Non-empty stdout lines, stripped."""
        return [line.strip() for line in self.stdout.splitlines() if line.strip()]


class CommandRunnerPort(Protocol):
    """Protocol for running a single external command.

    A missing executable must be reported as a failed CommandResult
    (returncode 127), never as an exception.
    """

    @abstractmethod
    def run(
        self,
        argv: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        """Run a command once and wait for it.

        Args:
            argv: Program and arguments.
            env: Extra environment variables on top of the inherited ones.
            cwd: Working directory.

        Returns:
            Exit status and captured output.
        """
        ...


# =============================================================================
# Metadata Port
# =============================================================================


class MetadataPort(Protocol):
    """Protocol for the cluster metadata key/value service."""

    @abstractmethod
    def get(self, key: str, default: str = "") -> str:
        """Look up an instance attribute.

        Args:
            key: Attribute name, e.g. "cuda-version".
            default: Returned when the attribute is unset or empty.
        """
        ...


# =============================================================================
# Package Manager Port
# =============================================================================


class PackageManagerPort(Protocol):
    """Protocol for a distribution package manager.

    Every method performs exactly one attempt; retries are the caller's job.
    """

    name: str

    @abstractmethod
    def install(self, *packages: str, no_recommends: bool = False) -> bool:
        """Install packages. Returns True on success."""
        ...

    @abstractmethod
    def remove(self, *packages: str) -> bool:
        """Remove packages."""
        ...

    @abstractmethod
    def update_index(self) -> bool:
        """Refresh the package index."""
        ...

    @abstractmethod
    def clean(self) -> bool:
        """Drop cached package metadata."""
        ...

    @abstractmethod
    def add_repository(self, repository: str) -> bool:
        """Register a repository (component name or repo URL)."""
        ...

    @abstractmethod
    def module_install(self, stream: str) -> bool:
        """Install a module stream (RPM family only)."""
        ...

    @abstractmethod
    def install_local(self, package_file: Path) -> bool:
        """Install a downloaded package file."""
        ...

    @abstractmethod
    def is_available(self, package: str) -> bool:
        """Check whether a package can be installed from the repositories."""
        ...

    @abstractmethod
    def repair(self) -> bool:
        """Finish any transaction interrupted by a reboot."""
        ...

    @abstractmethod
    def install_command(self, *packages: str) -> list[str]:
        """Non-interactive install command line, for use in unit files."""
        ...


# =============================================================================
# Config Store Port
# =============================================================================


class ConfigStoreError(ProvisioningError):
    """Raised when a configuration file cannot be parsed or written."""

    pass


class ConfigStorePort(Protocol):
    """Protocol for the Hadoop/Spark configuration directory.

    Every write clobbers: setting the same property twice leaves the file
    exactly as setting it once.
    """

    @abstractmethod
    def ensure_file(self, path: Path, initial_content: str) -> bool:
        """Create the file with initial content if it does not exist.

        Returns:
            True if the file was created.
        """
        ...

    @abstractmethod
    def set_property(
        self,
        path: Path,
        key: str,
        value: str,
        section: Optional[str] = None,
    ) -> None:
        """Set a property, replacing any previous value.

        The file format is chosen by extension: ``.xml`` Hadoop
        configuration, ``.cfg`` container-executor sections, ``.sh``
        environment exports.

        Raises:
            ConfigStoreError: If the file cannot be parsed.
        """
        ...

    @abstractmethod
    def unset_property(self, path: Path, key: str, section: Optional[str] = None) -> bool:
        """Remove a property. A missing file is left missing.

        Returns:
            True if the file changed.
        """
        ...

    @abstractmethod
    def write_block(self, path: Path, marker: str, lines: Sequence[str]) -> None:
        """Write a managed block delimited by BEGIN/END marker comments.

        A previous block with the same marker is replaced in place.
        """
        ...


# =============================================================================
# Supervisor Port
# =============================================================================


class SupervisorPort(Protocol):
    """Protocol for the init system (systemd)."""

    @abstractmethod
    def register(self, unit: SystemdUnit, start: bool = True) -> bool:
        """Install, enable and optionally start a unit.

        Returns:
            True if the unit ended up enabled.
        """
        ...

    @abstractmethod
    def enable_unit_file(self, unit_file: Path) -> bool:
        """Enable and start a unit file shipped by a third party."""
        ...

    @abstractmethod
    def is_running(self, service: str) -> bool:
        """True if the service SubState is "running"."""
        ...

    @abstractmethod
    def restart(self, service: str) -> bool:
        """Restart a service."""
        ...

    @abstractmethod
    def reboot(self) -> None:
        """Reboot the node."""
        ...


# =============================================================================
# Artifact Fetcher Port
# =============================================================================


class ArtifactFetcherPort(Protocol):
    """Protocol for downloading large binary artifacts."""

    @abstractmethod
    def probe(self, url: str) -> bool:
        """HEAD the URL. True only for an HTTP 200 answer."""
        ...

    @abstractmethod
    def fetch(self, url: str, destination: Path) -> bool:
        """Download url to destination (a file path). One attempt.

        Returns:
            True if the file was written completely.
        """
        ...
