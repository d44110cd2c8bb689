"""In-memory node for testing and development.

These adapters implement the outbound ports without touching the
operating system. They record every interaction so tests can assert on
the commands, packages, downloads and units a provisioning run produced.

Example:
    runner = MockCommandRunner()
    runner.script(["lspci"], stdout="00:04.0 3D controller: NVIDIA Corporation")
    runner.script(["spark-submit", "--version"], stderr="version 3.3.2")
    runner.run(["lspci"]).stdout
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence

from gpu_provisioner.domain.value_objects.systemd_unit import SystemdUnit
from gpu_provisioner.ports.outbound import CommandResult

logger = logging.getLogger(__name__)


# =============================================================================
# Commands
# =============================================================================


@dataclass
class MockCall:
    """One recorded command invocation."""

    argv: tuple[str, ...]
    env: Optional[Mapping[str, str]] = None
    cwd: Optional[Path] = None


class MockCommandRunner:
    """Scripted CommandRunnerPort.

    Responses are matched by the longest argv prefix. A response scripted
    as a sequence is consumed in order and its last entry repeats.
    Unscripted commands succeed with empty output.
    """

    def __init__(self, default_returncode: int = 0) -> None:
        self._responses: dict[tuple[str, ...], list[CommandResult]] = {}
        self._default_returncode = default_returncode
        self.calls: list[MockCall] = []

    def script(
        self,
        prefix: Sequence[str],
        stdout: str = "",
        returncode: int = 0,
        stderr: str = "",
    ) -> None:
        """Add a response for commands starting with prefix."""
        key = tuple(prefix)
        result = CommandResult(argv=key, returncode=returncode, stdout=stdout, stderr=stderr)
        self._responses.setdefault(key, []).append(result)

    def fail(self, prefix: Sequence[str], returncode: int = 1, stderr: str = "failed") -> None:
        self.script(prefix, returncode=returncode, stderr=stderr)

    def run(
        self,
        argv: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        argv = tuple(argv)
        self.calls.append(MockCall(argv=argv, env=env, cwd=cwd))

        matches = [key for key in self._responses if argv[: len(key)] == key]
        if not matches:
            return CommandResult(argv=argv, returncode=self._default_returncode)

        queue = self._responses[max(matches, key=len)]
        scripted = queue.pop(0) if len(queue) > 1 else queue[0]
        return CommandResult(
            argv=argv,
            returncode=scripted.returncode,
            stdout=scripted.stdout,
            stderr=scripted.stderr,
        )

    @property
    def commands(self) -> list[tuple[str, ...]]:
        return [call.argv for call in self.calls]

    def ran(self, prefix: Sequence[str]) -> bool:
        """True if any recorded command starts with prefix."""
        prefix = tuple(prefix)
        return any(argv[: len(prefix)] == prefix for argv in self.commands)


# =============================================================================
# Metadata
# =============================================================================


class MockMetadata:
    """MetadataPort over a plain dict."""

    def __init__(self, attributes: Optional[dict[str, str]] = None) -> None:
        self.attributes = dict(attributes or {})

    def get(self, key: str, default: str = "") -> str:
        value = self.attributes.get(key, "")
        return value if value.strip() else default


# =============================================================================
# Artifacts
# =============================================================================


class MockFetcher:
    """ArtifactFetcherPort that writes canned content.

    ``failures`` maps a URL to the number of attempts that fail before
    the download succeeds.
    """

    def __init__(self, probe_default: bool = True) -> None:
        self.contents: dict[str, bytes] = {}
        self.failures: dict[str, int] = {}
        self.probe_results: dict[str, bool] = {}
        self.probe_default = probe_default
        self.fetched: list[tuple[str, Path]] = []
        self.probed: list[str] = []

    def probe(self, url: str) -> bool:
        self.probed.append(url)
        return self.probe_results.get(url, self.probe_default)

    def fetch(self, url: str, destination: Path) -> bool:
        remaining = self.failures.get(url, 0)
        if remaining:
            self.failures[url] = remaining - 1
            return False

        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(self.contents.get(url, b""))
        self.fetched.append((url, destination))
        return True

    @property
    def urls(self) -> list[str]:
        return [url for url, _ in self.fetched]


# =============================================================================
# Init system
# =============================================================================


@dataclass
class MockSupervisor:
    """SupervisorPort that keeps units in memory."""

    running: set[str] = field(default_factory=set)
    register_result: bool = True
    units: dict[str, SystemdUnit] = field(default_factory=dict)
    started: list[str] = field(default_factory=list)
    enabled_files: list[Path] = field(default_factory=list)
    restarted: list[str] = field(default_factory=list)
    reboots: int = 0

    def register(self, unit: SystemdUnit, start: bool = True) -> bool:
        self.units[unit.name] = unit
        if start and self.register_result:
            self.started.append(unit.name)
        return self.register_result

    def enable_unit_file(self, unit_file: Path) -> bool:
        self.enabled_files.append(unit_file)
        return True

    def is_running(self, service: str) -> bool:
        return service in self.running

    def restart(self, service: str) -> bool:
        self.restarted.append(service)
        return True

    def reboot(self) -> None:
        self.reboots += 1


# =============================================================================
# Packages
# =============================================================================


class MockPackageManager:
    """PackageManagerPort that records operations.

    ``unavailable`` packages fail ``is_available``. ``failures`` maps a
    package, repository or local package file name to the number of
    attempts that fail before the operation succeeds.
    """

    def __init__(self, name: str = "apt") -> None:
        self.name = name
        self.installed: list[str] = []
        self.removed: list[str] = []
        self.local_files: list[Path] = []
        self.repositories: list[str] = []
        self.modules: list[str] = []
        self.operations: list[str] = []
        self.unavailable: set[str] = set()
        self.failures: dict[str, int] = {}
        self.no_recommends: list[str] = []
        self.repairs = 0

    def _fails(self, *names: str) -> bool:
        for name in names:
            remaining = self.failures.get(name, 0)
            if remaining:
                self.failures[name] = remaining - 1
                return True
        return False

    def install(self, *packages: str, no_recommends: bool = False) -> bool:
        if self._fails(*packages):
            return False
        self.operations.append("install")
        self.installed.extend(packages)
        if no_recommends:
            self.no_recommends.extend(packages)
        return True

    def remove(self, *packages: str) -> bool:
        if self._fails(*packages):
            return False
        self.operations.append("remove")
        self.removed.extend(packages)
        return True

    def update_index(self) -> bool:
        self.operations.append("update_index")
        return True

    def clean(self) -> bool:
        self.operations.append("clean")
        return True

    def add_repository(self, repository: str) -> bool:
        if self._fails(repository):
            return False
        self.operations.append("add_repository")
        self.repositories.append(repository)
        return True

    def module_install(self, stream: str) -> bool:
        self.operations.append("module_install")
        self.modules.append(stream)
        return True

    def install_local(self, package_file: Path) -> bool:
        if self._fails(package_file.name):
            return False
        self.operations.append("install_local")
        self.local_files.append(package_file)
        return True

    def is_available(self, package: str) -> bool:
        return package not in self.unavailable

    def repair(self) -> bool:
        self.repairs += 1
        return True

    def install_command(self, *packages: str) -> list[str]:
        binary = "apt-get" if self.name == "apt" else self.name
        return [f"/usr/bin/{binary}", "install", "-y", "-q", *packages]
