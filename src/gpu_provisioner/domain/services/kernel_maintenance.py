"""Kernel header maintenance and pre-flight kernel upgrade.

The NVIDIA kernel module is built against the running kernel's headers.
Two behaviors keep them in step:

1. A oneshot systemd unit installs headers for the running kernel on
   every boot (best effort, never blocks boot).
2. On the RPM family, if kernel-devel/kernel-headers for the running
   kernel are no longer in the repositories, the newest kernel is
   installed and the node reboots. Dataproc's startup scripts are
   patched first so the automatic re-run after reboot does not
   initialize the node twice; this procedure is expected to be invoked
   again after boot.

References:
    - https://github.com/GoogleCloudDataproc/initialization-actions/issues/1033
"""

from __future__ import annotations

import logging
import re
import shutil
from typing import Optional

from gpu_provisioner.domain.entities.platform import OSFamily, PlatformIdentity
from gpu_provisioner.domain.exceptions import InstallationError, RebootScheduled
from gpu_provisioner.domain.services.retry_executor import RetryExecutor
from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.domain.value_objects.systemd_unit import SystemdUnit
from gpu_provisioner.ports.outbound import (
    CommandRunnerPort,
    PackageManagerPort,
    SupervisorPort,
)

logger = logging.getLogger(__name__)

HEADER_SYNC_ATTEMPTS = 3
HEADER_SYNC_SPACING_SECONDS = 5

KERNEL_PACKAGES: dict[OSFamily, str] = {
    OSFamily.DEBIAN: "linux-image-amd64",
    OSFamily.UBUNTU: "linux-image-gcp",
    OSFamily.ROCKY: "kernel",
}

STARTUP_SCRIPTS = ("startup-script.sh", "post-hdfs-startup-script.sh")
SHEBANG = "/usr/bin/env bash"

_DEBIAN_KERNEL_RE = re.compile(r" Debian (\S+) ")
_LINUX_VERSION_RE = re.compile(r"^Linux version (\S+) ")
_APT_VERSION_RE = re.compile(r"^Version:\s*(\S+)", re.MULTILINE)
_YUM_FIELD_RE = r"^{field}\s*:\s*(\S+)"
_UBUNTU_GCP_RE = re.compile(r"(\d+\.\d+\.\d+)\.(\d+)")


def _last_yum_field(output: str, field: str) -> Optional[str]:
    values = re.findall(_YUM_FIELD_RE.format(field=field), output, re.MULTILINE)
    return values[-1] if values else None


def parse_yum_kernel(output: str) -> Optional[str]:
    """Version-Release of the last kernel in ``yum info`` output."""
    version = _last_yum_field(output, "Version")
    release = _last_yum_field(output, "Release")
    if not version or not release:
        return None
    return f"{version}-{release}"


def ubuntu_gcp_kernel(package_version: str) -> Optional[str]:
    """linux-image-gcp package version to kernel release ("5.15.0.1042.46" -> "5.15.0-1042-gcp")."""
    match = _UBUNTU_GCP_RE.search(package_version)
    return f"{match.group(1)}-{match.group(2)}-gcp" if match else None


def disable_autostart(script: str) -> str:
    """Insert ``exit 0`` right after the shebang, once."""
    lines = script.split("\n")
    patched: list[str] = []
    for i, line in enumerate(lines):
        patched.append(line)
        already = i + 1 < len(lines) and lines[i + 1].strip() == "exit 0"
        if SHEBANG in line and not already:
            patched.append("exit 0")
    return "\n".join(patched)


class KernelMaintenance:
    """Keep kernel headers aligned with the running kernel."""

    def __init__(
        self,
        platform: PlatformIdentity,
        runner: CommandRunnerPort,
        packages: PackageManagerPort,
        supervisor: SupervisorPort,
        executor: RetryExecutor,
        paths: NodePaths,
    ) -> None:
        self._platform = platform
        self._runner = runner
        self._packages = packages
        self._supervisor = supervisor
        self._executor = executor
        self._paths = paths

    def running_kernel(self) -> str:
        return self._runner.run(["uname", "-r"]).stdout.strip()

    def header_sync_unit(self) -> SystemdUnit:
        """Unit that installs headers for the running kernel on boot."""
        # systemd expands "$"; "$$" reaches bash as a literal "$"
        install = " ".join(self._packages.install_command("linux-headers-$$(/bin/uname -r)"))
        script = (
            f"count=0; while [ $$count -lt {HEADER_SYNC_ATTEMPTS} ]; do {install} && break; "
            f"count=$$((count+1)); sleep {HEADER_SYNC_SPACING_SECONDS}; done; exit 0"
        )
        return SystemdUnit(
            name="install-headers.service",
            description="Install Linux headers for the current kernel",
            exec_start=f"/bin/bash -c '{script}'",
            after="network-online.target",
            service_type="oneshot",
            remain_after_exit=True,
        )

    def register_header_sync(self) -> bool:
        enabled = self._supervisor.register(self.header_sync_unit(), start=True)
        if not enabled:
            logger.warning("Could not enable install-headers.service")
        return enabled

    def kernel_packages_available(self) -> bool:
        release = self.running_kernel()
        return all(
            self._packages.is_available(f"{name}-{release}")
            for name in ("kernel-devel", "kernel-headers")
        )

    def current_kernel_version(self) -> str:
        family = self._platform.family
        if family is OSFamily.ROCKY:
            result = self._runner.run(["yum", "info", "--installed", "kernel"])
            version = parse_yum_kernel(result.stdout)
        else:
            proc_version = self._paths.proc_version.read_text()
            pattern = _DEBIAN_KERNEL_RE if family is OSFamily.DEBIAN else _LINUX_VERSION_RE
            match = pattern.search(proc_version)
            version = match.group(1) if match else None

        if not version:
            raise InstallationError(f"Cannot determine installed kernel version on {self._platform}")
        return version

    def target_kernel_version(self, current: str) -> str:
        """Newest kernel available in the repositories."""
        family = self._platform.family
        if family is OSFamily.ROCKY:
            result = self._runner.run(["yum", "info", "--available", "kernel"])
            if not result.ok:
                return current
            return parse_yum_kernel(result.stdout) or current

        self._executor.execute(self._packages.update_index, "package index refresh")
        result = self._runner.run(
            ["apt-cache", "show", "--no-all-versions", KERNEL_PACKAGES[family]]
        )
        match = _APT_VERSION_RE.search(result.stdout)
        if not match:
            return current
        if family is OSFamily.UBUNTU:
            return ubuntu_gcp_kernel(match.group(1)) or current
        return match.group(1)

    def preflight(self) -> None:
        """Upgrade the kernel on the RPM family when its headers are gone.

        Raises:
            RebootScheduled: If the node is rebooting into a new kernel.
        """
        if self._platform.family is not OSFamily.ROCKY:
            return
        if self.kernel_packages_available():
            logger.info("kernel devel and headers packages are available. Proceed without kernel upgrade.")
            return
        self.upgrade_kernel()

    def upgrade_kernel(self) -> bool:
        """Install the newest kernel and reboot into it.

        Returns:
            False if the target kernel is already installed.

        Raises:
            RebootScheduled: After the reboot has been requested.
            RetryExhaustedError: If the kernel package cannot be installed.
        """
        current = self.current_kernel_version()
        target = self.target_kernel_version(current)

        if current == target:
            logger.info(f"target kernel version [{target}] is installed")
            # A reboot may have interrupted the package manager
            self._packages.repair()
            return False

        package = KERNEL_PACKAGES[self._platform.family]
        logger.info(f"Upgrading kernel {current} -> {target}")
        self._executor.require(lambda: self._packages.install(package), f"install {package}")

        self.disable_startup_scripts()
        self.archive_init_log()
        self._supervisor.reboot()
        raise RebootScheduled(target)

    def disable_startup_scripts(self) -> None:
        for name in STARTUP_SCRIPTS:
            script = self._paths.dataproc_root / name
            if not script.exists():
                logger.warning(f"Startup script {script} not found")
                continue
            script.write_text(disable_autostart(script.read_text()))

    def archive_init_log(self) -> None:
        log = self._paths.init_log
        if log.exists():
            shutil.copy2(log, log.with_name(log.name + ".0"))
