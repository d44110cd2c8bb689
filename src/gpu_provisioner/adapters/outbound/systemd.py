"""SupervisorPort implementation driving systemctl."""

from __future__ import annotations

import logging
from pathlib import Path

from gpu_provisioner.domain.exceptions import InstallationError
from gpu_provisioner.domain.value_objects.systemd_unit import SystemdUnit
from gpu_provisioner.ports.outbound import CommandRunnerPort

logger = logging.getLogger(__name__)


class SystemdSupervisor:
    """Install units into ``unit_dir`` and control them with systemctl."""

    def __init__(self, runner: CommandRunnerPort, unit_dir: Path) -> None:
        self._runner = runner
        self._unit_dir = unit_dir

    def _systemctl(self, *args: str) -> bool:
        result = self._runner.run(["systemctl", *args])
        if not result.ok:
            logger.warning(f"systemctl {' '.join(args)} failed: {result.stderr.strip()}")
        return result.ok

    def register(self, unit: SystemdUnit, start: bool = True) -> bool:
        self._unit_dir.mkdir(parents=True, exist_ok=True)
        (self._unit_dir / unit.name).write_text(unit.render())
        self._systemctl("daemon-reload")

        if start:
            return self._systemctl("enable", "--now", unit.name)
        return self._systemctl("enable", unit.name)

    def enable_unit_file(self, unit_file: Path) -> bool:
        self._systemctl("daemon-reload")
        return self._systemctl("--no-reload", "--now", "enable", str(unit_file))

    def is_running(self, service: str) -> bool:
        result = self._runner.run(["systemctl", "show", service, "-p", "SubState", "--value"])
        return result.ok and result.stdout.strip() == "running"

    def restart(self, service: str) -> bool:
        logger.info(f"Restarting {service}")
        return self._systemctl("restart", service)

    def reboot(self) -> None:
        """Request a reboot.

        Raises:
            InstallationError: If systemd refused the request.
        """
        logger.info("Rebooting node")
        if not self._systemctl("reboot"):
            raise InstallationError("systemctl reboot failed")
