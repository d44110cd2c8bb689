"""CommandRunnerPort implementation on top of subprocess."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence

from gpu_provisioner.ports.outbound import CommandResult

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127


class SubprocessRunner:
    """Run commands on the local node and capture their output."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._timeout = timeout

    def run(
        self,
        argv: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        argv = tuple(argv)
        logger.debug(f"Running: {' '.join(argv)}")

        environment = os.environ.copy()
        if env:
            environment.update(env)

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                env=environment,
                cwd=cwd,
                timeout=self._timeout,
            )
        except FileNotFoundError as e:
            logger.debug(f"Command not found: {argv[0]}")
            return CommandResult(argv=argv, returncode=COMMAND_NOT_FOUND, stderr=str(e))
        except subprocess.TimeoutExpired:
            logger.error(f"Command timed out after {self._timeout}s: {' '.join(argv)}")
            return CommandResult(argv=argv, returncode=-1, stderr="timed out")

        if result.returncode != 0:
            logger.debug(f"Command exited {result.returncode}: {result.stderr.strip()}")
        return CommandResult(
            argv=argv,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
