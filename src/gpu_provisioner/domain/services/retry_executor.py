"""Bounded-retry wrapper used by every installation step.

Package mirrors and the CDN are shared by every node of a cluster that
boots at the same time, so transient failures are expected. Each call is
attempted up to ``max_attempts`` times with a fixed delay between
attempts. Failed attempts are not rolled back; callers must only wrap
idempotent operations.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable, Optional, Sequence

from gpu_provisioner.domain.exceptions import RetryExhaustedError
from gpu_provisioner.domain.value_objects.retry_policy import RetryPolicy
from gpu_provisioner.ports.outbound import CommandRunnerPort

if TYPE_CHECKING:
    from gpu_provisioner.infrastructure.metrics import MetricsRegistry

logger = logging.getLogger(__name__)


class RetryExecutor:
    """Run an action until it succeeds or the policy is exhausted."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._metrics = metrics

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def execute(self, action: Callable[[], bool], description: str) -> bool:
        """Attempt an action until it reports success.

        Args:
            action: Zero-argument callable returning True on success.
            description: Human-readable name used in logs.

        Returns:
            True on the first successful attempt, False after all
            attempts failed. Exceptions raised by the action propagate
            immediately and are not retried.
        """
        attempts = self._policy.max_attempts
        for attempt in range(1, attempts + 1):
            if action():
                if attempt > 1:
                    logger.info(f"{description} succeeded on attempt {attempt}/{attempts}")
                    self._record("recovered")
                return True

            logger.warning(f"{description} failed (attempt {attempt}/{attempts})")
            if attempt < attempts:
                self._sleep(self._policy.backoff_seconds)

        logger.error(f"{description} failed after {attempts} attempts")
        self._record("exhausted")
        return False

    def run(self, runner: CommandRunnerPort, argv: Sequence[str], **kwargs) -> bool:
        """Run a command with retries."""
        return self.execute(lambda: runner.run(argv, **kwargs).ok, " ".join(argv))

    def require(self, action: Callable[[], bool], description: str) -> None:
        """Like execute(), but exhaustion is fatal.

        Raises:
            RetryExhaustedError: If every attempt failed.
        """
        if not self.execute(action, description):
            raise RetryExhaustedError(description, self._policy.max_attempts)

    def require_command(self, runner: CommandRunnerPort, argv: Sequence[str], **kwargs) -> None:
        """Run a command with retries; exhaustion is fatal."""
        self.require(lambda: runner.run(argv, **kwargs).ok, " ".join(argv))

    def _record(self, outcome: str) -> None:
        if self._metrics:
            self._metrics.command_retries_total.labels(outcome=outcome).inc()
