"""Prometheus metrics for node provisioning.

Provisioning is a one-shot job, so nothing is served over HTTP. The
registry is written to a node-exporter textfile collector file when the
run ends.
"""

from __future__ import annotations

from pathlib import Path

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info, write_to_textfile


class MetricsRegistry:
    """Node provisioning metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or REGISTRY

        self.provisioning_steps_total = Counter("provisioning_steps_total", "Provisioning steps by outcome", ["step", "status"], registry=self._registry)
        self.provisioning_step_seconds = Histogram("provisioning_step_seconds", "Provisioning step duration", ["step"], buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1200), registry=self._registry)
        self.command_retries_total = Counter("command_retries_total", "Retried operations by final outcome", ["outcome"], registry=self._registry)
        self.accelerator_partitioned = Gauge("accelerator_partitioned", "1 if every GPU is in MIG mode", registry=self._registry)

        self.info = Info("gpu_provisioner", "Provisioning info", registry=self._registry)

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def write_textfile(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        write_to_textfile(str(path), self._registry)

