"""Dependency injection container for the GPU node provisioner."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

import structlog
from opentelemetry import trace
from prometheus_client import CollectorRegistry

from gpu_provisioner.adapters.outbound.gce_metadata import GceMetadata
from gpu_provisioner.adapters.outbound.hadoop_config import HadoopConfigStore
from gpu_provisioner.adapters.outbound.http_fetcher import HttpFetcher
from gpu_provisioner.adapters.outbound.package_managers import package_manager_for
from gpu_provisioner.adapters.outbound.subprocess_runner import SubprocessRunner
from gpu_provisioner.adapters.outbound.systemd import SystemdSupervisor
from gpu_provisioner.application.provisioner import NodeProvisioner
from gpu_provisioner.domain.entities.platform import PlatformIdentity
from gpu_provisioner.domain.services.retry_executor import RetryExecutor
from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.infrastructure.config import Config, get_config
from gpu_provisioner.infrastructure.logging import get_logger, setup_logging
from gpu_provisioner.infrastructure.metrics import MetricsRegistry
from gpu_provisioner.infrastructure.tracing import setup_tracing
from gpu_provisioner.ports.outbound import PackageManagerPort


@dataclass
class Container:
    """Dependency injection container for provisioning components."""

    config: Config
    logger: structlog.stdlib.BoundLogger
    tracer: trace.Tracer
    metrics: MetricsRegistry
    paths: NodePaths
    runner: SubprocessRunner
    metadata: GceMetadata
    fetcher: HttpFetcher
    store: HadoopConfigStore
    supervisor: SystemdSupervisor
    executor: RetryExecutor

    _instance: ClassVar[Container | None] = None

    @classmethod
    def create(cls, config: Config | None = None) -> Container:
        """Create and initialize the container with all dependencies."""
        if cls._instance is not None:
            return cls._instance

        config = config or get_config()
        observability = config.observability
        setup_logging(observability.log_level, observability.log_format)
        logger = get_logger("gpu_provisioner")
        tracer = setup_tracing(
            otlp_endpoint=observability.otel_endpoint,
            console_export=observability.console_export,
        )
        metrics = MetricsRegistry(CollectorRegistry())

        paths = config.paths.node_paths()
        runner = SubprocessRunner(timeout=config.download.command_timeout_seconds)

        cls._instance = cls(
            config=config,
            logger=logger,
            tracer=tracer,
            metrics=metrics,
            paths=paths,
            runner=runner,
            metadata=GceMetadata(config.metadata.url, timeout=config.metadata.timeout_seconds),
            fetcher=HttpFetcher(timeout=config.download.timeout_seconds),
            store=HadoopConfigStore(),
            supervisor=SystemdSupervisor(runner, paths.systemd_etc_dir),
            executor=RetryExecutor(config.retry.policy(), metrics=metrics),
        )

        logger.info("gpu_provisioner_container_initialized", root=str(paths.root))

        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the container (useful for testing)."""
        cls._instance = None

    def packages_for(self, platform: PlatformIdentity) -> PackageManagerPort:
        return package_manager_for(platform, self.runner)

    def provisioner(self) -> NodeProvisioner:
        return NodeProvisioner(
            runner=self.runner,
            metadata=self.metadata,
            fetcher=self.fetcher,
            store=self.store,
            supervisor=self.supervisor,
            packages_for=self.packages_for,
            executor=self.executor,
            paths=self.paths,
            metrics=self.metrics,
            install_mamba=self.config.features.install_mamba,
        )
