"""Node Provisioner.

Sequences the domain services into one provisioning run:

1. Platform detection and preflight checks
2. Version and flag resolution
3. Package source repair
4. Kernel upgrade preflight (may reboot the node and end the run)
5. GPU driver and YARN GPU scheduling setup
6. RAPIDS Accelerator for Spark
7. Mambaforge base environment
8. YARN daemon restart

Steps 1 and 2 have no side effects on the node, so an unsupported
platform or version aborts before anything is changed.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Generator, Optional

from gpu_provisioner.domain.entities.context import ProvisioningContext
from gpu_provisioner.domain.entities.platform import PlatformIdentity
from gpu_provisioner.domain.entities.topology import AcceleratorTopology
from gpu_provisioner.domain.exceptions import RebootScheduled
from gpu_provisioner.domain.services.gpu_agent import GpuAgentInstaller
from gpu_provisioner.domain.services.installers import DriverInstaller, get_installer
from gpu_provisioner.domain.services.kernel_maintenance import KernelMaintenance
from gpu_provisioner.domain.services.mamba import MambaBootstrapper
from gpu_provisioner.domain.services.mig_detector import NVIDIA_SMI, MigDetector
from gpu_provisioner.domain.services.preflight import PlatformPreflight
from gpu_provisioner.domain.services.retry_executor import RetryExecutor
from gpu_provisioner.domain.services.spark_rapids import SparkRapidsInstaller
from gpu_provisioner.domain.services.version_resolver import VersionResolver
from gpu_provisioner.domain.services.yarn_configurator import YarnConfigurator
from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.infrastructure.logging import get_logger
from gpu_provisioner.infrastructure.metrics import MetricsRegistry
from gpu_provisioner.infrastructure.tracing import trace_span
from gpu_provisioner.ports.outbound import (
    ArtifactFetcherPort,
    CommandRunnerPort,
    ConfigStorePort,
    MetadataPort,
    PackageManagerPort,
    SupervisorPort,
)


@dataclass
class ProvisioningResult:
    """What a completed run did."""

    platform: PlatformIdentity
    context: ProvisioningContext
    topology: AcceleratorTopology
    steps: list[str] = field(default_factory=list)
    restarted_services: list[str] = field(default_factory=list)


class NodeProvisioner:
    """Provision GPU support on one cluster node."""

    def __init__(
        self,
        runner: CommandRunnerPort,
        metadata: MetadataPort,
        fetcher: ArtifactFetcherPort,
        store: ConfigStorePort,
        supervisor: SupervisorPort,
        packages_for: Callable[[PlatformIdentity], PackageManagerPort],
        executor: RetryExecutor,
        paths: NodePaths,
        metrics: Optional[MetricsRegistry] = None,
        install_mamba: bool = True,
    ) -> None:
        """Initialize the provisioner.

        Args:
            runner: Command runner.
            metadata: Instance metadata.
            fetcher: Artifact downloader.
            store: Hadoop/Spark configuration files.
            supervisor: Init system.
            packages_for: Package manager factory, called once the OS is known.
            executor: Retry executor shared by all steps.
            paths: Node filesystem layout.
            metrics: Optional metrics registry.
            install_mamba: Whether to bootstrap Mambaforge.
        """
        self._runner = runner
        self._metadata = metadata
        self._fetcher = fetcher
        self._store = store
        self._supervisor = supervisor
        self._packages_for = packages_for
        self._executor = executor
        self._paths = paths
        self._metrics = metrics
        self._install_mamba = install_mamba
        self._log = get_logger(__name__)
        self._steps: list[str] = []

        self._yarn = YarnConfigurator(store, supervisor, paths)

    @contextmanager
    def _step(self, name: str, **attributes: str) -> Generator[None, None, None]:
        self._log.info("step_started", step=name, **attributes)
        start = time.monotonic()
        with trace_span(f"provision.{name}", attributes or None):
            try:
                yield
            except RebootScheduled:
                self._record(name, "reboot", start)
                raise
            except Exception:
                self._record(name, "failed", start)
                raise
        self._record(name, "ok", start)
        self._steps.append(name)

    def _record(self, step: str, status: str, start: float) -> None:
        elapsed = time.monotonic() - start
        self._log.info("step_finished", step=step, status=status, seconds=round(elapsed, 2))
        if self._metrics:
            self._metrics.provisioning_steps_total.labels(step=step, status=status).inc()
            self._metrics.provisioning_step_seconds.labels(step=step).observe(elapsed)

    def run(self) -> ProvisioningResult:
        """Run the whole procedure.

        Returns:
            Summary of the run.

        Raises:
            ProvisioningError: On any fatal failure.
            RebootScheduled: If the node is rebooting into a new kernel.
        """
        self._steps = []
        preflight = PlatformPreflight(self._runner, self._paths)

        with self._step("preflight"):
            platform = preflight.detect_platform()
            preflight.check(platform)

        with self._step("resolve", platform=str(platform)):
            context = VersionResolver(self._metadata, self._runner, self._fetcher).resolve(platform)
        self._record_info(context)

        packages = self._packages_for(platform)
        kernel = KernelMaintenance(platform, self._runner, packages, self._supervisor, self._executor, self._paths)

        with self._step("package_sources"):
            preflight.repair_package_sources(platform)

        with self._step("kernel"):
            kernel.preflight()

        spark = SparkRapidsInstaller(context, self._fetcher, self._executor, self._store, self._paths)
        with self._step("gpu_yarn"):
            topology = self.setup_gpu_yarn(context, packages, kernel, spark)

        with self._step("spark_rapids", spark=context.framework_version):
            spark.install()

        if self._install_mamba:
            with self._step("mamba"):
                MambaBootstrapper(
                    platform, self._runner, packages, self._fetcher, self._executor, self._paths
                ).install()
        else:
            self._log.info("mamba_skipped")

        with self._step("restart_services"):
            restarted = self._yarn.restart_services()

        self._log.info("provisioning_complete", steps=self._steps, restarted=restarted)
        return ProvisioningResult(
            platform=platform,
            context=context,
            topology=topology,
            steps=list(self._steps),
            restarted_services=restarted,
        )

    def setup_gpu_yarn(
        self,
        context: ProvisioningContext,
        packages: PackageManagerPort,
        kernel: KernelMaintenance,
        spark: SparkRapidsInstaller,
    ) -> AcceleratorTopology:
        """Install the driver if needed and make YARN GPU-aware."""
        if context.platform.uses_apt:
            self._executor.require(packages.update_index, "package index refresh")
        self._executor.require(lambda: packages.install("pciutils"), "install pciutils")

        # Every node needs the resource type, GPU or not
        self._yarn.configure_cluster()

        detector = MigDetector(self._runner, self._fetcher, self._executor, self._paths)
        topology = detector.detect()
        if self._metrics:
            self._metrics.accelerator_partitioned.set(1 if topology.partitioned else 0)

        if topology.present:
            installer = get_installer(
                context, self._runner, packages, self._fetcher, self._executor, kernel, self._paths
            )
            if context.platform.uses_apt:
                installer.install_headers()

            # With MIG enabled the driver ships with the image
            if topology.requires_driver_install:
                self.install_driver_stack(context, packages, installer)

            self.configure_gpu_node(topology, spark)
        elif context.is_master:
            self.configure_gpu_node(topology, spark)

        self._yarn.restart_services()
        return topology

    def install_driver_stack(
        self,
        context: ProvisioningContext,
        packages: PackageManagerPort,
        installer: DriverInstaller,
    ) -> None:
        installer.install()

        if context.install_gpu_agent:
            GpuAgentInstaller(
                context.platform, self._runner, packages, self._executor, self._supervisor, self._paths
            ).install()
        else:
            self._log.info("gpu_agent_skipped")

        self.configure_exclusive_mode(context)

    def configure_gpu_node(self, topology: AcceleratorTopology, spark: SparkRapidsInstaller) -> None:
        self._yarn.configure_node_manager(topology)
        spark.write_discovery_script()
        self._yarn.configure_isolation(topology)

    def configure_exclusive_mode(self, context: ProvisioningContext) -> bool:
        """Put GPUs in exclusive-process mode for pre-3 Spark.

        Returns:
            True if exclusive mode was set.
        """
        if context.framework_major == "3":
            return False
        result = self._runner.run([NVIDIA_SMI, "-c", "EXCLUSIVE_PROCESS"])
        if not result.ok:
            self._log.warning("exclusive_mode_failed", stderr=result.stderr.strip())
        return result.ok

    def _record_info(self, context: ProvisioningContext) -> None:
        if not self._metrics:
            return
        self._metrics.info.info(
            {
                "platform": str(context.platform),
                "spark": context.framework_version,
                "cuda": context.versions.toolkit_version,
                "driver": context.versions.driver_version,
                "rapids": context.versions.plugin_version,
                "role": context.role or "unknown",
            }
        )
