"""YARN GPU scheduling configuration.

Registers ``yarn.io/gpu`` as a resource type with the dominant resource
calculator on every node, and wires the NodeManager GPU plugin plus
cgroups device isolation on GPU nodes.

Every write replaces the previous value, so running this twice leaves
byte-identical files behind.
"""

from __future__ import annotations

import logging

from gpu_provisioner.domain.entities.topology import AcceleratorTopology
from gpu_provisioner.domain.value_objects.node_paths import CGROUP_ROOT, NodePaths
from gpu_provisioner.domain.value_objects.systemd_unit import SystemdUnit
from gpu_provisioner.ports.outbound import ConfigStorePort, SupervisorPort

logger = logging.getLogger(__name__)

GPU_RESOURCE = "yarn.io/gpu"
DOMINANT_RESOURCE_CALCULATOR = "org.apache.hadoop.yarn.util.resource.DominantResourceCalculator"
LINUX_CONTAINER_EXECUTOR = "org.apache.hadoop.yarn.server.nodemanager.LinuxContainerExecutor"
YARN_GROUP = "yarn"
EMPTY_CONFIGURATION = '<?xml version="1.0" ?>\n<configuration/>'
YARN_SERVICES = ("resourcemanager", "nodemanager")
MIG_ENV_VARIABLES = ("MIG_AS_GPU_ENABLED", "ENABLE_MIG_GPUS_FOR_CGROUPS")

_LCE = "yarn.nodemanager.linux-container-executor"
_GPU_PLUGIN = "yarn.nodemanager.resource-plugins.gpu"

CGROUP_PERMISSIONS_UNIT = SystemdUnit(
    name="dataproc-cgroup-device-permissions.service",
    description="Set permissions to allow YARN to access device directories",
    exec_start=(
        f'/bin/bash -c "chmod a+rwx -R {CGROUP_ROOT}/cpu,cpuacct; '
        f'chmod a+rwx -R {CGROUP_ROOT}/devices"'
    ),
)


class YarnConfigurator:
    """Write YARN GPU properties through a ConfigStorePort."""

    def __init__(self, store: ConfigStorePort, supervisor: SupervisorPort, paths: NodePaths) -> None:
        self._store = store
        self._supervisor = supervisor
        self._conf = paths.hadoop_conf_dir

    def configure_cluster(self) -> None:
        """Register the GPU resource type; runs on every node."""
        resource_types = self._conf / "resource-types.xml"
        self._store.ensure_file(resource_types, EMPTY_CONFIGURATION)
        self._store.set_property(resource_types, "yarn.resource-types", GPU_RESOURCE)

        self._store.set_property(
            self._conf / "capacity-scheduler.xml",
            "yarn.scheduler.capacity.resource-calculator",
            DOMINANT_RESOURCE_CALCULATOR,
        )
        self._store.set_property(self._conf / "yarn-site.xml", "yarn.resource-types", GPU_RESOURCE)
        logger.info("Registered yarn.io/gpu resource type")

    def configure_node_manager(self, topology: AcceleratorTopology) -> None:
        """Enable the NodeManager GPU plugin and cgroups."""
        yarn_site = self._conf / "yarn-site.xml"
        properties = (
            ("yarn.nodemanager.resource-plugins", GPU_RESOURCE),
            (f"{_GPU_PLUGIN}.allowed-gpu-devices", "auto"),
            (f"{_GPU_PLUGIN}.path-to-discovery-executables", topology.discovery_tool_path),
            (f"{_LCE}.cgroups.mount", "true"),
            (f"{_LCE}.cgroups.mount-path", CGROUP_ROOT),
            (f"{_LCE}.cgroups.hierarchy", YARN_GROUP),
            ("yarn.nodemanager.container-executor.class", LINUX_CONTAINER_EXECUTOR),
            (f"{_LCE}.group", YARN_GROUP),
        )
        for key, value in properties:
            self._store.set_property(yarn_site, key, value)
        logger.info(f"Configured NodeManager GPU plugin (discovery: {topology.discovery_tool_path})")

    def configure_isolation(self, topology: AcceleratorTopology) -> None:
        """Configure container-executor GPU isolation and device permissions."""
        cfg = self._conf / "container-executor.cfg"
        yarn_env = self._conf / "yarn-env.sh"
        self._store.set_property(cfg, f"{_LCE}.group", YARN_GROUP)
        self._store.set_property(cfg, "module.enabled", "true", section="gpu")
        if topology.partitioned:
            self._store.set_property(
                cfg, "gpu.major-device-number", str(topology.device_major_capability), section="gpu"
            )
        else:
            # left over from a run when MIG was enabled
            self._store.unset_property(cfg, "gpu.major-device-number", section="gpu")
        self._store.set_property(cfg, "root", CGROUP_ROOT, section="cgroups")
        self._store.set_property(cfg, "yarn-hierarchy", YARN_GROUP, section="cgroups")

        for variable in MIG_ENV_VARIABLES:
            if topology.partitioned:
                self._store.set_property(yarn_env, variable, "1")
            else:
                self._store.unset_property(yarn_env, variable)

        if not self._supervisor.register(CGROUP_PERMISSIONS_UNIT, start=True):
            logger.warning(f"Could not enable {CGROUP_PERMISSIONS_UNIT.name}")

    def restart_services(self) -> list[str]:
        """Restart YARN daemons that are currently running.

        Returns:
            Names of the services that were restarted.
        """
        restarted = []
        for svc in YARN_SERVICES:
            service = f"hadoop-yarn-{svc}.service"
            if not self._supervisor.is_running(service):
                continue
            if self._supervisor.restart(service):
                restarted.append(service)
            else:
                logger.warning(f"Failed to restart {service}")
        return restarted
