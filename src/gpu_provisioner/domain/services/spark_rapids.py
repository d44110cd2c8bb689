"""RAPIDS Accelerator for Apache Spark and XGBoost GPU setup.

References:
    - https://nvidia.github.io/spark-rapids/docs/get-started/getting-started-on-prem.html
    - https://spark.apache.org/docs/latest/configuration.html#custom-resource-scheduling-and-configuration-overview
"""

from __future__ import annotations

import logging
from importlib import resources
from string import Template
from typing import NamedTuple

from gpu_provisioner.domain.entities.context import ProvisioningContext
from gpu_provisioner.domain.services.retry_executor import RetryExecutor
from gpu_provisioner.domain.value_objects.node_paths import DISCOVERY_SCRIPT, NodePaths
from gpu_provisioner.ports.outbound import ArtifactFetcherPort, ConfigStorePort

logger = logging.getLogger(__name__)

NVIDIA_MAVEN_URL = "https://repo1.maven.org/maven2/com/nvidia"
DMLC_MAVEN_URL = "https://repo.maven.apache.org/maven2/ml/dmlc"
SCALA_BINARY_VERSION = "2.12"

RAPIDS_BLOCK_MARKER = "RAPIDS properties for Spark"
DISCOVERY_TEMPLATE = "getGpusResources.sh.tmpl"


class Jar(NamedTuple):
    url: str
    filename: str


def maven_jar(repo_url: str, artifact: str, version: str) -> Jar:
    filename = f"{artifact}-{version}.jar"
    return Jar(url=f"{repo_url}/{artifact}/{version}/{filename}", filename=filename)


def rapids_properties(discovery_script: str = DISCOVERY_SCRIPT) -> list[str]:
    """Lines of the managed spark-defaults.conf block."""
    return [
        "# Rapids Accelerator for Spark can utilize AQE, but when the plan is not finalized,",
        "# query explain output won't show GPU operator, if user have doubt",
        "# they can uncomment the line before seeing the GPU plan explain, but AQE on gives user the best performance.",
        "spark.executor.resource.gpu.amount=1",
        "spark.plugins=com.nvidia.spark.SQLPlugin",
        f"spark.executor.resource.gpu.discoveryScript={discovery_script}",
        "spark.dynamicAllocation.enabled=false",
        "spark.sql.autoBroadcastJoinThreshold=10m",
        "spark.sql.files.maxPartitionBytes=512m",
        "# please update this config according to your application",
        "spark.task.resource.gpu.amount=0.25",
        "spark.kryo.registrator=com.nvidia.spark.rapids.GpuKryoRegistrator",
    ]


def render_discovery_script(nvidia_smi: str = "nvidia-smi") -> str:
    template = resources.files("gpu_provisioner.templates").joinpath(DISCOVERY_TEMPLATE).read_text()
    return Template(template).substitute(nvidia_smi=nvidia_smi)


class SparkRapidsInstaller:
    """Install the RAPIDS jars and point Spark executors at the GPUs."""

    def __init__(
        self,
        context: ProvisioningContext,
        fetcher: ArtifactFetcherPort,
        executor: RetryExecutor,
        store: ConfigStorePort,
        paths: NodePaths,
    ) -> None:
        self._context = context
        self._fetcher = fetcher
        self._executor = executor
        self._store = store
        self._paths = paths

    def jars(self) -> list[Jar]:
        versions = self._context.versions
        scala = SCALA_BINARY_VERSION
        return [
            maven_jar(DMLC_MAVEN_URL, f"xgboost4j-spark-gpu_{scala}", versions.ml_library_version),
            maven_jar(DMLC_MAVEN_URL, f"xgboost4j-gpu_{scala}", versions.ml_library_version),
            maven_jar(NVIDIA_MAVEN_URL, f"rapids-4-spark_{scala}", versions.plugin_version),
        ]

    def install_jars(self) -> list[str]:
        """Download missing jars into the Spark jars directory.

        Returns:
            File names that were downloaded.

        Raises:
            RetryExhaustedError: If a jar could not be downloaded.
        """
        jars_dir = self._paths.spark_jars_dir
        jars_dir.mkdir(parents=True, exist_ok=True)

        downloaded = []
        for jar in self.jars():
            destination = jars_dir / jar.filename
            if destination.exists():
                logger.info(f"{jar.filename} already present, skipping download")
                continue
            self._executor.require(lambda: self._fetcher.fetch(jar.url, destination), f"download {jar.url}")
            downloaded.append(jar.filename)
        return downloaded

    def configure_spark(self) -> None:
        """Write the RAPIDS block into spark-defaults.conf."""
        defaults = self._paths.spark_conf_dir / "spark-defaults.conf"
        self._store.write_block(defaults, RAPIDS_BLOCK_MARKER, rapids_properties())
        logger.info(f"RAPIDS properties written for Spark {self._context.framework_version}")

    def write_discovery_script(self) -> None:
        """Install the GPU discovery script used by Spark and YARN."""
        script_dir = self._paths.spark_gpu_script_dir
        script_dir.mkdir(parents=True, exist_ok=True)
        script = script_dir / "getGpusResources.sh"
        script.write_text(render_discovery_script())
        script_dir.chmod(0o777)
        script.chmod(0o777)

    def install(self) -> None:
        self.install_jars()
        self.configure_spark()
        logger.info("RAPIDS initialized with Spark runtime")
