"""Well-known filesystem locations on a Dataproc node.

The absolute constants are what gets written INTO configuration files
and unit files. NodePaths maps them under a root directory for file I/O,
which lets the whole procedure run against a scratch tree.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

HADOOP_CONF_DIR = "/etc/hadoop/conf"
SPARK_CONF_DIR = "/etc/spark/conf"
SPARK_JARS_DIR = "/usr/lib/spark/jars"
SPARK_GPU_SCRIPT_DIR = "/usr/lib/spark/scripts/gpu"
DISCOVERY_SCRIPT = f"{SPARK_GPU_SCRIPT_DIR}/getGpusResources.sh"
CGROUP_ROOT = "/sys/fs/cgroup"
DATAPROC_ROOT = "/usr/local/share/google/dataproc"
INIT_LOG = "/var/log/dataproc-initialization-script-0.log"


@dataclass(frozen=True)
class NodePaths:
    """Filesystem layout, relative to ``root``."""
    root: Path = Path("/")
    work_dir: Path = Path("/tmp/gpu-provisioner")

    def resolve(self, absolute: str) -> Path:
        """Map an absolute node path under the root."""
        return self.root / absolute.lstrip("/")

    @property
    def hadoop_conf_dir(self) -> Path:
        return self.resolve(HADOOP_CONF_DIR)

    @property
    def spark_conf_dir(self) -> Path:
        return self.resolve(SPARK_CONF_DIR)

    @property
    def spark_jars_dir(self) -> Path:
        return self.resolve(SPARK_JARS_DIR)

    @property
    def spark_gpu_script_dir(self) -> Path:
        return self.resolve(SPARK_GPU_SCRIPT_DIR)

    @property
    def systemd_lib_dir(self) -> Path:
        return self.resolve("/lib/systemd/system")

    @property
    def systemd_etc_dir(self) -> Path:
        return self.resolve("/etc/systemd/system")

    @property
    def dataproc_root(self) -> Path:
        return self.resolve(DATAPROC_ROOT)

    @property
    def init_log(self) -> Path:
        return self.resolve(INIT_LOG)

    @property
    def proc_devices(self) -> Path:
        return self.resolve("/proc/devices")

    @property
    def proc_version(self) -> Path:
        return self.resolve("/proc/version")

    @property
    def apt_sources_list(self) -> Path:
        return self.resolve("/etc/apt/sources.list")

    @property
    def debian_sources(self) -> Path:
        return self.resolve("/etc/apt/sources.list.d/debian.sources")

    @property
    def apt_preferences_dir(self) -> Path:
        return self.resolve("/etc/apt/preferences.d")

    @property
    def keyring_dir(self) -> Path:
        return self.resolve("/usr/share/keyrings")

    @property
    def cuda_repo_root(self) -> Path:
        return self.resolve("/var")

    @property
    def gpu_agent_root(self) -> Path:
        return self.resolve("/opt/google")

    @property
    def mamba_prefix(self) -> Path:
        return self.resolve("/opt/conda/mamba")
