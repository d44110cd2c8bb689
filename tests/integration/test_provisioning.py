"""Integration tests for full provisioning runs against an in-memory node."""

import pytest

from gpu_provisioner.adapters.inbound.cli import main
from gpu_provisioner.adapters.outbound.hadoop_config import HadoopConfigStore
from gpu_provisioner.adapters.outbound.mock_host import (
    MockCommandRunner,
    MockFetcher,
    MockMetadata,
    MockPackageManager,
    MockSupervisor,
)
from gpu_provisioner.application.provisioner import NodeProvisioner
from gpu_provisioner.domain.entities.topology import MIG_SCRIPTS_DIR
from gpu_provisioner.domain.exceptions import (
    InstallationError,
    RebootScheduled,
    SecureBootEnabledError,
    UnsupportedFrameworkError,
    UnsupportedPlatformError,
)
from gpu_provisioner.domain.services.mig_detector import NVIDIA_SMI
from gpu_provisioner.infrastructure.config import ObservabilityConfig
from gpu_provisioner.infrastructure.container import Container
from gpu_provisioner.ports.outbound import ConfigStoreError

LSPCI_GPU = "00:04.0 3D controller: NVIDIA Corporation TU104GL [Tesla T4] (rev a1)\n"
MIG_QUERY = [NVIDIA_SMI, "--query-gpu=mig.mode.current", "--format=csv,noheader"]
YARN_SERVICES = ["hadoop-yarn-resourcemanager.service", "hadoop-yarn-nodemanager.service"]


class Node:
    """A scripted node plus the provisioner wired to it."""

    def __init__(self, node_paths, executor, metrics_registry, distributor="Debian", release="11",
                 attributes=None, gpu=True, spark="3.3.2",
                 secure_boot="disabled", unavailable=()):
        self.paths = node_paths
        self.runner = MockCommandRunner()
        self.metadata = MockMetadata(attributes)
        self.fetcher = MockFetcher()
        self.supervisor = MockSupervisor(running=set(YARN_SERVICES))
        self.packages = None
        self.unavailable = set(unavailable)
        self.metrics = metrics_registry

        self.runner.script(["lsb_release", "-is"], stdout=f"{distributor}\n")
        self.runner.script(["lsb_release", "-rs"], stdout=f"{release}\n")
        self.runner.script(["mokutil", "--sb-state"], stdout=f"SecureBoot {secure_boot}\n")
        self.runner.script(["spark-submit", "--version"], stderr=f"   version {spark}\n")
        self.runner.script(["uname", "-r"], stdout="5.10.0-26-cloud-amd64\n")
        self.runner.script(["lspci"], stdout=LSPCI_GPU if gpu else "")

        self.provisioner = NodeProvisioner(
            runner=self.runner,
            metadata=self.metadata,
            fetcher=self.fetcher,
            store=HadoopConfigStore(),
            supervisor=self.supervisor,
            packages_for=self._packages_for,
            executor=executor,
            paths=node_paths,
            metrics=metrics_registry,
            install_mamba=False,
        )

    def _packages_for(self, platform):
        self.packages = MockPackageManager(platform.package_family)
        self.packages.unavailable |= self.unavailable
        return self.packages

    def conf(self, name):
        return (self.paths.hadoop_conf_dir / name).read_text()

    def step_count(self, step, status):
        return self.metrics.registry.get_sample_value(
            "provisioning_steps_total", {"step": step, "status": status}
        )


@pytest.fixture
def make_node(node_paths, executor, metrics_registry):
    def factory(**kwargs):
        return Node(node_paths, executor, metrics_registry, **kwargs)
    return factory


@pytest.mark.integration
class TestGpuWorker:
    """Test a GPU worker without MIG."""

    def test_full_run(self, make_node):
        node = make_node()

        result = node.provisioner.run()

        assert result.steps == [
            "preflight", "resolve", "package_sources", "kernel",
            "gpu_yarn", "spark_rapids", "restart_services",
        ]
        assert result.topology.requires_driver_install
        assert str(result.platform) == "debian 11"

        # driver and toolkit runfiles
        assert node.runner.ran(["bash", str(node.paths.work_dir / "driver.run")])
        assert node.runner.ran(["bash", str(node.paths.work_dir / "cuda.run")])
        assert "install-headers.service" in node.supervisor.units
        assert "dataproc-cgroup-device-permissions.service" in node.supervisor.started

        # YARN
        yarn_site = node.conf("yarn-site.xml")
        assert "<value>/usr/bin</value>" in yarn_site
        assert "[gpu]\nmodule.enabled=true\n" in node.conf("container-executor.cfg")
        assert "gpu.major-device-number" not in node.conf("container-executor.cfg")

        # Spark
        assert (node.paths.spark_gpu_script_dir / "getGpusResources.sh").exists()
        defaults = (node.paths.spark_conf_dir / "spark-defaults.conf").read_text()
        assert "spark.plugins=com.nvidia.spark.SQLPlugin" in defaults
        assert len(list(node.paths.spark_jars_dir.glob("*.jar"))) == 3

        # restarted once inside the GPU step and once at the end
        assert node.supervisor.restarted == YARN_SERVICES * 2
        assert result.restarted_services == YARN_SERVICES

        # no exclusive mode on Spark 3, no agent unless requested
        assert not node.runner.ran([NVIDIA_SMI, "-c"])
        assert node.supervisor.enabled_files == []
        assert node.step_count("gpu_yarn", "ok") == 1

    def test_rerun_leaves_configuration_unchanged(self, make_node):
        node = make_node()
        node.provisioner.run()
        files = {
            path: path.read_text()
            for directory in (node.paths.hadoop_conf_dir, node.paths.spark_conf_dir)
            for path in directory.iterdir()
        }

        node.provisioner.run()

        assert {path: path.read_text() for path in files} == files

    def test_gpu_agent(self, make_node):
        node = make_node(attributes={"install-gpu-agent": "true"})
        checkout = node.paths.gpu_agent_root / "compute-gpu-monitoring" / "linux" / "systemd"
        checkout.mkdir(parents=True)
        (checkout / "google_gpu_monitoring_agent_venv.service").write_text("[Unit]\n")

        node.provisioner.run()

        assert node.supervisor.enabled_files == [
            node.paths.systemd_lib_dir / "google_gpu_monitoring_agent_venv.service"
        ]

    def test_ubuntu_18_defaults(self, make_node):
        node = make_node(distributor="Ubuntu", release="18.04")
        repo = node.paths.cuda_repo_root / "cuda-repo-ubuntu1804-12-1-local"
        repo.mkdir(parents=True)
        (repo / "cuda-0FD2A8C7-keyring.gpg").write_bytes(b"key")

        result = node.provisioner.run()

        assert result.context.versions.toolkit_version == "12.1.1"
        assert result.context.versions.driver_version == "530.30.02"
        assert "cuda-drivers-530" in node.packages.installed
        assert "cuda-toolkit-12-1" in node.packages.installed


@pytest.mark.integration
class TestMigWorker:
    """Test a GPU worker with MIG enabled on every GPU."""

    def test_driver_skipped(self, make_node):
        node = make_node(attributes={"install-gpu-agent": "true"})
        node.runner.script(MIG_QUERY, stdout="Enabled\nEnabled\n")
        node.runner.script([NVIDIA_SMI, "-L"], stdout="GPU 0: A100\n  MIG 3g.20gb Device 0:\n")
        node.paths.proc_devices.parent.mkdir(parents=True)
        node.paths.proc_devices.write_text("Character devices:\n236 nvidia-caps\n")

        result = node.provisioner.run()

        assert result.topology.partitioned
        assert not node.runner.ran(["bash", str(node.paths.work_dir / "driver.run")])
        assert node.supervisor.enabled_files == []
        # headers are still installed for the preinstalled driver
        assert "linux-headers-5.10.0-26-cloud-amd64" in node.packages.installed
        assert f"<value>{MIG_SCRIPTS_DIR}</value>" in node.conf("yarn-site.xml")
        assert "gpu.major-device-number=236" in node.conf("container-executor.cfg")
        assert "export MIG_AS_GPU_ENABLED=1" in node.conf("yarn-env.sh")
        assert node.metrics.registry.get_sample_value("accelerator_partitioned") == 1


@pytest.mark.integration
class TestNodesWithoutGpu:
    """Test nodes without an NVIDIA device."""

    def test_worker(self, make_node):
        node = make_node(gpu=False)

        result = node.provisioner.run()

        assert not result.topology.present
        assert "yarn.io/gpu" in node.conf("resource-types.xml")
        assert not (node.paths.hadoop_conf_dir / "container-executor.cfg").exists()
        assert not (node.paths.spark_gpu_script_dir / "getGpusResources.sh").exists()
        assert node.fetcher.urls and all(url.endswith(".jar") for url in node.fetcher.urls)

    def test_master(self, make_node):
        node = make_node(gpu=False, attributes={"dataproc-role": "Master"})

        node.provisioner.run()

        assert "<value>/usr/bin</value>" in node.conf("yarn-site.xml")
        assert "[cgroups]" in node.conf("container-executor.cfg")
        assert (node.paths.spark_gpu_script_dir / "getGpusResources.sh").exists()
        assert not node.runner.ran(["bash"])


@pytest.mark.integration
class TestFatalErrors:
    """Test that unsupported setups stop before touching the node."""

    def assert_untouched(self, node):
        assert node.packages is None
        assert not node.paths.root.exists()
        assert node.fetcher.fetched == []

    def test_spark_2(self, make_node):
        node = make_node(spark="2.4.8")

        with pytest.raises(UnsupportedFrameworkError):
            node.provisioner.run()
        self.assert_untouched(node)
        assert node.step_count("resolve", "failed") == 1

    def test_unsupported_release(self, make_node):
        node = make_node(distributor="Ubuntu", release="16.04")

        with pytest.raises(UnsupportedPlatformError):
            node.provisioner.run()
        self.assert_untouched(node)

    def test_unknown_distribution(self, make_node):
        node = make_node(distributor="Arch", release="rolling")

        with pytest.raises(UnsupportedPlatformError):
            node.provisioner.run()
        self.assert_untouched(node)

    def test_secure_boot(self, make_node):
        node = make_node(secure_boot="enabled")

        with pytest.raises(SecureBootEnabledError):
            node.provisioner.run()
        self.assert_untouched(node)


@pytest.mark.integration
class TestRockyKernelUpgrade:
    """Test the reboot path on the RPM family."""

    def test_reboot_ends_run(self, make_node):
        node = make_node(
            distributor="Rocky", release="8.8", unavailable={"kernel-devel-5.10.0-26-cloud-amd64"}
        )
        node.runner.script(
            ["yum", "info", "--installed"],
            stdout="Version : 4.18.0\nRelease : 477.10.1.el8_8\n",
        )
        node.runner.script(
            ["yum", "info", "--available"],
            stdout="Version : 4.18.0\nRelease : 513.5.1.el8_9\n",
        )
        with pytest.raises(RebootScheduled):
            node.provisioner.run()

        assert node.supervisor.reboots == 1
        assert node.packages.installed == ["kernel"]
        assert not node.paths.hadoop_conf_dir.exists()
        assert node.step_count("kernel", "reboot") == 1


@pytest.mark.integration
class TestCli:
    """Test command-line exit codes."""

    class StubProvisioner:
        def __init__(self, error):
            self.error = error

        def run(self):
            raise self.error

    def configure(self, monkeypatch, test_config, error):
        test_config.observability = ObservabilityConfig(log_format="console")
        monkeypatch.setattr(Container, "provisioner", lambda self: TestCli.StubProvisioner(error))
        return test_config

    def test_provisioning_error(self, monkeypatch, test_config, capsys):
        config = self.configure(monkeypatch, test_config, InstallationError("ldconfig failed"))

        assert main(config) == 1
        assert "Error: ldconfig failed" in capsys.readouterr().err

    def test_malformed_configuration(self, monkeypatch, test_config, capsys):
        error = ConfigStoreError("Malformed Hadoop configuration: mismatched tag: line 3, column 2")
        config = self.configure(monkeypatch, test_config, error)

        assert main(config) == 1
        assert "Error: Malformed Hadoop configuration" in capsys.readouterr().err

    def test_reboot_is_success(self, monkeypatch, test_config):
        config = self.configure(monkeypatch, test_config, RebootScheduled("4.18.0-513.5.1.el8_9"))

        assert main(config) == 0

    def test_metrics_textfile(self, monkeypatch, test_config, temp_dir):
        config = self.configure(monkeypatch, test_config, InstallationError("boom"))
        config.observability = ObservabilityConfig(
            log_format="console", metrics_textfile=temp_dir / "metrics" / "gpu.prom"
        )

        assert main(config) == 1
        assert (temp_dir / "metrics" / "gpu.prom").exists()
