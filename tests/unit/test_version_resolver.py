"""Unit tests for version resolution."""

import pytest

from gpu_provisioner.adapters.outbound.mock_host import MockCommandRunner, MockFetcher, MockMetadata
from gpu_provisioner.domain.entities.platform import OSFamily, PlatformIdentity
from gpu_provisioner.domain.exceptions import (
    UnsupportedFrameworkError,
    UnsupportedRuntimeError,
    UnsupportedVersionError,
)
from gpu_provisioner.domain.services.version_resolver import (
    VersionResolver,
    driver_runfile_url,
    parse_spark_version,
)

SPARK_BANNER = """Welcome to
      ____              __
     / __/__  ___ _____/ /__
    _\\ \\/ _ \\/ _ `/ __/  '_/
   /___/ .__/\\_,_/_/ /_/\\_\\   version 3.3.2
      /_/

Using Scala version 2.12.18, OpenJDK 64-Bit Server VM, 1.8.0_392
"""


def make_resolver(attributes=None, spark_banner=SPARK_BANNER, probe=True):
    runner = MockCommandRunner()
    runner.script(["spark-submit", "--version"], stderr=spark_banner)
    fetcher = MockFetcher(probe_default=probe)
    return VersionResolver(MockMetadata(attributes), runner, fetcher), runner, fetcher


@pytest.mark.unit
class TestSparkVersion:
    """Test Spark version detection."""

    def test_parse_first_version(self):
        assert parse_spark_version(SPARK_BANNER) == "3.3"

    def test_parse_nothing(self):
        assert parse_spark_version("command not found") is None

    def test_spark_3_accepted(self):
        resolver, _, _ = make_resolver()
        assert resolver.detect_framework_version() == "3.3"

    def test_spark_2_rejected(self):
        resolver, _, _ = make_resolver(spark_banner="   version 2.4.8")
        with pytest.raises(UnsupportedFrameworkError, match="2.4"):
            resolver.detect_framework_version()

    def test_missing_spark_rejected(self):
        resolver, _, _ = make_resolver(spark_banner="")
        with pytest.raises(UnsupportedFrameworkError):
            resolver.detect_framework_version()


@pytest.mark.unit
class TestVersionTriple:
    """Test defaults, OS exceptions and operator overrides."""

    def test_defaults(self):
        resolver, _, _ = make_resolver()
        versions = resolver.resolve_versions(PlatformIdentity(OSFamily.DEBIAN, "11"))
        assert versions.toolkit_version == "12.2.2"
        assert versions.driver_version == "535.104.05"
        assert versions.plugin_version == "24.02.0"
        assert versions.ml_library_version == "1.7.6"

    def test_ubuntu_18_exception(self):
        """Ubuntu 18 without overrides gets CUDA 12.1.1 / driver 530.30.02."""
        resolver, _, _ = make_resolver()
        versions = resolver.resolve_versions(PlatformIdentity(OSFamily.UBUNTU, "18.04"))
        assert versions.toolkit_version == "12.1.1"
        assert versions.driver_version == "530.30.02"

    def test_debian_12_exception(self):
        """Debian 12 without overrides gets CUDA 12.3.2 / driver 545.23.08."""
        resolver, _, _ = make_resolver()
        versions = resolver.resolve_versions(PlatformIdentity(OSFamily.DEBIAN, "12"))
        assert (versions.toolkit_version, versions.driver_version) == ("12.3.2", "545.23.08")

    def test_override_beats_os_exception(self):
        """Debian 12 with an operator driver override keeps the override."""
        resolver, _, _ = make_resolver({"driver-version": "999.0.0"})
        versions = resolver.resolve_versions(PlatformIdentity(OSFamily.DEBIAN, "12"))
        assert versions.driver_version == "999.0.0"
        assert versions.toolkit_version == "12.3.2"

    def test_empty_override_ignored(self):
        resolver, _, _ = make_resolver({"cuda-version": "  "})
        versions = resolver.resolve_versions(PlatformIdentity(OSFamily.ROCKY, "8.8"))
        assert versions.toolkit_version == "12.2.2"

    def test_malformed_toolkit_fails_closed(self):
        resolver, _, _ = make_resolver({"cuda-version": "latest"})
        with pytest.raises(UnsupportedVersionError, match="CUDA"):
            resolver.resolve_versions(PlatformIdentity(OSFamily.DEBIAN, "11"))

    def test_derived_fields(self):
        resolver, _, _ = make_resolver()
        versions = resolver.resolve_versions(PlatformIdentity(OSFamily.DEBIAN, "11"))
        assert versions.toolkit_major == "12.2"
        assert versions.toolkit_dashed == "12-2"
        assert versions.driver_branch == "535"


@pytest.mark.unit
class TestUrls:
    """Test driver and toolkit URL resolution."""

    def test_driver_url_probed(self):
        resolver, _, fetcher = make_resolver()
        url = resolver.resolve_driver_url("535.104.05")
        assert url == driver_runfile_url("535.104.05")
        assert fetcher.probed == [url]

    def test_driver_url_falls_back_to_short_version(self):
        resolver, _, _ = make_resolver(probe=False)
        url = resolver.resolve_driver_url("520.56.06")
        assert url.endswith("/520.56/NVIDIA-Linux-x86_64-520.56.run")

    def test_operator_driver_url_not_probed(self):
        resolver, _, fetcher = make_resolver({"gpu-driver-url": "https://mirror.example/driver.run"})
        assert resolver.resolve_driver_url("535.104.05") == "https://mirror.example/driver.run"
        assert fetcher.probed == []

    def test_legacy_toolkit_url(self):
        resolver, _, _ = make_resolver({"cuda-version": "11.8.0"})
        context = resolver.resolve(PlatformIdentity(OSFamily.DEBIAN, "11"))
        assert context.legacy is not None
        assert context.toolkit_url.endswith("cuda_11.8.0_520.61.05_linux.run")
        assert context.installer_driver_version == "520.56.06"

    def test_derived_toolkit_url(self):
        resolver, _, _ = make_resolver()
        context = resolver.resolve(PlatformIdentity(OSFamily.DEBIAN, "11"))
        assert context.legacy is None
        assert context.toolkit_url == (
            "https://developer.download.nvidia.com/compute/cuda/12.2.2/local_installers/"
            "cuda_12.2.2_535.104.05_linux.run"
        )

    def test_gpu_driver_version_override(self):
        resolver, _, _ = make_resolver({"gpu-driver-version": "550.54.14"})
        context = resolver.resolve(PlatformIdentity(OSFamily.DEBIAN, "11"))
        assert context.installer_driver_version == "550.54.14"
        assert "550.54.14" in context.driver_url


@pytest.mark.unit
class TestContext:
    """Test full context resolution."""

    def test_role_and_flags(self):
        resolver, _, _ = make_resolver({
            "dataproc-role": "Master",
            "dataproc-master": "cluster-m",
            "install-gpu-agent": "TRUE",
        })
        context = resolver.resolve(PlatformIdentity(OSFamily.UBUNTU, "22.04"))
        assert context.is_master
        assert context.master == "cluster-m"
        assert context.install_gpu_agent is True
        assert context.framework_version == "3.3"

    def test_gpu_agent_defaults_off(self):
        resolver, _, _ = make_resolver()
        context = resolver.resolve(PlatformIdentity(OSFamily.UBUNTU, "22.04"))
        assert context.install_gpu_agent is False
        assert not context.is_master

    def test_unsupported_runtime(self):
        resolver, _, _ = make_resolver({"rapids-runtime": "DASK"})
        with pytest.raises(UnsupportedRuntimeError, match="DASK"):
            resolver.resolve(PlatformIdentity(OSFamily.DEBIAN, "11"))
