"""Pytest configuration and shared fixtures for GPU provisioner tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest
from prometheus_client import CollectorRegistry

from gpu_provisioner.adapters.outbound.hadoop_config import HadoopConfigStore
from gpu_provisioner.adapters.outbound.mock_host import (
    MockCommandRunner,
    MockFetcher,
    MockMetadata,
    MockPackageManager,
    MockSupervisor,
)
from gpu_provisioner.domain.entities.context import ProvisioningContext
from gpu_provisioner.domain.entities.platform import OSFamily, PlatformIdentity
from gpu_provisioner.domain.entities.versions import VersionTriple, lookup_legacy
from gpu_provisioner.domain.services.retry_executor import RetryExecutor
from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.domain.value_objects.retry_policy import RetryPolicy
from gpu_provisioner.infrastructure.config import Config, PathsConfig, RetryConfig
from gpu_provisioner.infrastructure.container import Container
from gpu_provisioner.infrastructure.metrics import MetricsRegistry


@pytest.fixture(autouse=True)
def reset_container():
    """Reset the DI container before each test."""
    Container.reset()
    yield
    Container.reset()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def node_paths(temp_dir: Path) -> NodePaths:
    """Node filesystem rooted in a scratch directory."""
    return NodePaths(root=temp_dir / "node", work_dir=temp_dir / "work")


@pytest.fixture
def test_config(temp_dir: Path) -> Config:
    """Provide a test configuration."""
    return Config(
        paths=PathsConfig(root=temp_dir / "node", work_dir=temp_dir / "work"),
        retry=RetryConfig(max_attempts=3, backoff_seconds=0),
    )


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry."""
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by the retry executor."""
    return []


@pytest.fixture
def executor(sleeps: list[float], metrics_registry: MetricsRegistry) -> RetryExecutor:
    """Retry executor that records its delays instead of sleeping."""
    return RetryExecutor(
        RetryPolicy(max_attempts=3, backoff_seconds=5),
        sleep=sleeps.append,
        metrics=metrics_registry,
    )


@pytest.fixture
def runner() -> MockCommandRunner:
    return MockCommandRunner()


@pytest.fixture
def metadata() -> MockMetadata:
    return MockMetadata()


@pytest.fixture
def fetcher() -> MockFetcher:
    return MockFetcher()


@pytest.fixture
def supervisor() -> MockSupervisor:
    return MockSupervisor()


@pytest.fixture
def packages() -> MockPackageManager:
    return MockPackageManager("apt")


@pytest.fixture
def store() -> HadoopConfigStore:
    return HadoopConfigStore()


@pytest.fixture
def make_context() -> Callable[..., ProvisioningContext]:
    """Build a resolved ProvisioningContext without running the resolver."""

    def factory(
        family: OSFamily = OSFamily.DEBIAN,
        release: str = "11",
        driver: str = "535.104.05",
        toolkit: str = "12.2.2",
        **overrides,
    ) -> ProvisioningContext:
        versions = VersionTriple(
            driver_version=driver,
            toolkit_version=toolkit,
            plugin_version="24.02.0",
            ml_library_version="1.7.6",
        )
        fields = dict(
            platform=PlatformIdentity(family=family, release=release),
            versions=versions,
            framework_version="3.3",
            installer_driver_version=driver,
            driver_url=f"https://download.nvidia.com/XFree86/Linux-x86_64/{driver}/NVIDIA-Linux-x86_64-{driver}.run",
            toolkit_url=f"https://developer.download.nvidia.com/compute/cuda/{toolkit}/local_installers/cuda.run",
            legacy=lookup_legacy(versions.toolkit_major),
        )
        fields.update(overrides)
        return ProvisioningContext(**fields)

    return factory


# Pytest markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
