"""Version resolution for driver, toolkit and Spark libraries.

Resolution order for driver and toolkit, lowest to highest precedence:
1. Built-in defaults (driver 535.104.05, CUDA 12.2.2)
2. OS exceptions (Ubuntu 18 -> CUDA 12.1.1, Debian 12 -> CUDA 12.3.2)
3. Operator metadata (cuda-version, driver-version)

Nothing here has side effects on the node: the only external calls are
``spark-submit --version``, metadata lookups and a HEAD request.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from gpu_provisioner.domain.entities.context import SPARK_RUNTIME, ProvisioningContext
from gpu_provisioner.domain.entities.platform import OSFamily, PlatformIdentity
from gpu_provisioner.domain.entities.versions import (
    NVIDIA_BASE_DL_URL,
    LegacyToolkit,
    VersionTriple,
    lookup_legacy,
)
from gpu_provisioner.domain.exceptions import (
    UnsupportedFrameworkError,
    UnsupportedRuntimeError,
    UnsupportedVersionError,
)
from gpu_provisioner.ports.outbound import (
    ArtifactFetcherPort,
    CommandRunnerPort,
    MetadataPort,
)

logger = logging.getLogger(__name__)

DEFAULT_DRIVER_VERSION = "535.104.05"
DEFAULT_TOOLKIT_VERSION = "12.2.2"
DEFAULT_PLUGIN_VERSION = "24.02.0"
DEFAULT_ML_LIBRARY_VERSION = "1.7.6"

# (family, major release) -> (toolkit, driver): newest CUDA each release supports
OS_EXCEPTIONS: dict[tuple[OSFamily, str], tuple[str, str]] = {
    (OSFamily.UBUNTU, "18"): ("12.1.1", "530.30.02"),
    (OSFamily.DEBIAN, "12"): ("12.3.2", "545.23.08"),
}

DRIVER_RUNFILE_BASE = "https://download.nvidia.com/XFree86/Linux-x86_64"

_SPARK_VERSION_RE = re.compile(r"version\s+(\d+\.\d+)")
_DOTTED_VERSION_RE = re.compile(r"^\d+(\.\d+)+$")


def parse_spark_version(output: str) -> Optional[str]:
    """Extract "major.minor" from ``spark-submit --version`` output."""
    match = _SPARK_VERSION_RE.search(output)
    return match.group(1) if match else None


def driver_runfile_url(version: str) -> str:
    return f"{DRIVER_RUNFILE_BASE}/{version}/NVIDIA-Linux-x86_64-{version}.run"


def toolkit_runfile_url(toolkit_version: str, driver_version: str) -> str:
    return (
        f"{NVIDIA_BASE_DL_URL}/cuda/{toolkit_version}/local_installers/"
        f"cuda_{toolkit_version}_{driver_version}_linux.run"
    )


def parse_flag(value: str) -> bool:
    return value.strip().lower() == "true"


class VersionResolver:
    """Resolve a ProvisioningContext for the detected platform."""

    def __init__(
        self,
        metadata: MetadataPort,
        runner: CommandRunnerPort,
        fetcher: ArtifactFetcherPort,
    ) -> None:
        self._metadata = metadata
        self._runner = runner
        self._fetcher = fetcher

    def detect_framework_version(self) -> str:
        """Detect the installed Spark version; only 3.x is supported.

        Raises:
            UnsupportedFrameworkError: If Spark is missing or not 3.x.
        """
        result = self._runner.run(["spark-submit", "--version"])
        # spark-submit prints its banner on stderr
        version = parse_spark_version(result.stderr + "\n" + result.stdout)
        if version is None or not version.startswith("3"):
            raise UnsupportedFrameworkError(
                f"Spark version {version or 'unknown'} is not supported. "
                "Please upgrade Spark to one of the supported versions."
            )
        return version

    def resolve_versions(self, platform: PlatformIdentity) -> VersionTriple:
        """Resolve the version triple with defaults, OS exceptions and overrides.

        Raises:
            UnsupportedVersionError: If a field is empty or malformed.
        """
        toolkit, driver = OS_EXCEPTIONS.get(
            (platform.family, platform.major),
            (DEFAULT_TOOLKIT_VERSION, DEFAULT_DRIVER_VERSION),
        )

        versions = VersionTriple(
            driver_version=self._metadata.get("driver-version", driver),
            toolkit_version=self._metadata.get("cuda-version", toolkit),
            plugin_version=self._metadata.get("spark-rapids-version", DEFAULT_PLUGIN_VERSION),
            ml_library_version=self._metadata.get("xgboost-version", DEFAULT_ML_LIBRARY_VERSION),
        )

        if not versions.is_complete:
            raise UnsupportedVersionError(f"Incomplete version resolution: {versions}")
        for label, value in (("CUDA", versions.toolkit_version), ("driver", versions.driver_version)):
            if not _DOTTED_VERSION_RE.match(value):
                raise UnsupportedVersionError(f"Malformed {label} version: {value!r}")

        return versions

    def resolve_driver_url(self, installer_driver_version: str) -> str:
        """Pick the driver runfile URL.

        An operator URL wins. Otherwise the full-version URL is probed and,
        unless it answers 200, the major.minor URL is used instead.
        """
        override = self._metadata.get("gpu-driver-url", "")
        if override:
            return override

        url = driver_runfile_url(installer_driver_version)
        if self._fetcher.probe(url):
            return url

        short_version = installer_driver_version.rsplit(".", 1)[0]
        logger.info(f"Driver runfile not found at {url}, falling back to {short_version}")
        return driver_runfile_url(short_version)

    def resolve_toolkit_url(self, versions: VersionTriple, legacy: Optional[LegacyToolkit]) -> str:
        default = (
            legacy.runfile_url
            if legacy
            else toolkit_runfile_url(versions.toolkit_version, versions.driver_version)
        )
        return self._metadata.get("cuda-url", default)

    def resolve_runtime(self) -> str:
        runtime = self._metadata.get("rapids-runtime", SPARK_RUNTIME)
        if runtime != SPARK_RUNTIME:
            raise UnsupportedRuntimeError(f"Unsupported RAPIDS Runtime: {runtime}")
        return runtime

    def resolve(self, platform: PlatformIdentity) -> ProvisioningContext:
        """Resolve everything one provisioning run needs.

        Raises:
            UnsupportedFrameworkError: Spark is not 3.x.
            UnsupportedVersionError: Versions are incomplete or malformed.
            UnsupportedRuntimeError: Runtime selector is not SPARK.
        """
        framework_version = self.detect_framework_version()
        versions = self.resolve_versions(platform)
        runtime = self.resolve_runtime()

        legacy = lookup_legacy(versions.toolkit_major)
        if legacy is None:
            logger.debug(f"No legacy driver entry for CUDA {versions.toolkit_major}")
        installer_driver_version = self._metadata.get(
            "gpu-driver-version",
            legacy.driver if legacy else versions.driver_version,
        )

        context = ProvisioningContext(
            platform=platform,
            versions=versions,
            framework_version=framework_version,
            installer_driver_version=installer_driver_version,
            driver_url=self.resolve_driver_url(installer_driver_version),
            toolkit_url=self.resolve_toolkit_url(versions, legacy),
            legacy=legacy,
            runtime=runtime,
            role=self._metadata.get("dataproc-role", ""),
            master=self._metadata.get("dataproc-master", ""),
            install_gpu_agent=parse_flag(self._metadata.get("install-gpu-agent", "false")),
        )
        logger.info(
            f"Resolved CUDA {versions.toolkit_version}, driver {versions.driver_version}, "
            f"RAPIDS {versions.plugin_version}, XGBoost {versions.ml_library_version} "
            f"for {platform} (Spark {framework_version})"
        )
        return context
