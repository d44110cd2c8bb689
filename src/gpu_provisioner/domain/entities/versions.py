"""Driver, toolkit and library version entities.

References:
    - https://docs.nvidia.com/deeplearning/frameworks/support-matrix/index.html
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

NVIDIA_BASE_DL_URL = "https://developer.download.nvidia.com/compute"


@dataclass(frozen=True)
class VersionTriple:
    """Versions of everything the node installs."""
    driver_version: str           # e.g. "535.104.05"
    toolkit_version: str          # CUDA, e.g. "12.2.2"
    plugin_version: str           # RAPIDS Accelerator for Spark
    ml_library_version: str       # XGBoost

    @property
    def toolkit_major(self) -> str:
        """Toolkit version truncated at the last dot ("12.2.2" -> "12.2")."""
        return self.toolkit_version.rsplit(".", 1)[0]

    @property
    def toolkit_dashed(self) -> str:
        """Package-name form of the toolkit major ("12.2" -> "12-2")."""
        return self.toolkit_major.replace(".", "-")

    @property
    def driver_branch(self) -> str:
        """Driver branch ("535.104.05" -> "535")."""
        return self.driver_version.split(".")[0]

    @property
    def is_complete(self) -> bool:
        return all((
            self.driver_version,
            self.toolkit_version,
            self.plugin_version,
            self.ml_library_version,
        ))


@dataclass(frozen=True)
class LegacyToolkit:
    """Historical CUDA release with its matching driver and libraries."""
    driver: str
    cudnn: str
    nccl: str
    toolkit_full: str
    runfile_url: str


def _runfile(path: str) -> str:
    return f"{NVIDIA_BASE_DL_URL}/cuda/{path}"


LEGACY_TOOLKITS: dict[str, LegacyToolkit] = {
    "10.1": LegacyToolkit(
        "418.88", "7.6.4.38", "2.4.8", "10.1.243",
        _runfile("10.1/Prod/local_installers/cuda_10.1.243_418.87.00_linux.run"),
    ),
    "10.2": LegacyToolkit(
        "440.64.00", "7.6.5.32", "2.5.6", "10.2.89",
        _runfile("10.2/Prod/local_installers/cuda_10.2.89_440.33.01_linux.run"),
    ),
    "11.0": LegacyToolkit(
        "450.51.06", "8.0.4.30", "2.7.8", "11.0.3",
        _runfile("11.0.3/local_installers/cuda_11.0.3_450.51.06_linux.run"),
    ),
    "11.1": LegacyToolkit(
        "455.45.01", "8.0.5.39", "2.8.3", "11.1.0",
        _runfile("11.1.0/local_installers/cuda_11.1.0_455.23.05_linux.run"),
    ),
    "11.2": LegacyToolkit(
        "460.73.01", "8.1.1.33", "2.8.3", "11.2.2",
        _runfile("11.2.2/local_installers/cuda_11.2.2_460.32.03_linux.run"),
    ),
    "11.5": LegacyToolkit(
        "495.29.05", "8.3.3.40", "2.11.4", "11.5.2",
        _runfile("11.5.2/local_installers/cuda_11.5.2_495.29.05_linux.run"),
    ),
    "11.6": LegacyToolkit(
        "510.47.03", "8.4.1.50", "2.11.4", "11.6.2",
        _runfile("11.6.2/local_installers/cuda_11.6.2_510.47.03_linux.run"),
    ),
    "11.7": LegacyToolkit(
        "515.65.01", "8.5.0.96", "2.12.12", "11.7.1",
        _runfile("11.7.1/local_installers/cuda_11.7.1_515.65.01_linux.run"),
    ),
    "11.8": LegacyToolkit(
        "520.56.06", "8.6.0.163", "2.15.5", "11.8.0",
        _runfile("11.8.0/local_installers/cuda_11.8.0_520.61.05_linux.run"),
    ),
}


def lookup_legacy(toolkit_major: str) -> Optional[LegacyToolkit]:
    """Best-effort lookup; a miss is not an error."""
    return LEGACY_TOOLKITS.get(toolkit_major)
