"""Configuration for the GPU node provisioner.

Cluster-level choices (versions, URLs, flags) come from instance
metadata. These settings only cover how the procedure itself runs and
are read from ``GPU_PROVISIONER_*`` environment variables, e.g.
``GPU_PROVISIONER_RETRY__MAX_ATTEMPTS=3``.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from gpu_provisioner.domain.value_objects.node_paths import NodePaths
from gpu_provisioner.domain.value_objects.retry_policy import RetryPolicy


class PathsConfig(BaseModel):
    """Filesystem configuration."""

    root: Path = Field(default=Path("/"))
    work_dir: Path = Field(default=Path("/tmp/gpu-provisioner"))

    def node_paths(self) -> NodePaths:
        return NodePaths(root=self.root, work_dir=self.work_dir)


class RetryConfig(BaseModel):
    """Retry configuration for network and package operations."""

    max_attempts: int = Field(default=10, ge=1)
    backoff_seconds: float = Field(default=5.0, ge=0)

    def policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.max_attempts, backoff_seconds=self.backoff_seconds)


class MetadataConfig(BaseModel):
    """Instance metadata server configuration."""

    url: str = Field(default="http://metadata.google.internal/computeMetadata/v1/instance/attributes")
    timeout_seconds: float = Field(default=5.0, gt=0)


class DownloadConfig(BaseModel):
    """Artifact download configuration."""

    timeout_seconds: float = Field(default=120.0, gt=0)
    command_timeout_seconds: float | None = Field(default=None)


class FeaturesConfig(BaseModel):
    """Optional provisioning steps."""

    install_mamba: bool = Field(default=True)


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    otel_endpoint: str | None = Field(default=None)
    console_export: bool = Field(default=False)
    metrics_textfile: Path | None = Field(default=None)


class Config(BaseSettings):
    """Main configuration."""

    model_config = SettingsConfigDict(env_prefix="GPU_PROVISIONER_", env_nested_delimiter="__")

    paths: PathsConfig = Field(default_factory=PathsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    metadata: MetadataConfig = Field(default_factory=MetadataConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    features: FeaturesConfig = Field(default_factory=FeaturesConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    return Config()
