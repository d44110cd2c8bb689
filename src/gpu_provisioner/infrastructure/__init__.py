"""Infrastructure layer - cross-cutting concerns."""

from gpu_provisioner.infrastructure.config import Config, get_config
from gpu_provisioner.infrastructure.logging import get_logger, setup_logging
from gpu_provisioner.infrastructure.metrics import MetricsRegistry
from gpu_provisioner.infrastructure.tracing import get_tracer, setup_tracing

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
]
