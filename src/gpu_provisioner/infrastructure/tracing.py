"""OpenTelemetry tracing for provisioning runs.

Each provisioning step is one span under the tracer set up here. The
process exits as soon as the run ends, so ``shutdown_tracing`` must be
called to flush spans before that.
"""

from __future__ import annotations

import socket
from contextlib import contextmanager
from typing import Any, Generator, Mapping, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.trace import Status, StatusCode

from gpu_provisioner import __version__
from gpu_provisioner.domain.exceptions import RebootScheduled

SERVICE_NAME = "gpu_provisioner"

_provider: Optional[TracerProvider] = None


def build_provider(
    service_name: str = SERVICE_NAME,
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
) -> TracerProvider:
    """Tracer provider tagged with the node's hostname.

    Every node of a cluster runs the same initialization action, so
    ``host.name`` is what tells their traces apart.
    """
    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": __version__,
            "host.name": socket.gethostname(),
        }
    )
    provider = TracerProvider(resource=resource)

    processors: list[SpanProcessor] = []
    if otlp_endpoint:
        processors.append(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))
    if console_export:
        # written as each step ends, so a run killed by a reboot still shows its steps
        processors.append(SimpleSpanProcessor(ConsoleSpanExporter()))
    for processor in processors:
        provider.add_span_processor(processor)
    return provider


def setup_tracing(
    service_name: str = SERVICE_NAME,
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
) -> trace.Tracer:
    """Install the global tracer provider and return the provisioning tracer."""
    global _provider

    _provider = build_provider(service_name, otlp_endpoint, console_export)
    trace.set_tracer_provider(_provider)
    return trace.get_tracer(service_name, __version__)


def shutdown_tracing() -> None:
    """Flush pending spans."""
    global _provider
    if _provider is not None:
        _provider.shutdown()
        _provider = None


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(SERVICE_NAME, __version__)


@contextmanager
def trace_span(
    name: str,
    attributes: Optional[Mapping[str, Any]] = None,
    tracer: Optional[trace.Tracer] = None,
) -> Generator[trace.Span, None, None]:
    """Span around one provisioning step.

    A scheduled reboot ends the span normally with a ``provisioning.reboot``
    attribute; any other exception is recorded and marks the span as an
    error. Attributes whose value is None are dropped.
    """
    tracer = tracer or get_tracer()
    with tracer.start_as_current_span(
        name, record_exception=False, set_status_on_exception=False
    ) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except RebootScheduled as e:
            span.set_attribute("provisioning.reboot", e.kernel_version)
            raise
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise
