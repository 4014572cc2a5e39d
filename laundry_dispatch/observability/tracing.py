"""OpenTelemetry tracing configuration."""

from __future__ import annotations

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from laundry_dispatch.enterprise.config.settings import TelemetrySettings

_provider: TracerProvider | None = None


def configure_tracer(service_name: str, settings: TelemetrySettings, environment: str = "dev") -> TracerProvider:
    """Install the process tracer provider, exporting over OTLP when an endpoint is set.

    The global provider can only be set once per process, so repeated calls
    return the provider installed first.
    """

    global _provider
    if _provider is not None:
        return _provider

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "laundry",
            "deployment.environment": environment,
        }
    )
    provider = TracerProvider(resource=resource)
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=True)))

    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)
