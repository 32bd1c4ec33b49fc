"""
Test utilities for the observability stack.

Provides helpers to set up in-memory tracing exporters, query exported
spans, reset the Prometheus collector registry between tests, and read a
sample value back out of a collector.
"""

from prometheus_client import REGISTRY
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider, ReadableSpan
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.sdk.resources import Resource


def setup_test_tracing(service_name: str = "test-service") -> InMemorySpanExporter:
    """
    Set up a TracerProvider with InMemorySpanExporter for tests.
    Returns the exporter instance so you can inspect spans.
    Forcefully replaces any existing provider to work across multiple tests.
    """
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    exporter = InMemorySpanExporter()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    # Forcefully replace the global provider (bypass the "already set" guard)
    trace._TRACER_PROVIDER = None
    trace._TRACER_PROVIDER_SET_ONCE._done = False
    trace.set_tracer_provider(provider)
    return exporter


def get_spans_by_name(exporter: InMemorySpanExporter, name: str) -> list[ReadableSpan]:
    """Filter exported spans by operation name."""
    return [s for s in exporter.get_finished_spans() if s.name == name]


def sample_value(name: str, labels: dict | None = None) -> float | None:
    """Read one sample from the default registry (``None`` when absent)."""
    return REGISTRY.get_sample_value(name, labels or {})


def reset_metrics() -> None:
    """Unregister every user-created collector; platform collectors have no ``_name`` and stay."""
    collectors = {id(c): c for c in REGISTRY._names_to_collectors.values() if hasattr(c, "_name")}
    for collector in collectors.values():
        REGISTRY.unregister(collector)
