"""
Prometheus metrics factory functions with idempotent registration.

Counter, histogram and gauge factories return the already-registered
collector on a repeated name, so modules can declare metrics at import time.
The module also provides ``create_service_info`` for service metadata,
``severity_value`` for exporting ordinal health states as gauge values,
and ``metrics_response`` for generating a Prometheus HTTP response.
"""

import os

from prometheus_client import Counter, Histogram, Info, Gauge, REGISTRY, generate_latest, CONTENT_TYPE_LATEST

# Ordinal encoding shared by every health gauge (healthy < warning < error < critical)
SEVERITY_LEVELS = {"healthy": 0, "warning": 1, "error": 2, "critical": 3}


def _get_or_create(metric_cls, name, documentation, **kwargs):
    """Create a metric or return the existing one if already registered."""
    try:
        return metric_cls(name, documentation, **kwargs)
    except ValueError:
        # Already registered; look it up in the default registry
        for collector in REGISTRY._names_to_collectors.values():
            if hasattr(collector, '_name') and (
                collector._name == name or
                getattr(collector, '_original_name', None) == name
            ):
                return collector
        raise


def create_counter(name: str, documentation: str, labelnames: list[str] = None) -> Counter:
    """Create (or retrieve) a Prometheus Counter."""
    return _get_or_create(Counter, name, documentation, labelnames=labelnames or [])


def create_histogram(name: str, documentation: str, buckets: list[float] = None, labelnames: list[str] = None) -> Histogram:
    """Create (or retrieve) a Prometheus Histogram."""
    kwargs = {}
    if buckets:
        kwargs["buckets"] = buckets
    if labelnames:
        kwargs["labelnames"] = labelnames
    return _get_or_create(Histogram, name, documentation, **kwargs)


def create_gauge(name: str, documentation: str, labelnames: list[str] = None) -> Gauge:
    """Create (or retrieve) a Prometheus Gauge."""
    return _get_or_create(Gauge, name, documentation, labelnames=labelnames or [])


def create_service_info(service_name: str, version: str, environment: str | None = None) -> Info:
    """
    Create and populate a service-metadata Info metric.

    Args:
        service_name: Prometheus metric name prefix (e.g. ``"admin_api"``).
        version: Service version string (e.g. ``"1.0.0"``).
        environment: Deployment environment.  Falls back to the
            ``ENVIRONMENT`` env-var, then ``"development"``.

    Returns:
        The populated ``Info`` collector.
    """
    info = _get_or_create(Info, service_name, "Service metadata")
    info.info({
        "version": version,
        "environment": environment or os.environ.get("ENVIRONMENT", "development"),
    })
    return info


def severity_value(status: str) -> int:
    """Map a health status to its gauge value; unknown statuses count as ``error``."""
    return SEVERITY_LEVELS.get(status, SEVERITY_LEVELS["error"])


def metrics_response():
    """
    Return Prometheus exposition-format bytes and the matching content-type.

    Returns:
        tuple[bytes, str]: ``(body, content_type)`` ready for an HTTP response.
    """
    return generate_latest(), CONTENT_TYPE_LATEST
