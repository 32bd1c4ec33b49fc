"""
Service-specific telemetry for admin-api.

Domain metrics and FastAPI instrumentation that sit on top of the
shared ``mate_common.observability`` module.
"""

import logging

from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from mate_common.observability import (
    create_counter,
    create_gauge,
    create_histogram,
    MetricsMiddleware,
)

logger = logging.getLogger("telemetry")

# ── HTTP ──────────────────────────────────────────────────────────

HTTP_REQUESTS = create_counter(
    "http_requests_total",
    "Total HTTP requests by method and path",
    ["method", "path", "status"],
)

HTTP_REQUEST_DURATION = create_histogram(
    "http_request_duration_seconds",
    "HTTP request latency by method and path",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    labelnames=["method", "path"],
)

# ── API window (set on every rollover) ────────────────────────────

API_REQUESTS_PER_MINUTE = create_gauge(
    "api_requests_per_minute",
    "Requests handled during the last closed minute",
)

API_AVG_RESPONSE_TIME = create_gauge(
    "api_avg_response_time_ms",
    "Mean response time during the last closed minute",
)

API_ERROR_RATE = create_gauge(
    "api_error_rate",
    "Fraction of failed requests during the last closed minute",
)

# ── Health ────────────────────────────────────────────────────────

SYSTEM_HEALTH_STATUS = create_gauge(
    "system_health_status",
    "Latest health status per service (0=healthy 1=warning 2=error 3=critical)",
    ["service"],
)

HEALTH_CHECKS_TOTAL = create_counter(
    "health_checks_total",
    "Health checks run by service and resulting status",
    ["service", "status"],
)


def record_rollover(sample) -> None:
    """Publish a closed ``APIMetricSample`` to the API gauges."""
    API_REQUESTS_PER_MINUTE.set(sample.count)
    if sample.count:
        API_AVG_RESPONSE_TIME.set(sample.total_response_time_ms / sample.count)
        API_ERROR_RATE.set(sample.error_count / sample.count)
    else:
        API_AVG_RESPONSE_TIME.set(0)
        API_ERROR_RATE.set(0)


# ── Initialization ───────────────────────────────────────────────

def init(app, listeners=()):
    """Wire service-specific telemetry into the FastAPI app.

    * Adds the HTTP-metrics middleware, notifying *listeners* per request.
    * Instruments FastAPI with OpenTelemetry auto-instrumentation.
    """
    app.add_middleware(
        MetricsMiddleware,
        counter=HTTP_REQUESTS,
        histogram=HTTP_REQUEST_DURATION,
        ignored_paths={"/metrics"},
        listeners=listeners,
    )

    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI instrumentation enabled")
    except Exception as e:
        logger.warning("FastAPI instrumentation failed: %s", e)

    logger.info("Service telemetry initialised")
