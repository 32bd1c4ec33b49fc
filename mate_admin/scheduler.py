"""
Background health scheduler: periodic database and API probes.

Every ``HEALTH_CHECK_INTERVAL_SECONDS`` seconds:
  1. Probe the database and grade the live API window.
  2. Persist each result to ``system_health_logs``.
  3. Log each result through the system log sink.
  4. Update the Prometheus health gauges.
"""

import asyncio
import logging
import os

from mate_admin.health import (
    check_api_health,
    check_database_health,
    determine_overall_status,
    record_health_check,
)
from mate_admin.metrics_collector import ApiMetricsCollector
from mate_admin.system_logging import SystemLogBuffer

logger = logging.getLogger("scheduler")

HEALTH_CHECK_INTERVAL_SECONDS = int(
    os.environ.get("HEALTH_CHECK_INTERVAL_SECONDS", "60")
)


def _update_health_metrics(results: dict) -> None:
    """Push per-service statuses to Prometheus."""
    try:
        from mate_common.observability import severity_value
        from mate_admin.telemetry import HEALTH_CHECKS_TOTAL, SYSTEM_HEALTH_STATUS

        for service, result in results.items():
            SYSTEM_HEALTH_STATUS.labels(service=service).set(severity_value(result["status"]))
            HEALTH_CHECKS_TOTAL.labels(service=service, status=result["status"]).inc()
    except Exception as exc:
        logger.warning("Failed to update health metrics: %s", exc)


def run_health_check(collector: ApiMetricsCollector, log_buffer: SystemLogBuffer) -> str:
    """Execute a single health-check cycle (synchronous) and return the overall status."""
    results = {
        "database": check_database_health(),
        "api": check_api_health(collector),
    }

    for service, result in results.items():
        extra = {k: v for k, v in result.items() if k not in ("status", "response_time", "last_check")}
        try:
            record_health_check(service, result["status"], result["response_time"], extra)
        except Exception as exc:
            logger.warning("Failed to persist %s health check: %s", service, exc)
        log_buffer.log_health(service, result["status"], result["response_time"], extra)

    _update_health_metrics(results)

    overall = determine_overall_status(r["status"] for r in results.values())
    if overall == "healthy":
        logger.debug("Health check: healthy")
    else:
        logger.info(
            "Health check: overall=%s database=%s api=%s",
            overall,
            results["database"]["status"],
            results["api"]["status"],
        )
    return overall


async def health_loop(
    collector: ApiMetricsCollector,
    log_buffer: SystemLogBuffer,
    interval: int | None = None,
) -> None:
    """Async loop that runs ``run_health_check`` every *interval* seconds.

    Launched via ``asyncio.create_task`` inside the FastAPI lifespan.
    """
    interval = interval or HEALTH_CHECK_INTERVAL_SECONDS

    logger.info("Background health scheduler started (interval=%ds)", interval)

    while True:
        try:
            await asyncio.to_thread(run_health_check, collector, log_buffer)
        except asyncio.CancelledError:
            logger.info("Health scheduler cancelled, shutting down")
            raise
        except Exception:
            logger.exception("Health scheduler iteration failed")

        await asyncio.sleep(interval)
