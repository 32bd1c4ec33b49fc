"""
System health evaluation.

Independent probes (database, API error rate/latency, persisted checks) are
each graded on the ordinal scale ``healthy < warning < error < critical`` and
reduced to a single overall status.  A failing probe becomes a status value,
never an exception, so the dashboard always receives a well-formed payload.
The on-demand check is the one exception: it records a ``critical`` result
and raises ``HealthCheckFailed``.

All thresholds are module constants overridable through the environment.
The database probe has no latency tier unless ``DB_WARNING_RESPONSE_MS`` is
set, while the API probe warns above ``API_WARNING_RESPONSE_MS``.
"""

import logging
import os
import time
from datetime import datetime, timedelta, timezone

from mate_admin import database
from mate_admin.errors import HealthCheckFailed
from mate_admin.metrics_collector import ApiMetricsCollector
from mate_admin.system_resources import (
    get_cpu_metrics,
    get_disk_metrics,
    get_memory_metrics,
    get_system_uptime,
)

logger = logging.getLogger("health")


def _optional_float(name: str) -> float | None:
    raw = os.environ.get(name)
    return float(raw) if raw else None


API_CRITICAL_ERROR_RATE = float(os.environ.get("API_CRITICAL_ERROR_RATE", "0.10"))
API_ERROR_ERROR_RATE = float(os.environ.get("API_ERROR_ERROR_RATE", "0.05"))
API_WARNING_RESPONSE_MS = float(os.environ.get("API_WARNING_RESPONSE_MS", "2000"))
DB_WARNING_RESPONSE_MS = _optional_float("DB_WARNING_RESPONSE_MS")
ON_DEMAND_WARNING_MS = float(os.environ.get("ON_DEMAND_WARNING_MS", "1000"))
ON_DEMAND_ERROR_MS = float(os.environ.get("ON_DEMAND_ERROR_MS", "3000"))
RECENT_HEALTH_WINDOW_MINUTES = int(os.environ.get("RECENT_HEALTH_WINDOW_MINUTES", "5"))

STATUS_ORDER = ("healthy", "warning", "error", "critical")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def determine_overall_status(statuses) -> str:
    """Worst status among *statuses*; ``healthy`` when there is nothing to judge."""
    present = set(statuses)
    for status in reversed(STATUS_ORDER):
        if status in present:
            return status
    return "healthy"


# ── probes ────────────────────────────────────────────────────────

def check_database_health() -> dict:
    try:
        start = time.perf_counter()
        connections = database.ping()
        response_time = round((time.perf_counter() - start) * 1000)

        status = "healthy"
        if DB_WARNING_RESPONSE_MS is not None and response_time > DB_WARNING_RESPONSE_MS:
            status = "warning"

        return {
            "status": status,
            "response_time": response_time,
            "connections": connections,
            "last_check": _now_iso(),
        }
    except Exception as exc:
        logger.error("Database health check failed: %s", exc)
        return {
            "status": "error",
            "response_time": None,
            "connections": 0,
            "last_check": _now_iso(),
            "error": str(exc),
        }


def grade_api_metrics(metrics: dict) -> str:
    # error-rate rules take priority over latency
    if metrics["error_rate"] > API_CRITICAL_ERROR_RATE:
        return "critical"
    if metrics["error_rate"] > API_ERROR_ERROR_RATE:
        return "error"
    if metrics["avg_response_time"] > API_WARNING_RESPONSE_MS:
        return "warning"
    return "healthy"


def check_api_health(collector: ApiMetricsCollector) -> dict:
    try:
        metrics = collector.get_api_metrics()
        return {
            "status": grade_api_metrics(metrics),
            "response_time": metrics["avg_response_time"],
            "requests_per_minute": metrics["requests_per_minute"],
            "error_rate": metrics["error_rate"],
            "total_requests": metrics["total_requests"],
            "last_check": _now_iso(),
        }
    except Exception as exc:
        logger.error("API health check failed: %s", exc)
        return {
            "status": "error",
            "response_time": None,
            "requests_per_minute": 0,
            "error_rate": 1,
            "last_check": _now_iso(),
            "error": str(exc),
        }


# ── persisted results ─────────────────────────────────────────────

def record_health_check(
    service_name: str,
    status: str,
    response_time_ms: float | None,
    details: dict | None = None,
    message: str | None = None,
) -> str:
    """Persist one HealthCheckResult to ``system_health_logs``."""
    if message is None:
        if response_time_ms is None:
            message = f"Health check for {service_name}: {status}"
        else:
            message = f"Health check completed in {round(response_time_ms)}ms"
    payload = {"timestamp": _now_iso(), "response_time_ms": response_time_ms}
    payload.update(details or {})
    return database.insert_health_log(
        service_name=service_name,
        status=status,
        message_en=message,
        message_ar=None,
        details=payload,
        response_time_ms=response_time_ms,
    )


def grade_on_demand(response_time_ms: float) -> str:
    if response_time_ms < ON_DEMAND_WARNING_MS:
        return "healthy"
    if response_time_ms < ON_DEMAND_ERROR_MS:
        return "warning"
    return "error"


def run_on_demand_check(service_name: str = "admin_api") -> dict:
    """Probe the database now and record the outcome."""
    start = time.perf_counter()
    try:
        database.ping()
    except Exception as exc:
        logger.error("On-demand health check for %s failed: %s", service_name, exc)
        try:
            record_health_check(
                service_name,
                "critical",
                0,
                {"error": str(exc)},
                message="Health check failed",
            )
        except Exception as log_exc:
            logger.error("Error logging health check failure: %s", log_exc)
        raise HealthCheckFailed("System health check failed") from exc

    response_time = round((time.perf_counter() - start) * 1000)
    status = grade_on_demand(response_time)
    record_health_check(service_name, status, response_time)

    return {
        "service_name": service_name,
        "status": status,
        "response_time_ms": response_time,
        "timestamp": _now_iso(),
    }


# ── aggregate views ───────────────────────────────────────────────

def get_system_health(collector: ApiMetricsCollector) -> dict:
    db_health = check_database_health()
    api_health = check_api_health(collector)

    now = datetime.now(timezone.utc)
    recent_cutoff = database.utc_timestamp(now - timedelta(minutes=RECENT_HEALTH_WINDOW_MINUTES))
    try:
        health_logs = database.get_recent_health_logs(limit=50)
        service_summary = database.get_service_summary(since=now - timedelta(hours=1))
    except Exception as exc:
        logger.error("Could not read health history: %s", exc)
        health_logs, service_summary = [], []

    recent_statuses = [log["status"] for log in health_logs if log["created_at"] >= recent_cutoff]

    return {
        "overall_status": determine_overall_status(
            [db_health["status"], api_health["status"], *recent_statuses]
        ),
        "uptime": get_system_uptime(),
        "database": db_health,
        "api": api_health,
        "recent_logs": health_logs[:10],
        "service_summary": service_summary,
        "last_updated": now.isoformat(),
    }


def get_user_metrics() -> dict:
    try:
        total = database.execute_query(
            "SELECT COUNT(*) AS count FROM users WHERE is_deleted IS NULL"
        )[0]["count"]
        active = database.execute_query(
            "SELECT COUNT(*) AS count FROM users "
            "WHERE last_login_at >= datetime('now', '-24 hours') AND is_deleted IS NULL"
        )[0]["count"]
        new_today = database.execute_query(
            "SELECT COUNT(*) AS count FROM users "
            "WHERE DATE(created_at) = DATE('now') AND is_deleted IS NULL"
        )[0]["count"]
        return {"total": total, "active": active, "new_today": new_today}
    except Exception as exc:
        logger.error("Error getting user metrics: %s", exc)
        return {"total": 0, "active": 0, "new_today": 0}


def get_database_metrics() -> dict:
    try:
        start = time.perf_counter()
        connections = database.ping()
        query_time = round((time.perf_counter() - start) * 1000)

        stats = database.get_query_stats()
        uptime = stats["uptime_seconds"]
        queries_per_minute = round(stats["total_queries"] / uptime * 60) if uptime > 0 else 0

        return {
            "queries_per_minute": queries_per_minute,
            "avg_query_time": query_time,
            "active_connections": connections,
            "total_queries": stats["total_queries"],
            "uptime_seconds": uptime,
        }
    except Exception as exc:
        logger.error("Error getting database metrics: %s", exc)
        return {"queries_per_minute": 0, "avg_query_time": 0, "active_connections": 0}


def store_metric_snapshot(metric_type: str, values: dict) -> None:
    """Append ``{name: (value, unit)}`` rows to ``system_metrics``; best-effort."""
    for name, (value, unit) in values.items():
        try:
            database.insert_metric(metric_type, name, value, unit)
        except Exception as exc:
            logger.error("Failed to store metric %s.%s: %s", metric_type, name, exc)
            return


def get_system_metrics(collector: ApiMetricsCollector) -> dict:
    cpu = get_cpu_metrics()
    memory = get_memory_metrics()
    disk = get_disk_metrics()
    api = collector.get_api_metrics()
    db_metrics = get_database_metrics()

    store_metric_snapshot("system", {
        "cpu_usage": (cpu["current"], "percentage"),
        "memory_total": (memory["total"], "bytes"),
        "memory_used": (memory["used"], "bytes"),
        "memory_usage_percentage": (memory["usage_percentage"], "percentage"),
    })
    store_metric_snapshot("disk", {
        "total_space": (disk["total"], "bytes"),
        "used_space": (disk["used"], "bytes"),
        "usage_percentage": (disk["usage_percentage"], "percent"),
    })
    store_metric_snapshot("api", {
        "requests_per_minute": (api["requests_per_minute"], "count"),
        "avg_response_time": (api["avg_response_time"], "ms"),
        "error_rate": (api["error_rate"], "percentage"),
    })
    store_metric_snapshot("database", {
        "query_time": (db_metrics["avg_query_time"], "ms"),
        "active_connections": (db_metrics["active_connections"], "count"),
        "queries_per_minute": (db_metrics["queries_per_minute"], "count"),
    })

    return {
        "cpu": cpu,
        "memory": memory,
        "disk": disk,
        "users": get_user_metrics(),
        "api": api,
        "database": db_metrics,
        "timestamp": _now_iso(),
    }
