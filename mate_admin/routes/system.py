"""
System monitoring routes.

  GET  /api/admin/system/health       : aggregate health snapshot
  POST /api/admin/system/health/check : on-demand probe, recorded
  GET  /api/admin/system/health/logs  : paginated health history
  GET  /api/admin/system/metrics      : host, API and database metrics
  GET  /api/admin/system/logs         : buffered application logs
  GET  /api/admin/system/audit-logs   : admin activity trail
"""

import logging
import math
import sqlite3
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Query, Request

from mate_admin import database
from mate_admin.errors import AppError, success_body
from mate_admin.health import get_system_health, get_system_metrics, run_on_demand_check
from mate_admin.models.system import HealthCheckRequest, Pagination

logger = logging.getLogger("routes.system")

router = APIRouter(prefix="/api/admin/system", tags=["System"])

LOG_WINDOWS = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_LOG_WINDOW = "24h"
MAX_LOG_ROWS = 1000


def log_window_start(date_range: str | None, now: datetime | None = None) -> datetime:
    """Lower bound for log queries; unknown ranges fall back to 24h."""
    now = now or datetime.now(timezone.utc)
    return now - LOG_WINDOWS.get(date_range, LOG_WINDOWS[DEFAULT_LOG_WINDOW])


@router.get("/health")
def system_health(request: Request):
    return success_body(get_system_health(request.app.state.collector))


@router.post("/health/check")
def check_system_health(body: HealthCheckRequest | None = None):
    body = body or HealthCheckRequest()
    return success_body(run_on_demand_check(body.service_name))


@router.get("/health/logs")
def system_health_logs(
    service: str | None = None,
    status: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=MAX_LOG_ROWS),
):
    try:
        logs, total = database.query_health_logs(service=service, status=status, page=page, limit=limit)
    except sqlite3.Error as exc:
        logger.error("Error fetching system health logs: %s", exc)
        raise AppError("Error fetching system health logs") from exc

    pagination = Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))
    return success_body(logs, pagination=pagination.model_dump())


@router.get("/metrics")
def system_metrics(request: Request):
    return success_body(get_system_metrics(request.app.state.collector))


@router.get("/logs")
def system_logs(
    log_level: str | None = None,
    service: str | None = None,
    search: str | None = None,
    date_range: str = DEFAULT_LOG_WINDOW,
):
    try:
        logs = database.query_system_logs(
            since=log_window_start(date_range),
            level=log_level,
            service=service,
            search=search,
            limit=MAX_LOG_ROWS,
        )
    except sqlite3.Error as exc:
        logger.error("Error getting system logs: %s", exc)
        raise AppError("Failed to get system logs") from exc
    return success_body(logs)


@router.get("/audit-logs")
def audit_logs(
    action: str | None = None,
    search: str | None = None,
    date_range: str = DEFAULT_LOG_WINDOW,
):
    try:
        logs = database.query_audit_logs(
            since=log_window_start(date_range),
            action=action,
            search=search,
            limit=MAX_LOG_ROWS,
        )
    except sqlite3.Error as exc:
        logger.error("Error getting audit logs: %s", exc)
        raise AppError("Failed to get audit logs") from exc
    return success_body(logs)
