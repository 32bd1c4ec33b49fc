"""
Reporting routes.

  POST /api/admin/reports/generate : one-off aggregate report, audited
  GET  /api/admin/analytics        : per-day series for a domain
"""

import logging
import sqlite3
from datetime import datetime, timezone

from fastapi import APIRouter, Header, Query, Request

from mate_admin.errors import AppError, success_body
from mate_admin.models.reports import GenerateReportRequest
from mate_admin.reporting import generate_report, get_analytics, log_admin_activity

logger = logging.getLogger("routes.reports")

router = APIRouter(prefix="/api/admin", tags=["Reports"])


@router.post("/reports/generate")
def generate(
    body: GenerateReportRequest,
    request: Request,
    x_admin_id: str = Header(default="system"),
):
    logger.info("Admin %s generating %s report", x_admin_id, body.reportType)

    try:
        report = generate_report(body.reportType, body.dateRange, body.filters)
    except sqlite3.Error as exc:
        logger.error("Error generating report: %s", exc)
        raise AppError("Failed to generate report") from exc

    log_admin_activity(
        x_admin_id,
        "generate_report",
        "report",
        None,
        {
            "reportType": body.reportType,
            "dateRange": body.dateRange,
            "filters": body.filters,
            "format": body.format,
        },
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

    return success_body({
        "report": report,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "generatedBy": x_admin_id,
        "reportType": body.reportType,
        "dateRange": body.dateRange,
    })


@router.get("/analytics")
def analytics(
    analytics_type: str = Query(default="users", alias="type"),
    period: str = "7d",
):
    return success_body(get_analytics(analytics_type, period))
