"""
Report and analytics aggregation over the platform's domain tables.

Reports are one aggregate row per report type; analytics are per-day series.
Both are scoped by a named range (``1d``, ``7d``, ``30d``, ``90d``) resolved to
whole calendar days.  The domain tables (``users``, ``rides`` ...) belong to
other services and may not exist yet, so an analytics request against a
missing table, or one whose query fails, answers with a two-point zeroed
series instead of an error.
"""

import logging
from datetime import datetime, timedelta, timezone

from mate_admin import database
from mate_admin.errors import ValidationError
from mate_common.observability import db_span

logger = logging.getLogger("reporting")

DATE_RANGE_DAYS = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}
DEFAULT_RANGE_DAYS = 7


def parse_date_range(date_range: str | None, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    days = DATE_RANGE_DAYS.get(date_range, DEFAULT_RANGE_DAYS)
    start = now - timedelta(days=days)
    return {
        "start_date": start.strftime("%Y-%m-%d"),
        "end_date": now.strftime("%Y-%m-%d"),
    }


def _bounds(period: dict) -> tuple[str, str]:
    # end day is inclusive; created_at holds "YYYY-MM-DD HH:MM:SS" text
    return period["start_date"], f"{period['end_date']} 23:59:59"


def _summary(query: str, params: tuple, report_type: str, period: dict) -> dict:
    with db_span(__name__, f"db report {report_type}", "SELECT", {"report.type": report_type}):
        rows = database.execute_query(query, params)
    return {
        "summary": rows[0] if rows else {},
        "period": period,
        "report_type": report_type,
    }


# ── reports ───────────────────────────────────────────────────────

def generate_user_analytics_report(date_range: str | None, filters: dict | None = None) -> dict:
    period = parse_date_range(date_range)
    start, end = _bounds(period)
    query = """
    SELECT
        COUNT(*) AS total_users,
        COUNT(CASE WHEN u.created_at >= ? AND u.created_at <= ? THEN 1 END) AS new_users,
        COUNT(CASE WHEN u.is_active = 1 THEN 1 END) AS active_users,
        COUNT(CASE WHEN u.is_verified = 1 THEN 1 END) AS verified_users,
        AVG(CASE WHEN ua.total_rides > 0 THEN ua.average_rating END) AS avg_rating
    FROM users u
    LEFT JOIN user_analytics ua ON u.id = ua.user_id
    WHERE u.created_at >= ? AND u.created_at <= ?
    """
    return _summary(query, (start, end, start, end), "user_analytics", period)


def generate_ride_analytics_report(date_range: str | None, filters: dict | None = None) -> dict:
    period = parse_date_range(date_range)
    query = """
    SELECT
        COUNT(*) AS total_rides,
        COUNT(CASE WHEN r.status = 'completed' THEN 1 END) AS completed_rides,
        COUNT(CASE WHEN r.status = 'cancelled' THEN 1 END) AS cancelled_rides,
        AVG(CASE WHEN r.status = 'completed' THEN ra.distance_km END) AS avg_distance,
        AVG(CASE WHEN r.status = 'completed' THEN ra.duration_minutes END) AS avg_duration,
        SUM(CASE WHEN r.status = 'completed' THEN ra.fare_amount END) AS total_revenue
    FROM rides r
    LEFT JOIN ride_analytics ra ON r.id = ra.ride_id
    WHERE r.created_at >= ? AND r.created_at <= ?
    """
    return _summary(query, _bounds(period), "ride_analytics", period)


def generate_financial_analytics_report(date_range: str | None, filters: dict | None = None) -> dict:
    period = parse_date_range(date_range)
    query = """
    SELECT
        SUM(amount) AS total_transactions,
        COUNT(*) AS transaction_count,
        AVG(amount) AS avg_transaction,
        COUNT(CASE WHEN status = 'completed' THEN 1 END) AS successful_transactions,
        SUM(CASE WHEN status = 'completed' THEN amount END) AS total_revenue
    FROM payment_transactions
    WHERE created_at >= ? AND created_at <= ?
    """
    return _summary(query, _bounds(period), "financial_analytics", period)


def generate_system_analytics_report(date_range: str | None, filters: dict | None = None) -> dict:
    period = parse_date_range(date_range)
    query = """
    SELECT
        COUNT(*) AS total_logs,
        COUNT(CASE WHEN status = 'error' THEN 1 END) AS error_count,
        COUNT(CASE WHEN status = 'critical' THEN 1 END) AS critical_count,
        AVG(response_time_ms) AS avg_response_time
    FROM system_health_logs
    WHERE created_at >= ? AND created_at <= ?
    """
    return _summary(query, _bounds(period), "system_analytics", period)


REPORT_GENERATORS = {
    "user_analytics": generate_user_analytics_report,
    "ride_analytics": generate_ride_analytics_report,
    "financial_analytics": generate_financial_analytics_report,
    "system_analytics": generate_system_analytics_report,
}


def generate_report(report_type: str, date_range: str | None, filters: dict | None = None) -> dict:
    generator = REPORT_GENERATORS.get(report_type)
    if generator is None:
        raise ValidationError("Invalid report type")
    return generator(date_range, filters)


# ── analytics ─────────────────────────────────────────────────────

ANALYTICS_QUERIES = {
    "users": (
        "users",
        ("new_users", "verified_users"),
        """
        SELECT
            DATE(created_at) AS date,
            COUNT(*) AS new_users,
            COUNT(CASE WHEN is_verified = 1 THEN 1 END) AS verified_users
        FROM users
        WHERE created_at >= ? AND created_at <= ?
        GROUP BY DATE(created_at)
        ORDER BY date
        """,
    ),
    "rides": (
        "rides",
        ("total_rides", "completed_rides", "avg_fare"),
        """
        SELECT
            DATE(r.created_at) AS date,
            COUNT(*) AS total_rides,
            COUNT(CASE WHEN r.status = 'completed' THEN 1 END) AS completed_rides,
            AVG(CASE WHEN r.status = 'completed' THEN ra.fare_amount END) AS avg_fare
        FROM rides r
        LEFT JOIN ride_analytics ra ON r.id = ra.ride_id
        WHERE r.created_at >= ? AND r.created_at <= ?
        GROUP BY DATE(r.created_at)
        ORDER BY date
        """,
    ),
    "financial": (
        "payment_transactions",
        ("total_revenue", "transaction_count", "avg_transaction"),
        """
        SELECT
            DATE(created_at) AS date,
            SUM(amount) AS total_revenue,
            COUNT(*) AS transaction_count,
            AVG(amount) AS avg_transaction
        FROM payment_transactions
        WHERE status = 'completed' AND created_at >= ? AND created_at <= ?
        GROUP BY DATE(created_at)
        ORDER BY date
        """,
    ),
    "system": (
        "system_health_logs",
        ("total_logs", "error_count", "avg_response_time"),
        """
        SELECT
            DATE(created_at) AS date,
            COUNT(*) AS total_logs,
            COUNT(CASE WHEN status = 'error' THEN 1 END) AS error_count,
            AVG(response_time_ms) AS avg_response_time
        FROM system_health_logs
        WHERE created_at >= ? AND created_at <= ?
        GROUP BY DATE(created_at)
        ORDER BY date
        """,
    ),
}


def _zero_series(period: dict, fields: tuple) -> list[dict]:
    return [
        {"date": period["start_date"], **{name: 0 for name in fields}},
        {"date": period["end_date"], **{name: 0 for name in fields}},
    ]


def get_analytics(analytics_type: str, period: str | None = None, filters: dict | None = None) -> dict:
    if analytics_type not in ANALYTICS_QUERIES:
        raise ValidationError("Invalid analytics type")

    table, fields, query = ANALYTICS_QUERIES[analytics_type]
    date_period = parse_date_range(period)
    result = {"type": analytics_type, "period": date_period}

    try:
        if not database.table_exists(table):
            logger.warning("Table %s does not exist; returning empty %s series", table, analytics_type)
            result["data"] = _zero_series(date_period, fields)
            return result

        with db_span(__name__, f"db analytics {analytics_type}", "SELECT", {"db.sql.table": table}):
            result["data"] = database.execute_query(query, _bounds(date_period))
    except Exception as exc:
        logger.error("Error in %s analytics: %s", analytics_type, exc)
        result["data"] = _zero_series(date_period, fields)

    return result


# ── audit ─────────────────────────────────────────────────────────

def log_admin_activity(
    admin_id: str,
    action: str,
    resource_type: str | None,
    resource_id: str | None = None,
    details: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Write an audit row; failures are logged and swallowed."""
    try:
        database.insert_admin_activity(
            admin_user_id=admin_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except Exception as exc:
        logger.error("Error logging admin activity: %s", exc)
