"""Tests for report generation and per-day analytics."""

import sqlite3
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

import mate_admin.database as db_module
from mate_admin.database import execute_query, get_connection, init_db, query_audit_logs, utc_timestamp
from mate_admin.errors import ValidationError
from mate_admin.health import record_health_check
from mate_admin.reporting import (
    generate_report,
    get_analytics,
    log_admin_activity,
    parse_date_range,
)

DOMAIN_SCHEMA = """
CREATE TABLE users (
    id TEXT PRIMARY KEY, is_active INTEGER, is_verified INTEGER,
    is_deleted INTEGER, last_login_at TEXT, created_at TEXT
);
CREATE TABLE user_analytics (user_id TEXT, total_rides INTEGER, average_rating REAL);
CREATE TABLE rides (id TEXT PRIMARY KEY, status TEXT, created_at TEXT);
CREATE TABLE ride_analytics (
    ride_id TEXT, distance_km REAL, duration_minutes REAL, fare_amount REAL
);
CREATE TABLE payment_transactions (id TEXT PRIMARY KEY, amount REAL, status TEXT, created_at TEXT);
"""


@pytest.fixture(autouse=True)
def use_temp_db(tmp_path, monkeypatch):
    test_db = tmp_path / "test.db"
    monkeypatch.setattr(db_module, "DB_PATH", test_db)
    monkeypatch.setenv("DB_RESET_ON_START", "false")
    init_db()
    yield test_db


@pytest.fixture
def domain_tables():
    with get_connection() as conn:
        conn.executescript(DOMAIN_SCHEMA)


def _days_ago(days: int) -> str:
    return utc_timestamp(datetime.now(timezone.utc) - timedelta(days=days))


# ── date ranges ──────────────────────────────────────────────────

class TestParseDateRange:
    NOW = datetime(2026, 3, 10, 15, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "date_range, start",
        [("1d", "2026-03-09"), ("7d", "2026-03-03"), ("30d", "2026-02-08"), ("90d", "2025-12-10")],
    )
    def test_known_ranges(self, date_range, start):
        assert parse_date_range(date_range, now=self.NOW) == {
            "start_date": start,
            "end_date": "2026-03-10",
        }

    def test_one_day_spans_one_calendar_day(self):
        period = parse_date_range("1d", now=self.NOW)
        span = date.fromisoformat(period["end_date"]) - date.fromisoformat(period["start_date"])
        assert span == timedelta(days=1)

    @pytest.mark.parametrize("bogus", ["bogus", "", None, "365d"])
    def test_unknown_range_falls_back_to_seven_days(self, bogus):
        assert parse_date_range(bogus, now=self.NOW) == parse_date_range("7d", now=self.NOW)


# ── reports ──────────────────────────────────────────────────────

class TestGenerateReport:
    def test_unknown_report_type(self):
        with pytest.raises(ValidationError, match="Invalid report type"):
            generate_report("churn_analytics", "7d")

    def test_user_report(self, domain_tables):
        execute_query("INSERT INTO users VALUES ('u1', 1, 1, NULL, NULL, ?)", (_days_ago(1),))
        execute_query("INSERT INTO users VALUES ('u2', 0, 0, NULL, NULL, ?)", (_days_ago(2),))
        execute_query("INSERT INTO users VALUES ('u3', 1, 1, NULL, NULL, ?)", (_days_ago(40),))
        execute_query("INSERT INTO user_analytics VALUES ('u1', 3, 4.0)")
        execute_query("INSERT INTO user_analytics VALUES ('u2', 0, 5.0)")

        report = generate_report("user_analytics", "7d")

        assert report["report_type"] == "user_analytics"
        assert report["period"] == parse_date_range("7d")
        assert report["summary"] == {
            "total_users": 2,
            "new_users": 2,
            "active_users": 1,
            "verified_users": 1,
            "avg_rating": 4.0,
        }

    def test_ride_report(self, domain_tables):
        execute_query("INSERT INTO rides VALUES ('r1', 'completed', ?)", (_days_ago(1),))
        execute_query("INSERT INTO rides VALUES ('r2', 'completed', ?)", (_days_ago(2),))
        execute_query("INSERT INTO rides VALUES ('r3', 'cancelled', ?)", (_days_ago(2),))
        execute_query("INSERT INTO ride_analytics VALUES ('r1', 10, 20, 30)")
        execute_query("INSERT INTO ride_analytics VALUES ('r2', 6, 10, 20)")

        summary = generate_report("ride_analytics", "7d")["summary"]

        assert summary["total_rides"] == 3
        assert summary["completed_rides"] == 2
        assert summary["cancelled_rides"] == 1
        assert summary["avg_distance"] == pytest.approx(8.0)
        assert summary["avg_duration"] == pytest.approx(15.0)
        assert summary["total_revenue"] == pytest.approx(50.0)

    def test_financial_report(self, domain_tables):
        execute_query("INSERT INTO payment_transactions VALUES ('p1', 100, 'completed', ?)", (_days_ago(1),))
        execute_query("INSERT INTO payment_transactions VALUES ('p2', 50, 'completed', ?)", (_days_ago(3),))
        execute_query("INSERT INTO payment_transactions VALUES ('p3', 25, 'failed', ?)", (_days_ago(3),))
        execute_query("INSERT INTO payment_transactions VALUES ('p4', 999, 'completed', ?)", (_days_ago(60),))

        summary = generate_report("financial_analytics", "30d")["summary"]

        assert summary["total_transactions"] == pytest.approx(175)
        assert summary["transaction_count"] == 3
        assert summary["successful_transactions"] == 2
        assert summary["total_revenue"] == pytest.approx(150)

    def test_system_report_includes_today(self):
        record_health_check("database", "healthy", 10)
        record_health_check("database", "error", 30)
        record_health_check("api", "critical", None)

        summary = generate_report("system_analytics", "1d")["summary"]

        assert summary == {
            "total_logs": 3,
            "error_count": 1,
            "critical_count": 1,
            "avg_response_time": pytest.approx(20.0),
        }

    def test_missing_domain_table_raises(self):
        with pytest.raises(sqlite3.OperationalError):
            generate_report("financial_analytics", "7d")


# ── analytics ────────────────────────────────────────────────────

class TestAnalytics:
    @pytest.mark.parametrize(
        "analytics_type, fields",
        [
            ("users", {"new_users", "verified_users"}),
            ("rides", {"total_rides", "completed_rides", "avg_fare"}),
            ("financial", {"total_revenue", "transaction_count", "avg_transaction"}),
        ],
    )
    def test_missing_table_yields_two_zero_points(self, analytics_type, fields):
        result = get_analytics(analytics_type, "30d")

        period = parse_date_range("30d")
        assert result["type"] == analytics_type
        assert result["period"] == period
        assert len(result["data"]) == 2
        assert [p["date"] for p in result["data"]] == [period["start_date"], period["end_date"]]
        for point in result["data"]:
            assert set(point) == {"date"} | fields
            assert all(point[name] == 0 for name in fields)

    def test_query_failure_yields_two_zero_points(self):
        with patch("mate_admin.reporting.database.table_exists", return_value=True):
            result = get_analytics("users", "7d")

        assert result["type"] == "users"
        assert result["data"] == [
            {"date": result["period"]["start_date"], "new_users": 0, "verified_users": 0},
            {"date": result["period"]["end_date"], "new_users": 0, "verified_users": 0},
        ]

    def test_system_series_from_health_logs(self):
        record_health_check("database", "healthy", 10)
        record_health_check("database", "error", 20)

        result = get_analytics("system", "7d")

        assert len(result["data"]) == 1
        point = result["data"][0]
        assert point["date"] == datetime.now(timezone.utc).strftime("%Y-%m-%d")
        assert point["total_logs"] == 2
        assert point["error_count"] == 1
        assert point["avg_response_time"] == pytest.approx(15.0)

    def test_financial_series_counts_completed_only(self, domain_tables):
        execute_query("INSERT INTO payment_transactions VALUES ('p1', 100, 'completed', ?)", (_days_ago(2),))
        execute_query("INSERT INTO payment_transactions VALUES ('p2', 60, 'completed', ?)", (_days_ago(2),))
        execute_query("INSERT INTO payment_transactions VALUES ('p3', 40, 'failed', ?)", (_days_ago(2),))

        data = get_analytics("financial", "7d")["data"]

        assert len(data) == 1
        assert data[0]["total_revenue"] == pytest.approx(160)
        assert data[0]["transaction_count"] == 2
        assert data[0]["avg_transaction"] == pytest.approx(80)

    def test_rides_series_grouped_by_day(self, domain_tables):
        execute_query("INSERT INTO rides VALUES ('r1', 'completed', ?)", (_days_ago(1),))
        execute_query("INSERT INTO rides VALUES ('r2', 'cancelled', ?)", (_days_ago(3),))
        execute_query("INSERT INTO ride_analytics VALUES ('r1', 5, 9, 12.5)")

        data = get_analytics("rides", "7d")["data"]

        assert [p["total_rides"] for p in data] == [1, 1]
        assert data[0]["date"] < data[1]["date"]
        assert data[1]["avg_fare"] == pytest.approx(12.5)
        assert data[0]["avg_fare"] is None

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            get_analytics("weather", "7d")


# ── audit ────────────────────────────────────────────────────────

class TestAdminActivity:
    def test_activity_is_recorded(self):
        log_admin_activity("admin-1", "generate_report", "report", None, {"reportType": "user_analytics"})

        rows = query_audit_logs(since=datetime.now(timezone.utc) - timedelta(hours=1))
        assert len(rows) == 1
        assert rows[0]["admin_user_id"] == "admin-1"
        assert rows[0]["action"] == "generate_report"
        assert rows[0]["details"] == {"reportType": "user_analytics"}

    def test_failure_is_swallowed(self):
        with patch(
            "mate_admin.reporting.database.insert_admin_activity",
            side_effect=sqlite3.OperationalError("readonly"),
        ):
            log_admin_activity("admin-1", "generate_report", "report")
