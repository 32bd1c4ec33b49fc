"""Tests for the health evaluator."""

import sqlite3
from datetime import datetime, timedelta, timezone
from itertools import permutations
from unittest.mock import MagicMock, patch

import pytest

import mate_admin.database as db_module
from mate_admin.database import execute_query, init_db, query_health_logs, utc_timestamp
from mate_admin.errors import HealthCheckFailed
from mate_admin.health import (
    check_api_health,
    check_database_health,
    determine_overall_status,
    get_database_metrics,
    get_system_health,
    get_system_metrics,
    get_user_metrics,
    grade_api_metrics,
    grade_on_demand,
    record_health_check,
    run_on_demand_check,
)
from mate_admin.metrics_collector import ApiMetricsCollector


@pytest.fixture(autouse=True)
def use_temp_db(tmp_path, monkeypatch):
    test_db = tmp_path / "test.db"
    monkeypatch.setattr(db_module, "DB_PATH", test_db)
    monkeypatch.setenv("DB_RESET_ON_START", "false")
    init_db()
    yield test_db


def _insert_health_log(status: str, minutes_ago: int, service: str = "payments") -> None:
    created = utc_timestamp(datetime.now(timezone.utc) - timedelta(minutes=minutes_ago))
    execute_query(
        "INSERT INTO system_health_logs (id, service_name, status, created_at) VALUES (?, ?, ?, ?)",
        (f"{service}-{status}-{minutes_ago}", service, status, created),
    )


# ── overall status ───────────────────────────────────────────────

class TestDetermineOverallStatus:
    def test_empty_is_healthy(self):
        assert determine_overall_status([]) == "healthy"

    def test_worst_status_wins(self):
        assert determine_overall_status(["healthy", "warning"]) == "warning"
        assert determine_overall_status(["warning", "error", "healthy"]) == "error"

    def test_critical_is_absorbing(self):
        assert determine_overall_status(["healthy", "critical", "warning"]) == "critical"

    def test_order_does_not_matter(self):
        statuses = ["healthy", "warning", "error"]
        results = {determine_overall_status(list(p)) for p in permutations(statuses)}
        assert results == {"error"}

    def test_accepts_generators(self):
        assert determine_overall_status(s for s in ["healthy", "warning"]) == "warning"


# ── database probe ───────────────────────────────────────────────

class TestCheckDatabaseHealth:
    def test_healthy_database(self):
        result = check_database_health()
        assert result["status"] == "healthy"
        assert isinstance(result["response_time"], int)
        assert result["connections"] >= 1
        assert "error" not in result

    def test_failing_database(self):
        with patch("mate_admin.health.database.ping", side_effect=sqlite3.OperationalError("disk I/O error")):
            result = check_database_health()

        assert result["status"] == "error"
        assert result["response_time"] is None
        assert result["connections"] == 0
        assert "disk I/O error" in result["error"]

    def test_slow_database_is_still_healthy(self):
        with patch("mate_admin.health.database.ping", return_value=1), \
                patch("mate_admin.health.time.perf_counter", side_effect=[0.0, 5.0]):
            result = check_database_health()

        assert result["response_time"] == 5000
        assert result["status"] == "healthy"

    def test_optional_latency_tier(self, monkeypatch):
        monkeypatch.setattr("mate_admin.health.DB_WARNING_RESPONSE_MS", 100)
        with patch("mate_admin.health.database.ping", return_value=1), \
                patch("mate_admin.health.time.perf_counter", side_effect=[0.0, 0.5]):
            result = check_database_health()

        assert result["status"] == "warning"


# ── API probe ────────────────────────────────────────────────────

class TestApiGrading:
    @pytest.mark.parametrize(
        "error_rate, avg, expected",
        [
            (0.0, 100, "healthy"),
            (0.05, 100, "healthy"),
            (0.06, 100, "error"),
            (0.10, 100, "error"),
            (0.11, 100, "critical"),
            (0.0, 2000, "healthy"),
            (0.0, 2001, "warning"),
            (0.2, 5000, "critical"),
        ],
    )
    def test_thresholds(self, error_rate, avg, expected):
        metrics = {"error_rate": error_rate, "avg_response_time": avg}
        assert grade_api_metrics(metrics) == expected

    def test_check_reports_live_window(self):
        collector = ApiMetricsCollector()
        collector.track_request(120)
        collector.track_request(80)

        result = check_api_health(collector)

        assert result["status"] == "healthy"
        assert result["response_time"] == 100
        assert result["error_rate"] == 0
        assert result["total_requests"] == 2

    def test_broken_collector_is_error(self):
        collector = MagicMock()
        collector.get_api_metrics.side_effect = RuntimeError("lock poisoned")

        result = check_api_health(collector)

        assert result["status"] == "error"
        assert result["response_time"] is None
        assert result["error_rate"] == 1


# ── on-demand checks ─────────────────────────────────────────────

class TestOnDemandCheck:
    @pytest.mark.parametrize(
        "ms, expected",
        [(0, "healthy"), (999, "healthy"), (1000, "warning"), (2999, "warning"), (3000, "error")],
    )
    def test_latency_tiers(self, ms, expected):
        assert grade_on_demand(ms) == expected

    def test_successful_check_is_recorded(self):
        result = run_on_demand_check("payments")

        assert result["service_name"] == "payments"
        assert result["status"] == "healthy"
        logs, total = query_health_logs(service="payments")
        assert total == 1
        assert logs[0]["status"] == "healthy"
        assert logs[0]["message_en"].startswith("Health check completed in")
        assert logs[0]["details"]["response_time_ms"] == result["response_time_ms"]

    def test_failed_check_records_critical_and_raises(self):
        with patch("mate_admin.health.database.ping", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(HealthCheckFailed) as exc_info:
                run_on_demand_check()

        assert exc_info.value.status_code == 500
        logs, _ = query_health_logs(service="admin_api")
        assert logs[0]["status"] == "critical"
        assert logs[0]["message_en"] == "Health check failed"
        assert logs[0]["response_time_ms"] == 0
        assert logs[0]["details"]["error"] == "locked"

    def test_record_failure_does_not_mask_probe_failure(self):
        with patch("mate_admin.health.database.ping", side_effect=sqlite3.OperationalError("gone")), \
                patch("mate_admin.health.database.insert_health_log", side_effect=sqlite3.OperationalError("gone")):
            with pytest.raises(HealthCheckFailed):
                run_on_demand_check()


# ── aggregate views ──────────────────────────────────────────────

class TestSystemHealth:
    def test_payload_shape(self):
        health = get_system_health(ApiMetricsCollector())
        assert set(health) == {
            "overall_status", "uptime", "database", "api",
            "recent_logs", "service_summary", "last_updated",
        }
        assert health["overall_status"] == "healthy"

    def test_recent_persisted_result_raises_overall(self):
        _insert_health_log("critical", minutes_ago=1)

        health = get_system_health(ApiMetricsCollector())

        assert health["overall_status"] == "critical"
        assert health["recent_logs"][0]["status"] == "critical"

    def test_stale_persisted_result_is_ignored(self):
        _insert_health_log("error", minutes_ago=10)

        health = get_system_health(ApiMetricsCollector())

        assert health["overall_status"] == "healthy"
        assert len(health["recent_logs"]) == 1

    def test_service_summary_groups_last_hour(self):
        _insert_health_log("healthy", minutes_ago=1)
        _insert_health_log("healthy", minutes_ago=2)
        _insert_health_log("warning", minutes_ago=3)
        _insert_health_log("error", minutes_ago=90)

        summary = get_system_health(ApiMetricsCollector())["service_summary"]

        counts = {(row["service_name"], row["status"]): row["count"] for row in summary}
        assert counts == {("payments", "healthy"): 2, ("payments", "warning"): 1}

    def test_recent_logs_capped_at_ten(self):
        for i in range(12):
            record_health_check("payments", "healthy", i)

        health = get_system_health(ApiMetricsCollector())

        assert len(health["recent_logs"]) == 10


class TestMetrics:
    def test_user_metrics_without_users_table(self):
        assert get_user_metrics() == {"total": 0, "active": 0, "new_today": 0}

    def test_user_metrics_counts(self):
        execute_query(
            "CREATE TABLE users (id TEXT, is_deleted INTEGER, last_login_at TEXT, created_at TEXT)"
        )
        now = utc_timestamp()
        old = utc_timestamp(datetime.now(timezone.utc) - timedelta(days=3))
        execute_query("INSERT INTO users VALUES ('a', NULL, ?, ?)", (now, now))
        execute_query("INSERT INTO users VALUES ('b', NULL, ?, ?)", (old, old))
        execute_query("INSERT INTO users VALUES ('c', 1, ?, ?)", (now, now))

        assert get_user_metrics() == {"total": 2, "active": 1, "new_today": 1}

    def test_database_metrics(self):
        metrics = get_database_metrics()
        assert metrics["active_connections"] >= 1
        assert metrics["total_queries"] >= 1

    def test_database_metrics_on_failure(self):
        with patch("mate_admin.health.database.ping", side_effect=sqlite3.OperationalError("down")):
            metrics = get_database_metrics()
        assert metrics == {"queries_per_minute": 0, "avg_query_time": 0, "active_connections": 0}

    def test_system_metrics_snapshot_is_stored(self):
        snapshot = get_system_metrics(ApiMetricsCollector())

        assert set(snapshot) == {"cpu", "memory", "disk", "users", "api", "database", "timestamp"}
        assert 0 <= snapshot["cpu"]["current"] <= 1
        rows = execute_query("SELECT DISTINCT metric_type FROM system_metrics ORDER BY metric_type")
        assert [r["metric_type"] for r in rows] == ["api", "database", "disk", "system"]

    def test_metric_storage_failure_is_swallowed(self):
        with patch("mate_admin.health.database.insert_metric", side_effect=sqlite3.OperationalError("ro")):
            snapshot = get_system_metrics(ApiMetricsCollector())
        assert "cpu" in snapshot
