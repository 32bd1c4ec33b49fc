import json
import os
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from mate_common.observability import db_span

DB_PATH = Path(os.environ.get("DATABASE_PATH", str(Path(__file__).parent.parent / "mate_admin.db")))

SCHEMA = """
CREATE TABLE IF NOT EXISTS system_logs (
    id TEXT PRIMARY KEY,
    level TEXT NOT NULL CHECK (level IN ('error', 'warn', 'info', 'debug')),
    service TEXT NOT NULL,
    message TEXT NOT NULL,
    metadata TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_system_logs_level ON system_logs(level);
CREATE INDEX IF NOT EXISTS idx_system_logs_service ON system_logs(service);
CREATE INDEX IF NOT EXISTS idx_system_logs_created_at ON system_logs(created_at);

CREATE TABLE IF NOT EXISTS system_health_logs (
    id TEXT PRIMARY KEY,
    service_name TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('healthy', 'warning', 'error', 'critical')),
    message_en TEXT,
    message_ar TEXT,
    details TEXT,
    response_time_ms INTEGER,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_health_logs_created_at ON system_health_logs(created_at);

CREATE TABLE IF NOT EXISTS system_metrics (
    id TEXT PRIMARY KEY,
    metric_type TEXT NOT NULL,
    metric_name TEXT NOT NULL,
    metric_value REAL NOT NULL,
    unit TEXT,
    metadata TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_system_metrics_type ON system_metrics(metric_type);

CREATE TABLE IF NOT EXISTS admin_activity_logs (
    id TEXT PRIMARY KEY,
    admin_user_id TEXT,
    action TEXT NOT NULL,
    resource_type TEXT,
    resource_id TEXT,
    details TEXT,
    ip_address TEXT,
    user_agent TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_admin_activity_created_at ON admin_activity_logs(created_at);
"""

SERVICE_TABLES = ("system_logs", "system_health_logs", "system_metrics", "admin_activity_logs")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_stats_lock = threading.Lock()
_open_connections = 0
_query_count = 0
_started_at = time.monotonic()


def _get_db_path() -> Path:
    return DB_PATH


def utc_timestamp(moment: datetime | None = None) -> str:
    """Format *moment* (default: now) the way SQLite's ``datetime('now')`` does."""
    moment = moment or datetime.now(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def init_db():
    db_path = _get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    should_reset = os.environ.get("DB_RESET_ON_START", "false").lower() == "true"

    with sqlite3.connect(str(db_path)) as conn:
        if should_reset:
            for table in SERVICE_TABLES:
                conn.execute(f"DROP TABLE IF EXISTS {table}")
        conn.executescript(SCHEMA)


@contextmanager
def get_connection():
    global _open_connections
    conn = sqlite3.connect(str(_get_db_path()))
    conn.row_factory = sqlite3.Row
    with _stats_lock:
        _open_connections += 1
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()
        with _stats_lock:
            _open_connections -= 1


def execute_query(query: str, params: tuple | list = ()) -> list[dict]:
    """Run one statement and return its rows as dicts (empty for writes)."""
    global _query_count
    with _stats_lock:
        _query_count += 1
    with get_connection() as conn:
        rows = conn.execute(query, tuple(params)).fetchall()
    return [dict(row) for row in rows]


def get_connection_count() -> int:
    """Connections currently open against the database file."""
    with _stats_lock:
        return _open_connections


def get_query_stats() -> dict:
    """Queries executed through ``execute_query`` and seconds since import."""
    with _stats_lock:
        return {
            "total_queries": _query_count,
            "uptime_seconds": int(time.monotonic() - _started_at),
        }


def ping() -> int:
    """Run ``SELECT 1`` and return the open-connection count seen during the probe."""
    global _query_count
    with _stats_lock:
        _query_count += 1
    with get_connection() as conn:
        conn.execute("SELECT 1")
        return get_connection_count()


def check_connection() -> bool:
    try:
        with get_connection() as conn:
            conn.execute("SELECT 1")
        return True
    except Exception:
        return False


def table_exists(table_name: str) -> bool:
    with db_span(__name__, "db query table_exists", "SELECT", {"db.sql.table": table_name}):
        rows = execute_query(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table_name,),
        )
        return len(rows) > 0


# ── system_logs ───────────────────────────────────────────────────

def insert_system_logs(entries: list) -> int:
    """Batch-insert ``SystemLogEntry`` objects in one transaction."""
    with db_span(__name__, "db insert_system_logs", "INSERT", {"db.records_count": len(entries)}):
        rows = [
            (
                str(uuid.uuid4()),
                entry.level,
                entry.service,
                entry.message,
                json.dumps(entry.metadata, default=str),
                utc_timestamp(entry.created_at),
            )
            for entry in entries
        ]
        with get_connection() as conn:
            conn.executemany(
                "INSERT INTO system_logs (id, level, service, message, metadata, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                rows,
            )
        return len(rows)


def query_system_logs(
    since: datetime,
    level: str | None = None,
    service: str | None = None,
    search: str | None = None,
    limit: int = 1000,
) -> list[dict]:
    with db_span(__name__, "db query system_logs", "SELECT", {"db.query.limit": limit}) as span:
        conditions = ["created_at >= ?"]
        params: list = [utc_timestamp(since)]

        if level:
            conditions.append("level = ?")
            params.append(level)
        if service:
            conditions.append("service = ?")
            params.append(service)
        if search:
            conditions.append("(message LIKE ? OR service LIKE ?)")
            params.extend([f"%{search}%", f"%{search}%"])

        query = f"""
        SELECT id, level, service, message, metadata, created_at
        FROM system_logs
        WHERE {' AND '.join(conditions)}
        ORDER BY created_at DESC
        LIMIT ?
        """
        params.append(limit)
        result = [_decode_json(row, "metadata") for row in execute_query(query, params)]
        span.set_attribute("db.result_count", len(result))
        return result


# ── system_health_logs ────────────────────────────────────────────

def insert_health_log(
    service_name: str,
    status: str,
    message_en: str,
    message_ar: str | None,
    details: dict,
    response_time_ms: float | None,
) -> str:
    with db_span(__name__, "db insert_health_log", "INSERT", {"health.service": service_name}):
        log_id = str(uuid.uuid4())
        execute_query(
            """
            INSERT INTO system_health_logs (
                id, service_name, status, message_en, message_ar,
                details, response_time_ms, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                log_id,
                service_name,
                status,
                message_en,
                message_ar,
                json.dumps(details, default=str),
                None if response_time_ms is None else int(round(response_time_ms)),
                utc_timestamp(),
            ),
        )
        return log_id


def get_recent_health_logs(limit: int = 50) -> list[dict]:
    with db_span(__name__, "db query get_recent_health_logs", "SELECT", {"db.query.limit": limit}):
        rows = execute_query(
            "SELECT * FROM system_health_logs ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        return [_decode_json(row, "details") for row in rows]


def get_service_summary(since: datetime) -> list[dict]:
    with db_span(__name__, "db query get_service_summary", "SELECT"):
        return execute_query(
            """
            SELECT
                service_name,
                status,
                COUNT(*) AS count,
                MAX(created_at) AS last_check
            FROM system_health_logs
            WHERE created_at >= ?
            GROUP BY service_name, status
            ORDER BY service_name, status
            """,
            (utc_timestamp(since),),
        )


def query_health_logs(
    service: str | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[dict], int]:
    with db_span(__name__, "db query health_logs", "SELECT", {"db.query.limit": limit}):
        conditions = ["1=1"]
        params: list = []
        if service:
            conditions.append("service_name = ?")
            params.append(service)
        if status:
            conditions.append("status = ?")
            params.append(status)
        where = " AND ".join(conditions)

        rows = execute_query(
            f"SELECT * FROM system_health_logs WHERE {where} "
            "ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            [*params, limit, (page - 1) * limit],
        )
        total = execute_query(
            f"SELECT COUNT(*) AS total FROM system_health_logs WHERE {where}",
            params,
        )[0]["total"]
        return [_decode_json(row, "details") for row in rows], total


# ── system_metrics ────────────────────────────────────────────────

def insert_metric(
    metric_type: str,
    metric_name: str,
    value: float,
    unit: str | None = None,
    metadata: dict | None = None,
) -> None:
    execute_query(
        """
        INSERT INTO system_metrics (id, metric_type, metric_name, metric_value, unit, metadata, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            str(uuid.uuid4()),
            metric_type,
            metric_name,
            value,
            unit,
            json.dumps(metadata or {}),
            utc_timestamp(),
        ),
    )


# ── admin_activity_logs ───────────────────────────────────────────

def insert_admin_activity(
    admin_user_id: str,
    action: str,
    resource_type: str | None,
    resource_id: str | None,
    details: dict | None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    with db_span(__name__, "db insert_admin_activity", "INSERT", {"audit.action": action}):
        execute_query(
            """
            INSERT INTO admin_activity_logs (
                id, admin_user_id, action, resource_type, resource_id,
                details, ip_address, user_agent, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(uuid.uuid4()),
                admin_user_id,
                action,
                resource_type,
                resource_id,
                json.dumps(details, default=str) if details else None,
                ip_address,
                user_agent,
                utc_timestamp(),
            ),
        )


def query_audit_logs(
    since: datetime,
    action: str | None = None,
    search: str | None = None,
    limit: int = 1000,
) -> list[dict]:
    with db_span(__name__, "db query audit_logs", "SELECT", {"db.query.limit": limit}):
        conditions = ["created_at >= ?"]
        params: list = [utc_timestamp(since)]
        if action:
            conditions.append("action = ?")
            params.append(action)
        if search:
            conditions.append("(resource_type LIKE ? OR details LIKE ? OR admin_user_id LIKE ?)")
            params.extend([f"%{search}%"] * 3)

        query = f"""
        SELECT * FROM admin_activity_logs
        WHERE {' AND '.join(conditions)}
        ORDER BY created_at DESC
        LIMIT ?
        """
        params.append(limit)
        return [_decode_json(row, "details") for row in execute_query(query, params)]


def _decode_json(row: dict, column: str) -> dict:
    raw = row.get(column)
    if isinstance(raw, str):
        try:
            row[column] = json.loads(raw)
        except json.JSONDecodeError:
            pass
    return row
