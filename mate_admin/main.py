import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mate_common.observability import init_observability, get_logger, shutdown_tracing

from mate_admin.database import init_db, insert_system_logs
from mate_admin.errors import register_error_handlers
from mate_admin.metrics_collector import ApiMetricsCollector, rollover_loop
from mate_admin.routes import health_router, system_router, reports_router
from mate_admin.system_logging import SystemLogBuffer, flush_loop

VERSION = "1.0.0"

# Bootstrap logging + tracing + service-info in one call
init_observability("admin-api", VERSION)

logger = get_logger("admin-api")

collector = ApiMetricsCollector()
log_buffer = SystemLogBuffer(insert_system_logs)

_background_tasks: list[asyncio.Task] = []


def track_request(method: str, path: str, status_code: int, duration_ms: float) -> None:
    """Feed every completed request to the API window and the system log sink."""
    collector.track_request(duration_ms, status_code >= 400)
    error = f"HTTP {status_code}" if status_code >= 400 else None
    log_buffer.log_api(method, path, status_code, duration_ms, error=error)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database initialized")

    from mate_admin.scheduler import health_loop
    from mate_admin.telemetry import record_rollover

    _background_tasks.extend([
        asyncio.create_task(rollover_loop(collector, on_rollover=record_rollover)),
        asyncio.create_task(flush_loop(log_buffer)),
        asyncio.create_task(health_loop(collector, log_buffer)),
    ])
    logger.info("Background tasks started")

    yield

    for task in _background_tasks:
        task.cancel()
    for task in _background_tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    _background_tasks.clear()

    # Flush remaining traces before shutdown
    shutdown_tracing()


app = FastAPI(
    title="Mate Admin Monitoring Service",
    version=VERSION,
    lifespan=lifespan,
)

app.state.collector = collector
app.state.log_buffer = log_buffer

register_error_handlers(app)

app.include_router(health_router)
app.include_router(system_router)
app.include_router(reports_router)

# Initialize telemetry at module level (before requests start)
try:
    from mate_admin import telemetry
    telemetry.init(app, listeners=[track_request])
except Exception as e:
    logger.warning(f"Telemetry init skipped: {e}")
