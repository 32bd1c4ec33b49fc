"""
Buffered sink for the ``system_logs`` table.

Entries are appended in memory, mirrored to the process logger, and written
in batches by ``flush()`` from the ``flush_loop`` task the application starts
in its lifespan, periodically and whenever the buffer fills.  A failed write
keeps the most recent ``requeue_limit`` entries of the batch, ahead of
anything logged while the write was in flight.
"""

import asyncio
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger("system")

LOG_FLUSH_INTERVAL_SECONDS = int(os.environ.get("LOG_FLUSH_INTERVAL_SECONDS", "5"))
LOG_BUFFER_SIZE = int(os.environ.get("LOG_BUFFER_SIZE", "100"))
REQUEUE_LIMIT = 50

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class SystemLogEntry:
    level: str
    service: str
    message: str
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SystemLogBuffer:
    """
    Bounded in-memory buffer in front of a batch writer.

    Args:
        writer: Persists a list of entries; raising marks the batch as failed.
        max_buffer_size: Buffer length that triggers an immediate flush.
        requeue_limit: How many entries of a failed batch are kept.
    """

    def __init__(
        self,
        writer: Callable[[list[SystemLogEntry]], object],
        max_buffer_size: int = LOG_BUFFER_SIZE,
        requeue_limit: int = REQUEUE_LIMIT,
    ):
        self._writer = writer
        self.max_buffer_size = max_buffer_size
        self.requeue_limit = requeue_limit
        self._buffer: list[SystemLogEntry] = []
        self._lock = threading.Lock()
        # one writer at a time; log() may trigger a flush while the loop is flushing
        self._flush_lock = threading.Lock()
        self._consumer: tuple[asyncio.AbstractEventLoop, asyncio.Event] | None = None
        self._flush_tasks: set[asyncio.Task] = set()

    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def log(self, level: str, service: str, message: str, metadata: dict | None = None) -> None:
        if level not in LEVELS:
            level = "info"
        entry = SystemLogEntry(level=level, service=service, message=message, metadata=metadata or {})

        logger.log(
            LEVELS[level],
            "[%s] %s",
            service,
            message,
            extra={"service": service, "metadata": entry.metadata},
        )

        with self._lock:
            self._buffer.append(entry)
            full = len(self._buffer) >= self.max_buffer_size

        if full:
            self._request_flush()

    def attach_consumer(self, loop: asyncio.AbstractEventLoop, wakeup: asyncio.Event) -> None:
        """Route full-buffer flushes to the task waiting on *wakeup*."""
        self._consumer = (loop, wakeup)

    def detach_consumer(self) -> None:
        self._consumer = None

    def _request_flush(self) -> None:
        # writes never run on an event-loop thread
        if self._consumer is not None:
            loop, wakeup = self._consumer
            loop.call_soon_threadsafe(wakeup.set)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return

        task = loop.create_task(asyncio.to_thread(self.flush))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    def debug(self, service: str, message: str, metadata: dict | None = None) -> None:
        self.log("debug", service, message, metadata)

    def info(self, service: str, message: str, metadata: dict | None = None) -> None:
        self.log("info", service, message, metadata)

    def warn(self, service: str, message: str, metadata: dict | None = None) -> None:
        self.log("warn", service, message, metadata)

    def error(self, service: str, message: str, metadata: dict | None = None) -> None:
        self.log("error", service, message, metadata)

    def log_api(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_ms: float,
        user_id: str | None = None,
        error: str | None = None,
    ) -> None:
        if status_code >= 400:
            level = "error"
        elif status_code >= 300:
            level = "warn"
        else:
            level = "info"
        duration = int(round(duration_ms))
        self.log(
            level,
            "api",
            f"{method} {endpoint} - {status_code} ({duration}ms)",
            {
                "method": method,
                "endpoint": endpoint,
                "statusCode": status_code,
                "duration": duration,
                "userId": user_id,
                "error": error,
            },
        )

    def log_health(
        self,
        service: str,
        status: str,
        response_time_ms: float | None = None,
        details: dict | None = None,
    ) -> None:
        if status == "healthy":
            level = "info"
        elif status == "warning":
            level = "warn"
        else:
            level = "error"
        self.log(
            level,
            "health",
            f"Health check for {service}: {status}",
            {"service": service, "status": status, "responseTime": response_time_ms, **(details or {})},
        )

    def flush(self) -> int:
        """Write everything buffered so far.  Never raises; returns entries written."""
        with self._flush_lock:
            with self._lock:
                if not self._buffer:
                    return 0
                batch = self._buffer
                self._buffer = []

            try:
                self._writer(batch)
            except Exception:
                logger.exception("Failed to flush %d system log entries", len(batch))
                kept = batch[-self.requeue_limit:] if self.requeue_limit > 0 else []
                with self._lock:
                    self._buffer = kept + self._buffer
                return 0

            return len(batch)


async def flush_loop(buffer: SystemLogBuffer, interval: int | None = None) -> None:
    """
    Flush *buffer* every *interval* seconds, or sooner when it fills up.

    Writes run in a worker thread; one last flush happens when cancelled.
    """
    interval = interval or LOG_FLUSH_INTERVAL_SECONDS
    wakeup = asyncio.Event()
    buffer.attach_consumer(asyncio.get_running_loop(), wakeup)
    logger.info("System log flusher started (interval=%ss)", interval)

    try:
        while True:
            try:
                await asyncio.wait_for(wakeup.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            wakeup.clear()
            await asyncio.to_thread(buffer.flush)
    except asyncio.CancelledError:
        await asyncio.to_thread(buffer.flush)
        logger.info("System log flusher stopped")
        raise
    finally:
        buffer.detach_consumer()
