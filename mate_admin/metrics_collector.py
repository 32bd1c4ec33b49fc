"""
In-process API request metrics with a rolling per-minute window.

``ApiMetricsCollector`` keeps one live accumulator (requests, total latency,
errors) that every completed request feeds, and a bounded history of closed
minute buckets.  ``rollover()`` closes the live accumulator into the window;
in the running service ``rollover_loop`` calls it once a minute.

Numbers are for dashboard display only: nothing is persisted and a restart
starts from zero.
"""

import asyncio
import logging
import math
import os
import threading
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Callable

logger = logging.getLogger("metrics")

METRICS_ROLLOVER_SECONDS = int(os.environ.get("METRICS_ROLLOVER_SECONDS", "60"))
WINDOW_MINUTES = 60


@dataclass
class APIMetricSample:
    count: int = 0
    total_response_time_ms: float = 0.0
    error_count: int = 0
    minute_bucket: int = 0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ApiMetricsCollector:
    """
    Rolling request/latency/error accumulator.

    Args:
        clock: Returns wall-clock seconds since the epoch; injectable so tests
            can move time deterministically.
        window_minutes: Closed buckets older than this many minutes are evicted.
    """

    def __init__(self, clock: Callable[[], float] = time.time, window_minutes: int = WINDOW_MINUTES):
        self._clock = clock
        self.window_minutes = window_minutes
        self._lock = threading.Lock()
        self._current = APIMetricSample(minute_bucket=self.current_minute())
        self._window: deque[APIMetricSample] = deque()

    def current_minute(self) -> int:
        return int(self._clock() // 60)

    def track_request(self, response_time_ms: float, is_error: bool = False) -> None:
        """Record one completed request.  Never raises."""
        try:
            latency = float(response_time_ms)
            if math.isnan(latency) or latency < 0:
                raise ValueError(f"invalid response time {response_time_ms!r}")
            with self._lock:
                self._current.count += 1
                self._current.total_response_time_ms += latency
                if is_error:
                    self._current.error_count += 1
        except Exception as exc:
            logger.debug("Dropped request sample: %s", exc)

    def get_api_metrics(self) -> dict:
        minute = self.current_minute()
        with self._lock:
            count = self._current.count
            total = self._current.total_response_time_ms
            errors = self._current.error_count
            requests_this_minute = sum(
                bucket.count for bucket in self._window if bucket.minute_bucket == minute
            )

        return {
            "requests_per_minute": requests_this_minute,
            "avg_response_time": _round_half_up(total / count) if count else 0,
            "error_rate": errors / count if count else 0,
            "total_requests": count,
        }

    def rollover(self) -> APIMetricSample:
        """Close the live accumulator into the window and start a fresh one."""
        minute = self.current_minute()
        with self._lock:
            closed = replace(self._current, minute_bucket=minute)
            self._window.append(closed)
            while self._window and self._window[0].minute_bucket <= minute - self.window_minutes:
                self._window.popleft()
            self._current = APIMetricSample(minute_bucket=minute)
        return closed

    def history(self) -> list[APIMetricSample]:
        with self._lock:
            return [replace(bucket) for bucket in self._window]


async def rollover_loop(
    collector: ApiMetricsCollector,
    interval: int | None = None,
    on_rollover: Callable[[APIMetricSample], None] | None = None,
) -> None:
    """Call ``collector.rollover()`` every *interval* seconds until cancelled."""
    interval = interval or METRICS_ROLLOVER_SECONDS
    logger.info("Metrics rollover started (interval=%ds)", interval)

    while True:
        await asyncio.sleep(interval)
        try:
            closed = collector.rollover()
            logger.debug(
                "Rolled over minute %d: %d requests, %d errors",
                closed.minute_bucket,
                closed.count,
                closed.error_count,
            )
            if on_rollover is not None:
                on_rollover(closed)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Metrics rollover failed")
