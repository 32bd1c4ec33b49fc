"""
Reusable ASGI / Starlette middleware for HTTP request metrics.

Usage::

    from mate_common.observability.middleware import MetricsMiddleware
    from mate_common.observability import create_counter, create_histogram

    HTTP_REQUESTS = create_counter(
        "http_requests_total", "Total HTTP requests", ["method", "path", "status"]
    )
    HTTP_LATENCY = create_histogram(
        "http_request_duration_seconds", "Request latency", labelnames=["method", "path"]
    )

    app.add_middleware(
        MetricsMiddleware,
        counter=HTTP_REQUESTS,
        histogram=HTTP_LATENCY,
        listeners=[lambda method, path, status, ms: ...],
    )
"""

import logging
import time
from typing import Callable, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from prometheus_client import Counter, Histogram

logger = logging.getLogger("observability.middleware")

# listener(method, path, status_code, duration_ms)
RequestListener = Callable[[str, str, int, float], None]


class MetricsMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that records every completed request.

    The status is ``500`` when the downstream handler raises; the exception
    is re-raised after recording.

    Args:
        app: The ASGI application.
        counter: A ``prometheus_client.Counter`` with labels
            ``["method", "path", "status"]``.
        histogram: Optional ``Histogram`` with labels ``["method", "path"]``
            observing the request duration in seconds.
        ignored_paths: Optional set of paths to skip
            (e.g. ``{"/metrics", "/health"}``).
        listeners: Callables notified with
            ``(method, path, status_code, duration_ms)``.  A failing
            listener is logged and never affects the response.
    """

    def __init__(
        self,
        app,
        counter: Counter,
        histogram: Histogram | None = None,
        ignored_paths: set[str] | None = None,
        listeners: Iterable[RequestListener] = (),
    ):
        super().__init__(app)
        self.counter = counter
        self.histogram = histogram
        self.ignored_paths = ignored_paths or set()
        self.listeners = list(listeners)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.ignored_paths:
            return await call_next(request)

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            elapsed = time.perf_counter() - start
            self._record(request.method, request.url.path, status_code, elapsed)

    def _record(self, method: str, path: str, status_code: int, elapsed: float) -> None:
        self.counter.labels(method=method, path=path, status=status_code).inc()
        if self.histogram is not None:
            self.histogram.labels(method=method, path=path).observe(elapsed)

        duration_ms = elapsed * 1000
        for listener in self.listeners:
            try:
                listener(method, path, status_code, duration_ms)
            except Exception:
                logger.exception("Request listener %r failed", listener)
