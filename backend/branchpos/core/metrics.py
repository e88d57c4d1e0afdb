"""Prometheus-compatible metrics for application monitoring."""

import time
import logging
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)


class MetricsCollector:
    """Collects HTTP and order-lifecycle metrics in Prometheus exposition format."""

    def __init__(self):
        self.request_count: Dict[str, int] = {}
        self.request_duration: Dict[str, List[float]] = {}
        self.error_count: Dict[int, int] = {}
        self.active_requests: int = 0
        # Lifecycle counters, keyed by event name
        self.events: Dict[str, int] = {}

    def record_request(self, method: str, path: str, status: int, duration: float):
        normalized = self._normalize_path(path)
        key = f"{method} {normalized}"
        self.request_count[key] = self.request_count.get(key, 0) + 1
        durations = self.request_duration.setdefault(key, [])
        durations.append(duration)
        if len(durations) > 1000:
            self.request_duration[key] = durations[-1000:]
        if status >= 400:
            self.error_count[status] = self.error_count.get(status, 0) + 1

    def inc(self, event: str, amount: int = 1) -> None:
        """Bump a lifecycle counter (orders_created, tables_cleared, ...)."""
        self.events[event] = self.events.get(event, 0) + amount

    @staticmethod
    def _normalize_path(path: str) -> str:
        """Replace numeric IDs with :id to limit cardinality."""
        parts = path.split("/")
        return "/".join(":id" if p.isdigit() else p for p in parts)

    def get_prometheus_metrics(self) -> str:
        lines: List[str] = []
        lines.append("# HELP http_requests_total Total HTTP requests")
        lines.append("# TYPE http_requests_total counter")
        for key, count in sorted(self.request_count.items()):
            method, path = key.split(" ", 1)
            lines.append(f'http_requests_total{{method="{method}",path="{path}"}} {count}')

        lines.append("# HELP http_errors_total Total HTTP errors by status code")
        lines.append("# TYPE http_errors_total counter")
        for code, count in sorted(self.error_count.items()):
            lines.append(f'http_errors_total{{status="{code}"}} {count}')

        lines.append("# HELP http_active_requests Current active requests")
        lines.append("# TYPE http_active_requests gauge")
        lines.append(f"http_active_requests {self.active_requests}")

        lines.append("# HELP http_request_duration_seconds Request duration summary")
        lines.append("# TYPE http_request_duration_seconds summary")
        for key, durations in sorted(self.request_duration.items()):
            if durations:
                method, path = key.split(" ", 1)
                avg = sum(durations) / len(durations)
                p99 = sorted(durations)[int(len(durations) * 0.99)] if len(durations) > 1 else durations[0]
                lines.append(f'http_request_duration_seconds{{method="{method}",path="{path}",quantile="0.99"}} {p99:.4f}')
                lines.append(f'http_request_duration_seconds{{method="{method}",path="{path}",quantile="0.5"}} {avg:.4f}')

        lines.append("# HELP pos_events_total Order lifecycle and sync events")
        lines.append("# TYPE pos_events_total counter")
        for event, count in sorted(self.events.items()):
            lines.append(f'pos_events_total{{event="{event}"}} {count}')

        return "\n".join(lines) + "\n"


metrics = MetricsCollector()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        metrics.active_requests += 1
        start = time.time()
        try:
            response = await call_next(request)
            metrics.record_request(
                request.method, request.url.path, response.status_code, time.time() - start,
            )
            return response
        except Exception:
            metrics.record_request(request.method, request.url.path, 500, time.time() - start)
            raise
        finally:
            metrics.active_requests -= 1
