"""Request accounting and the Prometheus exposition of it."""

import time
from collections import deque
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

from fastapi import Request, Response
from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

if TYPE_CHECKING:
    from parley.state import AppState


LATENCY_BUFFER_SIZE = 1000


class Metrics:
    """Process-wide request counters plus a ring buffer of recent latencies.

    All mutation happens on the event loop thread, so plain integers are
    enough; nothing here awaits between read and write.
    """

    def __init__(
        self,
        latency_capacity: int = LATENCY_BUFFER_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self.started_at = clock()
        self.total_requests = 0
        self.active_connections = 0
        self.errors = 0
        self.bytes_in = 0
        self.bytes_out = 0
        self.rate_limited = 0
        self.ip_blocked = 0
        self._latencies: deque[float] = deque(maxlen=latency_capacity)

    def request_started(self, bytes_in: int = 0) -> None:
        self.total_requests += 1
        self.active_connections += 1
        self.bytes_in += bytes_in

    def request_finished(self, duration: float, status_code: int, bytes_out: int = 0) -> None:
        """Close out a request started with request_started. Call exactly once."""
        self.active_connections -= 1
        self.bytes_out += bytes_out
        self._latencies.append(duration)
        if status_code >= 500:
            self.errors += 1

    def record_rate_limited(self) -> None:
        self.rate_limited += 1

    def record_ip_blocked(self) -> None:
        self.ip_blocked += 1

    @property
    def uptime_seconds(self) -> float:
        return self._clock() - self.started_at

    def average_latency(self) -> float:
        if not self._latencies:
            return 0.0
        return sum(self._latencies) / len(self._latencies)

    def percentile(self, p: float) -> float:
        """Latency percentile over the buffer, sorting a copy."""
        samples = sorted(self._latencies)
        if not samples:
            return 0.0
        index = min(int(p / 100 * len(samples)), len(samples) - 1)
        return samples[index]

    def snapshot(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "active_connections": self.active_connections,
            "errors": self.errors,
            "bytes_in": self.bytes_in,
            "bytes_out": self.bytes_out,
            "rate_limited": self.rate_limited,
            "ip_blocked": self.ip_blocked,
            "uptime_seconds": round(self.uptime_seconds, 3),
            "latency_samples": len(self._latencies),
            "latency_avg_ms": round(self.average_latency() * 1000, 3),
            "latency_p50_ms": round(self.percentile(50) * 1000, 3),
            "latency_p95_ms": round(self.percentile(95) * 1000, 3),
            "latency_p99_ms": round(self.percentile(99) * 1000, 3),
        }


class MetricsCollector:
    """prometheus_client collector reading a Metrics instance on scrape."""

    def __init__(self, metrics: Metrics) -> None:
        self._metrics = metrics

    def collect(self) -> Iterator[Metric]:
        snap = self._metrics.snapshot()
        counters = (
            ("parley_requests", "Requests handled", "total_requests"),
            ("parley_request_errors", "Requests that ended in a server error", "errors"),
            ("parley_bytes_received", "Request body bytes received", "bytes_in"),
            ("parley_bytes_sent", "Response body bytes sent", "bytes_out"),
            ("parley_rate_limited", "Requests rejected by the rate limiter", "rate_limited"),
            ("parley_ip_blocked", "Requests rejected by the IP filter", "ip_blocked"),
        )
        for name, documentation, key in counters:
            yield CounterMetricFamily(name, documentation, value=snap[key])

        yield GaugeMetricFamily(
            "parley_active_connections", "Requests in flight", value=snap["active_connections"]
        )
        yield GaugeMetricFamily(
            "parley_uptime_seconds", "Seconds since start", value=snap["uptime_seconds"]
        )
        latency = GaugeMetricFamily(
            "parley_request_latency_seconds",
            "Request latency over the recent sample window",
            labels=["quantile"],
        )
        for quantile, p in (("0.5", 50), ("0.95", 95), ("0.99", 99)):
            latency.add_metric([quantile], self._metrics.percentile(p))
        yield latency


def render_prometheus(metrics: Metrics) -> bytes:
    """Prometheus text exposition of the current counters."""
    registry = CollectorRegistry(auto_describe=False)
    registry.register(MetricsCollector(metrics))
    return generate_latest(registry)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count every request and time it.

    The active connection gauge is decremented in ``finally`` so error paths
    and cancellations are accounted for exactly once.
    """

    def __init__(self, app: ASGIApp, state: "AppState") -> None:
        super().__init__(app)
        self.metrics = state.metrics

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        bytes_in = _content_length(request.headers.get("content-length"))
        self.metrics.request_started(bytes_in)
        start = time.perf_counter()
        status_code = 500
        bytes_out = 0
        try:
            response = await call_next(request)
            status_code = response.status_code
            bytes_out = _content_length(response.headers.get("content-length"))
            return response
        finally:
            self.metrics.request_finished(time.perf_counter() - start, status_code, bytes_out)


def _content_length(value: str | None) -> int:
    if not value:
        return 0
    try:
        return max(0, int(value))
    except ValueError:
        return 0
