"""Middleware module for Parley."""

from parley.middleware.ip_filter import IPFilter, IPFilterMiddleware
from parley.middleware.load_shed import LoadShedMiddleware
from parley.middleware.metrics import Metrics, MetricsMiddleware, render_prometheus
from parley.middleware.rate_limit import RateLimiter, RateLimitMiddleware
from parley.middleware.security_headers import SecurityHeadersMiddleware
from parley.middleware.timeout import RequestTimeoutMiddleware, StagedTimeoutMiddleware

__all__ = [
    "IPFilter",
    "IPFilterMiddleware",
    "LoadShedMiddleware",
    "Metrics",
    "MetricsMiddleware",
    "RateLimiter",
    "RateLimitMiddleware",
    "RequestTimeoutMiddleware",
    "SecurityHeadersMiddleware",
    "StagedTimeoutMiddleware",
    "render_prometheus",
]
