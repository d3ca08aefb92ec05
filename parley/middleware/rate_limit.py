"""Per-IP token bucket rate limiting."""

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from parley.core.errors import error_response
from parley.core.request_utils import get_client_ip

if TYPE_CHECKING:
    from parley.state import AppState

logger = logging.getLogger(__name__)


@dataclass
class RateLimitBucket:
    """Token bucket for a single client IP."""

    tokens: float
    last_refill: float


class RateLimiter:
    """In-memory token bucket limiter keyed by client IP.

    One lock guards the whole map, so concurrent checks for the same IP can
    never spend the same token twice. Buckets are not persisted; a restart
    hands every client a full bucket.
    """

    def __init__(
        self,
        capacity: float,
        refill_rate: float,
        idle_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate)
        self.idle_seconds = float(idle_seconds)
        self._clock = clock
        self._buckets: dict[str, RateLimitBucket] = {}
        self._lock = asyncio.Lock()

    def configure(self, capacity: float, refill_rate: float, idle_seconds: float) -> None:
        """Apply reloaded limits. Existing buckets keep their current tokens."""
        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate)
        self.idle_seconds = float(idle_seconds)

    async def check_rate_limit(self, client_ip: str) -> tuple[bool, dict[str, str]]:
        """Try to spend one token for client_ip.

        Returns:
            Tuple of (is_allowed, headers_dict)
        """
        async with self._lock:
            now = self._clock()
            bucket = self._buckets.get(client_ip)
            if bucket is None:
                bucket = RateLimitBucket(tokens=self.capacity, last_refill=now)
                self._buckets[client_ip] = bucket

            elapsed = max(0.0, now - bucket.last_refill)
            bucket.tokens = min(self.capacity, bucket.tokens + elapsed * self.refill_rate)
            bucket.last_refill = now

            headers = {"X-RateLimit-Limit": str(int(self.capacity))}

            if bucket.tokens < 1.0:
                wait = (1.0 - bucket.tokens) / self.refill_rate
                headers["X-RateLimit-Remaining"] = "0"
                headers["Retry-After"] = str(max(1, math.ceil(wait)))
                return False, headers

            bucket.tokens -= 1.0
            headers["X-RateLimit-Remaining"] = str(int(bucket.tokens))
            return True, headers

    async def get_stats(self) -> dict[str, object]:
        """Current limiter parameters and bucket levels."""
        async with self._lock:
            return {
                "capacity": self.capacity,
                "refill_rate": self.refill_rate,
                "idle_seconds": self.idle_seconds,
                "tracked_ips": len(self._buckets),
                "buckets": {ip: round(b.tokens, 2) for ip, b in self._buckets.items()},
            }

    async def reset(self, client_ip: str | None = None) -> None:
        async with self._lock:
            if client_ip:
                self._buckets.pop(client_ip, None)
            else:
                self._buckets.clear()

    async def cleanup_inactive_buckets(self, idle_seconds: float | None = None) -> int:
        """Remove buckets untouched for longer than the idle window.

        Returns:
            Number of buckets removed
        """
        window = self.idle_seconds if idle_seconds is None else idle_seconds
        async with self._lock:
            cutoff = self._clock() - window
            stale = [ip for ip, b in self._buckets.items() if b.last_refill < cutoff]
            for ip in stale:
                del self._buckets[ip]

        if stale:
            logger.info(f"Cleaned up {len(stale)} inactive rate limit buckets")
        return len(stale)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject clients that have drained their token bucket with a 429."""

    def __init__(self, app: ASGIApp, state: "AppState") -> None:
        super().__init__(app)
        self.state = state

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trusted = self.state.config.snapshot().trusted_proxy_ips
        client_ip = get_client_ip(request, trusted)
        is_allowed, headers = await self.state.rate_limiter.check_rate_limit(client_ip)

        if not is_allowed:
            self.state.metrics.record_rate_limited()
            logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")
            return error_response(
                "RATE_LIMITED",
                "Too many requests. Please try again later.",
                status.HTTP_429_TOO_MANY_REQUESTS,
                headers=headers,
            )

        response = await call_next(request)
        for key, value in headers.items():
            response.headers[key] = value
        return response
