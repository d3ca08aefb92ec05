"""Tests for the token bucket rate limiter and its middleware."""

import pytest

from parley.middleware.rate_limit import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRateLimiter:
    """Tests for the RateLimiter class."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def rate_limiter(self, clock):
        """Capacity 5, refilling 10 tokens per second."""
        return RateLimiter(capacity=5, refill_rate=10, idle_seconds=60, clock=clock)

    @pytest.mark.asyncio
    async def test_new_client_gets_full_bucket(self, rate_limiter):
        """Test that the first request is allowed and reports remaining tokens."""
        allowed, headers = await rate_limiter.check_rate_limit("192.168.1.1")

        assert allowed is True
        assert headers["X-RateLimit-Limit"] == "5"
        assert headers["X-RateLimit-Remaining"] == "4"

    @pytest.mark.asyncio
    async def test_burst_exhausts_bucket(self, rate_limiter):
        """Test that capacity requests pass and the next one is rejected."""
        results = [(await rate_limiter.check_rate_limit("10.0.0.1"))[0] for _ in range(6)]

        assert results == [True] * 5 + [False]

    @pytest.mark.asyncio
    async def test_rejection_carries_retry_after(self, rate_limiter):
        """Test that a rejected request is told when to retry."""
        for _ in range(5):
            await rate_limiter.check_rate_limit("10.0.0.1")

        allowed, headers = await rate_limiter.check_rate_limit("10.0.0.1")

        assert allowed is False
        assert headers["X-RateLimit-Remaining"] == "0"
        assert int(headers["Retry-After"]) >= 1

    @pytest.mark.asyncio
    async def test_refill_over_time(self, rate_limiter, clock):
        """Test that tokens come back at refill_rate per second."""
        for _ in range(5):
            await rate_limiter.check_rate_limit("10.0.0.1")
        assert (await rate_limiter.check_rate_limit("10.0.0.1"))[0] is False

        clock.advance(0.1)  # one token at 10/s

        assert (await rate_limiter.check_rate_limit("10.0.0.1"))[0] is True
        assert (await rate_limiter.check_rate_limit("10.0.0.1"))[0] is False

    @pytest.mark.asyncio
    async def test_two_tokens_after_200ms(self, rate_limiter, clock):
        """Test that an exhausted bucket of 5 at 10/s admits exactly two after 200ms."""
        for _ in range(5):
            assert (await rate_limiter.check_rate_limit("10.0.0.1"))[0] is True

        clock.advance(0.2)
        results = [(await rate_limiter.check_rate_limit("10.0.0.1"))[0] for _ in range(3)]

        assert results == [True, True, False]

    @pytest.mark.asyncio
    async def test_refill_capped_at_capacity(self, rate_limiter, clock):
        """Test that a long idle period never grants more than capacity."""
        await rate_limiter.check_rate_limit("10.0.0.1")
        clock.advance(3600)

        results = [(await rate_limiter.check_rate_limit("10.0.0.1"))[0] for _ in range(6)]

        assert results.count(True) == 5

    @pytest.mark.asyncio
    async def test_separate_buckets_per_ip(self, rate_limiter):
        """Test that one client draining its bucket does not affect another."""
        for _ in range(5):
            await rate_limiter.check_rate_limit("10.0.0.1")

        allowed, _ = await rate_limiter.check_rate_limit("10.0.0.2")

        assert allowed is True
        stats = await rate_limiter.get_stats()
        assert stats["tracked_ips"] == 2

    @pytest.mark.asyncio
    async def test_cleanup_removes_idle_buckets(self, rate_limiter, clock):
        """Test that buckets idle past the window are dropped."""
        await rate_limiter.check_rate_limit("10.0.0.1")
        clock.advance(30)
        await rate_limiter.check_rate_limit("10.0.0.2")
        clock.advance(31)

        removed = await rate_limiter.cleanup_inactive_buckets()

        assert removed == 1
        assert list((await rate_limiter.get_stats())["buckets"]) == ["10.0.0.2"]

    @pytest.mark.asyncio
    async def test_configure_applies_new_capacity(self, rate_limiter):
        """Test that reloaded limits take effect for existing clients."""
        await rate_limiter.check_rate_limit("10.0.0.1")

        rate_limiter.configure(capacity=2, refill_rate=1, idle_seconds=60)
        allowed, headers = await rate_limiter.check_rate_limit("10.0.0.1")

        assert allowed is True
        assert headers["X-RateLimit-Limit"] == "2"
        assert headers["X-RateLimit-Remaining"] == "1"

    @pytest.mark.asyncio
    async def test_reset_single_client(self, rate_limiter):
        """Test that resetting one IP gives it a fresh bucket."""
        for _ in range(5):
            await rate_limiter.check_rate_limit("10.0.0.1")

        await rate_limiter.reset("10.0.0.1")

        assert (await rate_limiter.check_rate_limit("10.0.0.1"))[0] is True


class TestRateLimitMiddleware:
    """Tests for the 429 response path."""

    @pytest.mark.asyncio
    async def test_rejects_with_429_envelope(self, state, user_client):
        """Test that a drained bucket yields RATE_LIMITED and is counted."""
        state.rate_limiter.configure(capacity=2, refill_rate=0.001, idle_seconds=60)

        codes = [(await user_client.get("/health")).status_code for _ in range(3)]

        assert codes == [200, 200, 429]
        response = await user_client.get("/health")
        assert response.json()["code"] == "RATE_LIMITED"
        assert "Retry-After" in response.headers
        assert state.metrics.rate_limited == 2

    @pytest.mark.asyncio
    async def test_success_carries_limit_headers(self, user_client):
        """Test that allowed responses include the limit headers."""
        response = await user_client.get("/health")

        assert response.status_code == 200
        assert "X-RateLimit-Limit" in response.headers
        assert "X-RateLimit-Remaining" in response.headers

    @pytest.mark.asyncio
    async def test_limiter_shared_by_both_listeners(self, state, user_client, admin_client):
        """Test that one client IP has one bucket across both listeners."""
        state.rate_limiter.configure(capacity=2, refill_rate=0.001, idle_seconds=60)

        await user_client.get("/health")
        await admin_client.get("/health")
        response = await user_client.get("/health")

        assert response.status_code == 429
