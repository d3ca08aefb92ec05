"""Tests for IP allow/block list filtering."""

import pytest

from parley.middleware.ip_filter import IPFilter


class TestIPFilter:
    """Tests for the IPFilter rules."""

    def test_empty_lists_allow_everyone(self):
        """Test that no configuration admits every address."""
        ip_filter = IPFilter()

        assert ip_filter.is_allowed("203.0.113.9") is True
        assert ip_filter.is_allowed("::1") is True

    def test_blocklist_cidr(self):
        """Test that addresses inside a blocked network are rejected."""
        ip_filter = IPFilter(blocked=["10.0.0.0/8"])

        assert ip_filter.is_allowed("10.1.2.3") is False
        assert ip_filter.is_allowed("192.168.1.1") is True

    def test_allowlist_restricts(self):
        """Test that a non-empty allow list admits only its networks."""
        ip_filter = IPFilter(allowed=["192.168.0.0/16", "127.0.0.1"])

        assert ip_filter.is_allowed("192.168.4.4") is True
        assert ip_filter.is_allowed("127.0.0.1") is True
        assert ip_filter.is_allowed("8.8.8.8") is False

    def test_block_wins_over_allow(self):
        """Test that the block list takes precedence."""
        ip_filter = IPFilter(allowed=["10.0.0.0/8"], blocked=["10.0.0.5"])

        assert ip_filter.is_allowed("10.0.0.5") is False
        assert ip_filter.is_allowed("10.0.0.6") is True

    def test_unknown_client_with_allowlist(self):
        """Test that an unresolvable client is refused once an allow list exists."""
        assert IPFilter().is_allowed("unknown") is True
        assert IPFilter(allowed=["10.0.0.0/8"]).is_allowed("unknown") is False

    def test_update_is_all_or_nothing(self):
        """Test that an invalid update leaves the old lists in place."""
        ip_filter = IPFilter(blocked=["10.0.0.0/8"])

        with pytest.raises(ValueError):
            ip_filter.update(allowed=[], blocked=["not-a-network"])

        assert ip_filter.stats() == {"allowed": [], "blocked": ["10.0.0.0/8"]}


class TestIPFilterMiddleware:
    """Tests for the 403 response path."""

    @pytest.mark.asyncio
    async def test_blocked_client_gets_403(self, state, user_client):
        """Test that the test client's address can be blocked."""
        state.ip_filter.update(allowed=[], blocked=["127.0.0.1"])

        response = await user_client.get("/health")

        assert response.status_code == 403
        assert response.json()["code"] == "ACCESS_DENIED"
        assert state.metrics.ip_blocked == 1

    @pytest.mark.asyncio
    async def test_forwarded_header_ignored_without_trusted_proxy(self, state, user_client):
        """Test that a client cannot dodge the filter with X-Forwarded-For."""
        state.ip_filter.update(allowed=[], blocked=["127.0.0.1"])

        response = await user_client.get("/health", headers={"X-Forwarded-For": "8.8.8.8"})

        assert response.status_code == 403
