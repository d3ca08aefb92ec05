"""Tests for security headers middleware.

Verifies that the headers are present on both listeners, including on
responses produced by the protective middlewares.
"""

import pytest

from parley.api.static import StaticFileResolver


class TestSecurityHeaders:
    """Tests for SecurityHeadersMiddleware."""

    @pytest.mark.asyncio
    async def test_basic_headers(self, user_client):
        """Test the fixed security headers on a plain response."""
        response = await user_client.get("/health")

        assert response.headers.get("X-Content-Type-Options") == "nosniff"
        assert response.headers.get("X-Frame-Options") == "DENY"
        assert "Content-Security-Policy" not in response.headers
        assert "Permissions-Policy" not in response.headers

    @pytest.mark.asyncio
    async def test_pages_get_csp(self, state, user_client, tmp_path):
        """Test that HTML pages get a same-origin CSP and no referrer."""
        (tmp_path / "index.html").write_text("<h1>parley</h1>")
        (tmp_path / "app.js").write_text("console.log('hi')")
        state.static_resolver = StaticFileResolver(tmp_path)

        page = await user_client.get("/")
        script = await user_client.get("/app.js")

        assert page.headers["Content-Security-Policy"].startswith("default-src 'self'")
        assert page.headers["Referrer-Policy"] == "no-referrer"
        assert "Content-Security-Policy" not in script.headers
        assert script.headers.get("X-Content-Type-Options") == "nosniff"

    @pytest.mark.asyncio
    async def test_hsts_only_over_https(self, user_client):
        """Test that HSTS is sent only when the request is HTTPS."""
        plain = await user_client.get("/health")
        secure = await user_client.get("/health", headers={"X-Forwarded-Proto": "https"})

        assert "Strict-Transport-Security" not in plain.headers
        assert "includeSubDomains" in secure.headers["Strict-Transport-Security"]

    @pytest.mark.asyncio
    async def test_api_responses_not_cached(self, user_client, admin_client):
        """Test that API responses on both listeners are marked no-store."""
        user = await user_client.get("/api/config")
        admin = await admin_client.post("/admin/api/stats")

        assert user.headers.get("Cache-Control") == "no-store"
        assert admin.headers.get("Cache-Control") == "no-store"

    @pytest.mark.asyncio
    async def test_headers_on_auth_error(self, admin_client):
        """Test that a 401 from the router still carries the headers."""
        response = await admin_client.post("/admin/api/users")

        assert response.status_code == 401
        assert response.headers.get("X-Frame-Options") == "DENY"

    @pytest.mark.asyncio
    async def test_headers_on_ip_block(self, state, user_client):
        """Test that a 403 from the IP filter still carries the headers."""
        state.ip_filter.update(allowed=[], blocked=["127.0.0.1"])

        response = await user_client.get("/health")

        assert response.status_code == 403
        assert response.headers.get("X-Content-Type-Options") == "nosniff"
