"""Response headers shared by the user and admin listeners."""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from parley.core.request_utils import is_https

API_PREFIXES = ("/api/", "/admin/api/")
PAGE_CSP = "default-src 'self'; script-src 'self'; frame-ancestors 'none'"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Framing and sniffing protection on every response.

    API responses are never cached; HTML pages from the web client also get
    a same-origin CSP and send no referrer.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"

        if request.url.path.startswith(API_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
        elif response.headers.get("content-type", "").startswith("text/html"):
            response.headers["Content-Security-Policy"] = PAGE_CSP
            response.headers["Referrer-Policy"] = "no-referrer"

        if is_https(request):
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
