"""IP allow/block list filtering."""

import ipaddress
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from parley.core.errors import error_response
from parley.core.request_utils import get_client_ip

if TYPE_CHECKING:
    from parley.state import AppState

logger = logging.getLogger(__name__)

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


def parse_networks(entries: Iterable[str]) -> tuple[IPNetwork, ...]:
    """Parse IPs and CIDR ranges; a bare address becomes a single-host network."""
    return tuple(ipaddress.ip_network(entry.strip(), strict=False) for entry in entries)


class IPFilter:
    """Block list wins; a non-empty allow list admits only its networks."""

    def __init__(self, allowed: Iterable[str] = (), blocked: Iterable[str] = ()) -> None:
        self._allowed = parse_networks(allowed)
        self._blocked = parse_networks(blocked)

    def update(self, allowed: Iterable[str], blocked: Iterable[str]) -> None:
        """Swap in new lists. Both are parsed before either is replaced."""
        new_allowed = parse_networks(allowed)
        new_blocked = parse_networks(blocked)
        self._allowed, self._blocked = new_allowed, new_blocked

    def is_allowed(self, ip: str) -> bool:
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            # Unresolvable clients only pass when no allow list is configured
            return not self._allowed

        if any(address in network for network in self._blocked):
            return False
        if self._allowed:
            return any(address in network for network in self._allowed)
        return True

    def stats(self) -> dict[str, list[str]]:
        return {
            "allowed": [str(n) for n in self._allowed],
            "blocked": [str(n) for n in self._blocked],
        }


class IPFilterMiddleware(BaseHTTPMiddleware):
    """Reject requests from filtered addresses with a 403."""

    def __init__(self, app: ASGIApp, state: "AppState") -> None:
        super().__init__(app)
        self.state = state

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trusted = self.state.config.snapshot().trusted_proxy_ips
        client_ip = get_client_ip(request, trusted)

        if not self.state.ip_filter.is_allowed(client_ip):
            self.state.metrics.record_ip_blocked()
            logger.warning(f"Blocked request from {client_ip} to {request.url.path}")
            return error_response("ACCESS_DENIED", "Access denied", status.HTTP_403_FORBIDDEN)

        return await call_next(request)
