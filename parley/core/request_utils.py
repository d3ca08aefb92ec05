"""Request utility functions: client IP resolution and HTTPS detection."""

import ipaddress
import logging

from fastapi import Request

logger = logging.getLogger(__name__)

UNKNOWN_IP = "unknown"


def _is_valid_ip(ip_str: str) -> bool:
    """Check if a string is a valid IP address."""
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_forwarded_ip(request: Request) -> str | None:
    """IP a session is bound to and compared against.

    First entry of X-Forwarded-For, else X-Real-IP, else None. Login and the
    secure-path check both go through this function so the two sides of the
    comparison are always resolved the same way.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return None


def get_client_ip(request: Request, trusted_proxies: list[str] | set[str] | None = None) -> str:
    """Connection-level client IP used by the IP filter and rate limiter.

    Forwarded headers are honoured only when the direct peer is a configured
    trusted proxy; otherwise a client could spoof them to dodge the filters.
    """
    direct_ip = request.client.host if request.client else None

    if trusted_proxies and direct_ip and direct_ip in trusted_proxies:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
            if _is_valid_ip(client_ip):
                return client_ip
            logger.warning(f"Invalid IP in X-Forwarded-For header: {client_ip}")

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            if _is_valid_ip(real_ip.strip()):
                return real_ip.strip()
            logger.warning(f"Invalid IP in X-Real-IP header: {real_ip}")

    if direct_ip:
        return direct_ip

    return UNKNOWN_IP


def is_https(request: Request) -> bool:
    """Whether the client reached us over HTTPS.

    X-Forwarded-Proto wins, then X-Forwarded-Ssl, then the URL scheme.
    """
    proto = request.headers.get("X-Forwarded-Proto")
    if proto:
        return proto.split(",")[0].strip().lower() == "https"

    ssl = request.headers.get("X-Forwarded-Ssl")
    if ssl:
        return ssl.strip().lower() == "on"

    return request.url.scheme == "https"
