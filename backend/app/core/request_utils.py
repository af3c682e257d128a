"""Request utility functions for handling common request operations."""

import ipaddress
import logging
import os

from fastapi import Request

logger = logging.getLogger(__name__)

# Reverse proxies allowed to set X-Forwarded-For / X-Real-IP.
# When empty, forwarding headers are ignored entirely.
TRUSTED_PROXY_IPS = {
    ip.strip() for ip in os.environ.get("TRUSTED_PROXY_IPS", "").split(",") if ip.strip()
}

BEARER_PREFIX = "Bearer "


def _is_valid_ip(ip_str: str) -> bool:
    """Check if a string is a valid IP address."""
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_client_ip(request: Request, trusted_proxies: set[str] | None = None) -> str:
    """Get the client IP address from a request.

    X-Forwarded-For and X-Real-IP can be spoofed by clients, so they are
    only honoured when the direct connection comes from a trusted proxy.

    Args:
        request: The FastAPI request object
        trusted_proxies: Override for TRUSTED_PROXY_IPS (tests)

    Returns:
        Client IP address, or "unknown" if not available
    """
    proxies = TRUSTED_PROXY_IPS if trusted_proxies is None else trusted_proxies
    direct_ip = request.client.host if request.client else None

    if proxies and direct_ip and direct_ip in proxies:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
            if _is_valid_ip(client_ip):
                return client_ip
            logger.warning(f"Invalid IP in X-Forwarded-For header: {client_ip}")

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            ip = real_ip.strip()
            if _is_valid_ip(ip):
                return ip
            logger.warning(f"Invalid IP in X-Real-IP header: {real_ip}")

    return direct_ip or "unknown"


def extract_bearer_token(request: Request) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith(BEARER_PREFIX):
        token = auth_header[len(BEARER_PREFIX) :].strip()
        return token or None
    return None
