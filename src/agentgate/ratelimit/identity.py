"""Client identity extraction for rate limiting."""

import ipaddress

from fastapi import Request

UNKNOWN_IDENTITY = "unknown"


def _valid_ip(value: str | None) -> str | None:
    """Return the trimmed value if it parses as an IPv4/IPv6 address."""
    if not value:
        return None
    candidate = value.strip()
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return None
    return candidate


def get_client_identity(request: Request) -> str:
    """
    Get the client IP to rate limit on.

    Takes the leftmost valid address from X-Forwarded-For (the
    original client), then X-Real-IP, then the socket peer. Invalid
    values are skipped; if nothing is usable the shared "unknown"
    identity is returned.
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        for part in forwarded_for.split(","):
            ip = _valid_ip(part)
            if ip:
                return ip

    real_ip = _valid_ip(request.headers.get("x-real-ip"))
    if real_ip:
        return real_ip

    if request.client is not None:
        peer_ip = _valid_ip(request.client.host)
        if peer_ip:
            return peer_ip

    return UNKNOWN_IDENTITY
