"""Rate limiting for the sync API.

Authenticated requests are limited per user (JWT subject), so one household
behind a shared NAT does not starve another. Anonymous requests fall back to
the client IP, honoring X-Forwarded-For only from trusted proxies.
"""

import ipaddress
import logging
import os

from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings

logger = logging.getLogger("snakey.rate_limit")

# Override with TRUSTED_PROXY_CIDRS env var (comma-separated CIDRs)
_DEFAULT_TRUSTED_CIDRS = [
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "127.0.0.0/8",
    "::1/128",
]

_trusted_networks: list | None = None


def _get_trusted_networks() -> list:
    global _trusted_networks
    if _trusted_networks is None:
        raw = os.environ.get("TRUSTED_PROXY_CIDRS", "")
        cidrs = [s.strip() for s in raw.split(",") if s.strip()] or _DEFAULT_TRUSTED_CIDRS
        networks = []
        for cidr in cidrs:
            try:
                networks.append(ipaddress.ip_network(cidr, strict=False))
            except ValueError:
                logger.warning(f"Ignoring invalid trusted proxy CIDR: {cidr}")
        _trusted_networks = networks
    return _trusted_networks


def get_client_ip(request) -> str:
    """Direct peer IP, or the leftmost forwarded IP when the peer is a trusted proxy."""
    direct_ip = get_remote_address(request)
    try:
        trusted = any(
            ipaddress.ip_address(direct_ip) in net for net in _get_trusted_networks()
        )
    except ValueError:
        trusted = False

    if trusted:
        forwarded_for = request.headers.get("x-forwarded-for", "")
        client_ip = forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip
    return direct_ip


def get_rate_limit_key(request) -> str:
    """user:<id> for a valid bearer token, ip:<addr> otherwise."""
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        settings = get_settings()
        try:
            payload = jwt.decode(
                header[7:].strip(),
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm],
            )
        except JWTError:
            payload = {}
        if payload.get("sub"):
            return f"user:{payload['sub']}"
    return f"ip:{get_client_ip(request)}"


limiter = Limiter(key_func=get_rate_limit_key)
