"""
Client context resolution for FastAPI requests.

IP and User-Agent are recorded on issued credentials for diagnostics and
per-IP rate limiting. Functions take an explicit ``Request`` so they are
testable without a running app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

MAX_USER_AGENT_LENGTH = 256

_PROXY_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "True-Client-IP",
    "X-Forwarded-For",
    "X-Real-IP",
    "X-Client-IP",
)


def get_client_ip(request: Request) -> Optional[str]:
    """Extract the real client IP from a FastAPI ``Request``.

    Checks proxy headers in priority order before falling back to the
    direct connection address:

    1. ``CF-Connecting-IP`` — Cloudflare
    2. ``True-Client-IP`` — Akamai and others
    3. ``X-Forwarded-For`` — standard proxy header (first IP in list)
    4. ``X-Real-IP`` — nginx / other reverse proxies
    5. ``X-Client-IP`` — less common

    Returns:
        The resolved client IP, or ``None`` if none can be found.
    """
    for header in _PROXY_HEADERS:
        ip_value: str | None = request.headers.get(header)
        if ip_value:
            client_ip: str = ip_value.split(",")[0].strip()
            if client_ip:
                return client_ip

    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    """Return the request's User-Agent truncated to 256 characters, or ``None``."""
    user_agent = request.headers.get("User-Agent")
    if not user_agent:
        return None
    return user_agent[:MAX_USER_AGENT_LENGTH]
