"""
WebSocket origin validator for deployments behind a proxy (ALB, nginx).

Channels' AllowedHostsOriginValidator rejects handshakes without an Origin
header, which proxies sometimes drop. This validator allows a handshake when:
- the Origin host is in ALLOWED_HOSTS, or
- Host or X-Forwarded-Host is in ALLOWED_HOSTS (the proxy routed it to us).
Denials are logged with origin/host values only.
"""
from __future__ import annotations

import logging
from urllib.parse import urlparse

from channels.security.websocket import WebsocketDenier
from django.conf import settings
from django.http.request import is_same_domain

logger = logging.getLogger(__name__)

_denier_app = WebsocketDenier.as_asgi()


def _get_header(scope: dict, name: str) -> str | None:
    want = name.lower().encode("ascii")
    for key, value in scope.get("headers") or []:
        if key == want:
            return value.decode("utf-8", errors="replace").strip()
    return None


def _pattern_host(pattern: str) -> str:
    if pattern.startswith("."):
        return pattern.lower()
    parsed = urlparse(pattern if "://" in pattern else "//" + pattern)
    return (parsed.hostname or pattern).lower()


def hostname_allowed(hostname: str | None, allowed_hosts: list[str]) -> bool:
    if not hostname:
        return False
    hostname = hostname.lower()
    for pattern in allowed_hosts:
        if pattern == "*" or is_same_domain(hostname, _pattern_host(pattern)):
            return True
    return False


def handshake_allowed(scope: dict, allowed_hosts: list[str]) -> bool:
    origin = _get_header(scope, "origin")
    if origin and hostname_allowed(urlparse(origin).hostname, allowed_hosts):
        return True
    for header in ("host", "x-forwarded-host"):
        value = _get_header(scope, header)
        if value and hostname_allowed(value.split(",")[0].split(":")[0].strip(), allowed_hosts):
            return True
    return False


class AllowedHostsOrForwardedHostOriginValidator:
    """ASGI middleware wrapping the websocket router."""

    def __init__(self, application):
        self.application = application

    async def __call__(self, scope, receive, send):
        if scope.get("type") != "websocket":
            raise ValueError("AllowedHostsOrForwardedHostOriginValidator only supports WebSocket")

        allowed_hosts = list(getattr(settings, "ALLOWED_HOSTS", None) or [])
        if handshake_allowed(scope, allowed_hosts):
            return await self.application(scope, receive, send)

        logger.warning(
            "WebSocket origin denied: origin=%s host=%s x_forwarded_host=%s path=%s",
            _get_header(scope, "origin") or "(none)",
            _get_header(scope, "host") or "(none)",
            _get_header(scope, "x-forwarded-host") or "(none)",
            scope.get("path", ""),
        )
        return await _denier_app(scope, receive, send)
