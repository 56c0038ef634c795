"""
Middleware for ws_server.

- HealthCheckAllowHttpMiddleware: ALB health checks arrive over plain HTTP with
  the task's private IP as Host. For /health/ only, mark the request as already
  secure (no SECURE_SSL_REDIRECT 301), rewrite a private-IP Host to localhost so
  ALLOWED_HOSTS accepts it, and allow any origin on the response.
"""

from __future__ import annotations

import ipaddress


def _is_health_path(request) -> bool:
    path = (request.path or "").rstrip("/") or "/"
    return path == "/health"


def _is_private_host(host: str) -> bool:
    try:
        return ipaddress.ip_address(host.split(":")[0]).is_private
    except ValueError:
        return False


class HealthCheckAllowHttpMiddleware:
    """Must run before SecurityMiddleware and CommonMiddleware."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        health = _is_health_path(request)
        if health:
            request.META["HTTP_X_FORWARDED_PROTO"] = "https"
            if _is_private_host(request.META.get("HTTP_HOST", "")):
                request.META["HTTP_HOST"] = "localhost"
        response = self.get_response(request)
        if health:
            response["Access-Control-Allow-Origin"] = "*"
        return response
