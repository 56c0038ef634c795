"""
URL configuration for the ws_server project.

HTTP is only used for the ALB health check; the sync protocol runs over
WebSocket (see realtime.routing).
"""
from django.urls import path

from .health import health

urlpatterns = [
    # REQUIRED: health check endpoint for ALB target group
    path("health/", health),
]
