"""
ASGI config for the GeoSync ws_server project.

It exposes the ASGI callable as a module-level variable named ``application``.
Run with an ASGI server, e.g. ``daphne ws_server.asgi:application`` from the
``ws_server/`` directory.
"""
# Load secrets (if configured) before Django settings are evaluated
import ws_server.env_bootstrap  # noqa: F401

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "ws_server.settings")

from channels.routing import ProtocolTypeRouter, URLRouter
from django.conf import settings
from django.core.asgi import get_asgi_application

# Standard Django ASGI application for HTTP. Must be created before importing
# consumers so the app registry (and the session registry) is ready.
django_asgi_app = get_asgi_application()

from ws_server.routing import websocket_urlpatterns  # noqa: E402
from ws_server.ws_origin import AllowedHostsOrForwardedHostOriginValidator  # noqa: E402

# Outside DEBUG, WebSocket handshakes must come from an allowed host (see ws_origin).
websocket_app = URLRouter(websocket_urlpatterns)
if not settings.DEBUG:
    websocket_app = AllowedHostsOrForwardedHostOriginValidator(websocket_app)

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        "websocket": websocket_app,
    }
)
