"""
Project-level Channels routing.

Importing the realtime patterns here (after Django setup in asgi.py) binds the
sync consumer to the session registry created by ``RealtimeConfig.ready()``.
"""

from realtime.routing import build_websocket_urlpatterns, websocket_urlpatterns

__all__ = ["build_websocket_urlpatterns", "websocket_urlpatterns"]
