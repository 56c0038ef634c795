from django.urls import re_path

from .consumers import SyncConsumer


def build_websocket_urlpatterns(registry=None):
    """URL patterns for the sync endpoint; tests pass their own registry."""
    return [
        re_path(r"^ws/sync/$", SyncConsumer.as_asgi(registry=registry)),
    ]


websocket_urlpatterns = build_websocket_urlpatterns()
