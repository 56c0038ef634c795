from __future__ import annotations

import time

from django.apps import apps
from django.http import JsonResponse

from ws_server.applib.config import config


def health(request):
    """
    ALB target group health check endpoint.

    Cheap and dependency-free: reads the in-memory session count, no Redis call.
    """

    registry = apps.get_app_config("realtime").registry
    return JsonResponse(
        {
            "status": "ok",
            "ts": int(time.time()),
            "instance_id": config.INSTANCE_ID,
            "sessions": len(registry),
        }
    )
