"""
Django app configuration for the realtime app.
Creates the process-wide session registry on startup.
"""

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class RealtimeConfig(AppConfig):
    """Owns the SessionRegistry shared by every SyncConsumer in this process."""

    name = "realtime"

    def ready(self):
        from ws_server.applib.config import config

        from .registry import SessionRegistry

        self.registry = SessionRegistry(grace_seconds=config.SESSION_GRACE_SECONDS)
        logger.info("Session registry ready (grace=%.1fs)", config.SESSION_GRACE_SECONDS)
