"""
Presence notifications (who is connected) per session.

Presence is never stored: it is recomputed from the session's role slots on
every bind, unbind or disconnect and sent to every member still bound.
"""

from __future__ import annotations

import logging

from ws_server.applib.models.api import Presence, PresenceEvent, SourceLostEvent
from ws_server.applib.types import Role

from .registry import SessionRecord

logger = logging.getLogger(__name__)


class PresenceNotifier:
    def __init__(self, outbox):
        self.outbox = outbox

    async def broadcast(self, record: SessionRecord) -> Presence:
        """Send the current presence to every member of ``record``. Caller holds the lock."""
        presence = record.presence()
        payload = PresenceEvent(**presence.model_dump()).model_dump(mode="json")
        for binding in record.members():
            await self.outbox.send(binding.channel_name, payload)
        logger.debug(
            "Presence %s: source=%s follower=%s",
            record.session_id,
            presence.source_connected,
            presence.follower_connected,
        )
        return presence

    async def source_lost(self, record: SessionRecord) -> None:
        """Tell the follower its source went away so it can freeze and flag staleness."""
        follower = record.holder(Role.FOLLOWER)
        if follower is None:
            return
        await self.outbox.send(follower.channel_name, SourceLostEvent().model_dump(mode="json"))
        logger.info("Source lost in session %s; follower %s notified", record.session_id, follower.connection_id)
