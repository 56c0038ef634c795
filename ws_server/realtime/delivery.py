"""
Point-to-point delivery of protocol frames through the Channels layer.

Every frame for a connection goes through that connection's channel, so frames
queued while a session lock is held reach the socket in the order they were
queued (join_ok, presence and the initial view_sync before any later update).
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from channels.exceptions import ChannelFull

logger = logging.getLogger(__name__)

# Channels event type; dispatched to SyncConsumer.sync_deliver.
DELIVER_EVENT = "sync.deliver"
# Channels event type; dispatched to SyncConsumer.sync_revoke.
REVOKE_EVENT = "sync.revoke"


class ChannelLayerOutbox:
    """Sends ready-to-serialize payloads to a single consumer's channel."""

    def __init__(self, channel_layer):
        self.channel_layer = channel_layer

    async def send(self, channel_name: str, payload: Dict[str, Any]) -> bool:
        return await self._send(channel_name, {"type": DELIVER_EVENT, "payload": payload})

    async def revoke(self, channel_name: str, payload: Dict[str, Any]) -> bool:
        return await self._send(channel_name, {"type": REVOKE_EVENT, "payload": payload})

    async def _send(self, channel_name: str, event: Dict[str, Any]) -> bool:
        try:
            await self.channel_layer.send(channel_name, event)
        except ChannelFull:
            logger.warning(
                "Channel full, dropping %s frame for %s",
                event["payload"].get("type"),
                channel_name,
            )
            return False
        return True
