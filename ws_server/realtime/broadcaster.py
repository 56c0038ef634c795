"""
View-state fan-out from the source to the follower of a session.

The broadcaster is the single writer of ``SessionRecord.last_view``. Only the
newest view is kept; ordering relies on per-channel FIFO delivery, never on the
timestamp, which exists only so followers can show latency.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ws_server.applib.models.api import Camera, ViewState, ViewSyncEvent
from ws_server.applib.types import PublishRejection, Role

from .registry import Binding, SessionRecord, SessionRegistry

logger = logging.getLogger(__name__)


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PublishResult:
    view: Optional[ViewState] = None
    rejection: Optional[PublishRejection] = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None


class StateBroadcaster:
    def __init__(self, registry: SessionRegistry, outbox, clock: Callable[[], int] = wall_clock_ms):
        self.registry = registry
        self.outbox = outbox
        self.clock = clock

    async def publish(self, session_id: str, connection_id: str, camera: Camera) -> PublishResult:
        """Stamp, store and relay a view coming from ``connection_id``.

        Rejected (and only logged) unless the connection holds the source role.
        """
        record = self.registry.get(session_id)
        if record is None:
            logger.debug("Publish to unknown session %s ignored", session_id)
            return PublishResult(rejection=PublishRejection.SESSION_GONE)

        async with record.lock:
            source = record.holder(Role.SOURCE)
            if source is None or source.connection_id != connection_id:
                logger.debug("Publish from non-source %s in session %s dropped", connection_id, session_id)
                return PublishResult(rejection=PublishRejection.NOT_SOURCE)

            view = ViewState(
                latitude=camera.latitude,
                longitude=camera.longitude,
                zoom=camera.zoom,
                timestamp=self.clock(),
            )
            record.last_view = view
            follower = record.holder(Role.FOLLOWER)
            if follower is not None:
                await self._deliver(follower, view)
        return PublishResult(view=view)

    async def resync(self, session_id: str, connection_id: str, channel_name: str) -> Optional[ViewState]:
        """Send the stored view to the requesting connection only, whatever its role."""
        record = self.registry.get(session_id)
        if record is None:
            return None
        async with record.lock:
            view = record.last_view
            if view is not None:
                await self.outbox.send(channel_name, _view_sync_payload(view))
        logger.debug("Resync for %s in session %s (has_view=%s)", connection_id, session_id, view is not None)
        return view

    async def deliver_initial(self, record: SessionRecord, follower: Binding) -> bool:
        """Bring a newly bound follower up to date. Caller holds ``record.lock``."""
        if record.last_view is None:
            return False
        await self._deliver(follower, record.last_view)
        return True

    async def _deliver(self, follower: Binding, view: ViewState) -> None:
        await self.outbox.send(follower.channel_name, _view_sync_payload(view))


def _view_sync_payload(view: ViewState) -> dict:
    return ViewSyncEvent(**view.model_dump()).model_dump(mode="json")
