"""
WebSocket consumer for map view sync sessions.

Key behavior:
- URL: /ws/sync/
- A connection joins a session as `source` (drives the view) or `follower`
  (mirrors it). The first client message must be a `join`.
- Each connection is an explicit state machine: unbound -> bound(role) -> disconnected.
- All frames triggered by other connections arrive through this connection's
  channel (see realtime.delivery), which keeps them in publish order.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional

from channels.generic.websocket import AsyncWebsocketConsumer
from django.apps import apps
from pydantic import ValidationError

from ws_server.applib.types import ConnectionState, RejectReason, Role

from .arbiter import RoleArbiter
from .broadcaster import StateBroadcaster
from .delivery import ChannelLayerOutbox
from .presence import PresenceNotifier
from .registry import SessionRegistry
from .serializers import ErrorEvent, JoinRejectedEvent, JoinRequest, ViewUpdate

logger = logging.getLogger(__name__)

_REJECT_MESSAGES = {
    RejectReason.ROLE_TAKEN: "{role} role already taken in this session.",
    RejectReason.ROLE_LOCKED: "This connection is already bound to another role; reconnect to switch roles.",
    RejectReason.INVALID_SESSION_ID: "Invalid session id.",
}


class SyncConsumer(AsyncWebsocketConsumer):
    """
    One instance per WebSocket connection.

    The session registry is injected through ``as_asgi(registry=...)``; when it is
    not, the process-wide registry owned by the realtime app is used.
    """

    # Sent when a newer connection presenting our participant token took the role.
    CLOSE_CODE_SUPERSEDED = 4409

    def __init__(self, *args: Any, registry: Optional[SessionRegistry] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.registry = registry
        self.connection_id: str = uuid.uuid4().hex  # server-assigned per-connection id
        self.state = ConnectionState.UNBOUND
        self.session_id: Optional[str] = None
        self.role: Optional[Role] = None
        self.arbiter: Optional[RoleArbiter] = None
        self.broadcaster: Optional[StateBroadcaster] = None

    async def connect(self) -> None:
        if self.registry is None:
            self.registry = apps.get_app_config("realtime").registry
        outbox = ChannelLayerOutbox(self.channel_layer)
        self.broadcaster = StateBroadcaster(self.registry, outbox)
        self.arbiter = RoleArbiter(self.registry, PresenceNotifier(outbox), self.broadcaster)

        await self.accept()
        await self.send_json({"type": "connected", "connection_id": self.connection_id})

    async def disconnect(self, close_code: int) -> None:
        if self.state is ConnectionState.BOUND and self.arbiter is not None:
            await self.arbiter.release(self.connection_id, disconnected=True)
        self.state = ConnectionState.DISCONNECTED
        logger.info("Connection %s closed (code=%s)", self.connection_id, close_code)

    async def receive(self, text_data: Optional[str] = None, bytes_data: Optional[bytes] = None) -> None:
        if not text_data or self.state is ConnectionState.DISCONNECTED:
            return

        try:
            msg = json.loads(text_data)
        except json.JSONDecodeError:
            await self.send_json(ErrorEvent(error="invalid_json").model_dump(exclude_none=True))
            return
        if not isinstance(msg, dict):
            await self.send_json(ErrorEvent(error="invalid_message").model_dump(exclude_none=True))
            return

        msg_type = msg.get("type")
        if msg_type == "join":
            await self._handle_join(msg)
        elif msg_type == "view_update":
            await self._handle_view_update(msg)
        elif msg_type == "resync_request":
            await self._handle_resync()
        else:
            await self.send_json(
                ErrorEvent(error="unknown_type", message=f"Unknown message type: {msg_type}").model_dump(exclude_none=True)
            )

    async def _handle_join(self, msg: Dict[str, Any]) -> None:
        try:
            request = JoinRequest.model_validate(msg)
        except ValidationError as e:
            if any(err["loc"][:1] == ("session_id",) for err in e.errors()):
                await self._reject(RejectReason.INVALID_SESSION_ID, None)
            else:
                await self.send_json(
                    ErrorEvent(error="invalid_message", message=_first_error(e)).model_dump(exclude_none=True)
                )
            return

        result = await self.arbiter.try_bind(
            request.session_id,
            request.role,
            self.connection_id,
            self.channel_name,
            participant_token=request.participant_token,
        )
        if not result.ok:
            await self._reject(result.rejection, request.role)
            return

        self.state = ConnectionState.BOUND
        self.session_id = result.session_id
        self.role = result.role

    async def _handle_view_update(self, msg: Dict[str, Any]) -> None:
        if self.state is not ConnectionState.BOUND or self.role is not Role.SOURCE:
            # Not an error for the sender: stale updates are expected around role handoff.
            logger.debug("view_update from non-source connection %s dropped", self.connection_id)
            return
        try:
            camera = ViewUpdate.model_validate(msg)
        except ValidationError as e:
            await self.send_json(ErrorEvent(error="invalid_message", message=_first_error(e)).model_dump(exclude_none=True))
            return
        await self.broadcaster.publish(self.session_id, self.connection_id, camera)

    async def _handle_resync(self) -> None:
        if self.state is not ConnectionState.BOUND:
            return
        await self.broadcaster.resync(self.session_id, self.connection_id, self.channel_name)

    async def _reject(self, reason: RejectReason, role: Optional[Role]) -> None:
        text = _REJECT_MESSAGES[reason].format(role=role.value.capitalize() if role else "")
        await self.send_json(JoinRejectedEvent(reason=reason.value, message=text).model_dump())

    async def sync_deliver(self, event: Dict[str, Any]) -> None:
        """
        Handler for frames queued by the arbiter, broadcaster and presence notifier.
        """
        if self.state is ConnectionState.DISCONNECTED:
            return
        await self.send_json(event["payload"])

    async def sync_revoke(self, event: Dict[str, Any]) -> None:
        """
        Handler for role takeover: tell the client, then close the socket.
        """
        if self.state is ConnectionState.DISCONNECTED:
            return
        logger.info("Connection %s superseded in session %s", self.connection_id, self.session_id)
        self.state = ConnectionState.DISCONNECTED
        await self.send_json(event["payload"])
        await self.close(code=self.CLOSE_CODE_SUPERSEDED)

    async def send_json(self, payload: Dict[str, Any]) -> None:
        await self.send(text_data=json.dumps(payload, separators=(",", ":"), ensure_ascii=False))


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {err.get('msg')}" if loc else str(err.get("msg"))
