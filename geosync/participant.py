"""
Client end of one sync connection.

The participant is transport-agnostic: it is handed a ``send`` callable for
outgoing frames and is fed incoming frames through ``handle()``. The transport
calls ``on_open()`` on every (re)connect and ``on_close()`` on every loss; a
reconnect re-joins with the participant token from the last ``join_ok`` so the
server can hand the role back to us.
"""

from __future__ import annotations

import logging
import time
import uuid
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .coalescer import FrameCoalescer
from .scheduling import FrameScheduler
from .surface import Camera, ViewState
from .throttle import DEFAULT_GUARD_SECONDS, DEFAULT_MIN_INTERVAL, ApplyGuard, EmitThrottle

logger = logging.getLogger(__name__)

SESSION_ID_MIN_LENGTH = 4

_ROLE_ALIASES = {"tracker": "source", "tracked": "follower"}


class ConnectionStatus(Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    SOURCE_OFFLINE = "source_offline"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"


def new_session_id() -> str:
    return uuid.uuid4().hex[:8].upper()


def normalize_session_id(raw: str) -> str:
    session_id = raw.strip().upper()
    if len(session_id) < SESSION_ID_MIN_LENGTH:
        raise ValueError(f"Session id must be at least {SESSION_ID_MIN_LENGTH} characters")
    return session_id


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


_LIVE_STATUSES = (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED, ConnectionStatus.SOURCE_OFFLINE)


class Participant:
    def __init__(
        self,
        session_id: str,
        role: str,
        send: Callable[[Dict[str, Any]], None],
        *,
        scheduler: FrameScheduler,
        surface: Any = None,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        guard_seconds: float = DEFAULT_GUARD_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        now_ms: Callable[[], int] = wall_clock_ms,
        listener: Optional[Callable[[str, Dict[str, Any]], None]] = None,
        on_applied: Optional[Callable[[ViewState], None]] = None,
    ):
        role = _ROLE_ALIASES.get(role, role)
        if role not in ("source", "follower"):
            raise ValueError(f"Unknown role: {role!r}")
        self.session_id = normalize_session_id(session_id)
        self.role = role
        self._send = send
        self._now_ms = now_ms
        self._listener = listener
        self._applied_hook = on_applied

        self.status = ConnectionStatus.CONNECTING
        self.joined = False
        self.join_error: Optional[str] = None
        self.participant_token: Optional[str] = None
        self.presence: Dict[str, bool] = {"source_connected": False, "follower_connected": False}
        self.source_lost = False
        self.last_view: Optional[ViewState] = None
        self.latency_ms: Optional[int] = None
        # newest local move made before join_ok; sent once the role is bound
        self._unsent_camera: Optional[Camera] = None

        self.guard = ApplyGuard(hold_seconds=guard_seconds, clock=clock)
        self.throttle = EmitThrottle(self._emit_camera, guard=self.guard, min_interval=min_interval, clock=clock)
        self.coalescer = FrameCoalescer(scheduler, surface, guard=self.guard, on_applied=self._on_applied)
        if surface is not None and self.role == "source":
            surface.on_camera_changed(self.on_local_camera)

    # transport lifecycle

    def join_message(self) -> Dict[str, Any]:
        msg: Dict[str, Any] = {"type": "join", "session_id": self.session_id, "role": self.role}
        if self.participant_token:
            msg["participant_token"] = self.participant_token
        return msg

    def on_open(self) -> None:
        if self.status in (ConnectionStatus.REJECTED, ConnectionStatus.SUPERSEDED):
            return
        self.status = ConnectionStatus.CONNECTING
        self._send(self.join_message())

    def on_close(self) -> None:
        self.joined = False
        self.throttle.reset()
        if self.status not in (ConnectionStatus.REJECTED, ConnectionStatus.SUPERSEDED):
            self.status = ConnectionStatus.DISCONNECTED

    def close(self) -> None:
        self.coalescer.teardown()

    @property
    def should_reconnect(self) -> bool:
        return self.status not in (ConnectionStatus.REJECTED, ConnectionStatus.SUPERSEDED)

    # incoming frames

    def handle(self, msg: Dict[str, Any]) -> None:
        msg_type = msg.get("type")
        handler = getattr(self, f"_on_{msg_type}", None) if isinstance(msg_type, str) else None
        if handler is None:
            logger.debug("Ignoring frame of type %r", msg_type)
            return
        handler(msg)
        if self._listener is not None:
            self._listener(msg_type, msg)

    def _on_connected(self, msg: Dict[str, Any]) -> None:
        logger.debug("Transport connected as %s", msg.get("connection_id"))

    def _on_join_ok(self, msg: Dict[str, Any]) -> None:
        self.joined = True
        self.join_error = None
        self.participant_token = msg.get("participant_token") or self.participant_token
        self._set_presence(msg.get("presence") or {})
        last_view = msg.get("last_view")
        if last_view and self.role == "follower":
            self.last_view = ViewState.from_payload(last_view)
        if self.role == "source" and self._unsent_camera is not None:
            camera, self._unsent_camera = self._unsent_camera, None
            self.throttle.offer(camera)
        logger.info("Joined session %s as %s", self.session_id, self.role)

    def _on_join_rejected(self, msg: Dict[str, Any]) -> None:
        self.joined = False
        self.join_error = msg.get("message") or msg.get("reason")
        self.status = ConnectionStatus.REJECTED
        logger.warning("Join rejected (%s): %s", msg.get("reason"), self.join_error)

    def _on_view_sync(self, msg: Dict[str, Any]) -> None:
        if self.role != "follower":
            return
        self.coalescer.push(ViewState.from_payload(msg))

    def _on_presence(self, msg: Dict[str, Any]) -> None:
        self._set_presence(msg)

    def _on_source_lost(self, msg: Dict[str, Any]) -> None:
        self.source_lost = True
        if self.role == "follower":
            self.status = ConnectionStatus.SOURCE_OFFLINE
        logger.warning("Source disconnected; view frozen at last position")

    def _on_role_revoked(self, msg: Dict[str, Any]) -> None:
        self.joined = False
        self.status = ConnectionStatus.SUPERSEDED
        logger.warning("Role taken over by a newer connection (%s)", msg.get("reason"))

    def _on_error(self, msg: Dict[str, Any]) -> None:
        logger.warning("Server error %s: %s", msg.get("error"), msg.get("message"))

    def _set_presence(self, presence: Dict[str, Any]) -> None:
        self.presence = {
            "source_connected": bool(presence.get("source_connected")),
            "follower_connected": bool(presence.get("follower_connected")),
        }
        if self.presence["source_connected"]:
            self.source_lost = False
        if not self.joined or self.status not in _LIVE_STATUSES:
            return
        if self.source_lost and self.role == "follower":
            self.status = ConnectionStatus.SOURCE_OFFLINE
        else:
            self.status = ConnectionStatus.CONNECTED

    # outgoing frames

    def on_local_camera(self, camera: Camera) -> bool:
        """Camera-change callback for the local surface (source role)."""
        if self.role != "source":
            return False
        if not self.joined:
            self._unsent_camera = camera
            return False
        return self.throttle.offer(camera)

    def request_resync(self) -> None:
        if self.joined:
            self._send({"type": "resync_request"})

    def _emit_camera(self, camera: Camera) -> None:
        self._send({"type": "view_update", **camera.as_payload()})

    def _on_applied(self, view: ViewState) -> None:
        self.last_view = view
        if view.timestamp is not None:
            self.latency_ms = max(0, self._now_ms() - view.timestamp)
        if self._applied_hook is not None:
            self._applied_hook(view)
