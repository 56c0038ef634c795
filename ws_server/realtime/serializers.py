"""
Pydantic models for WebSocket message validation and frame serialization.
"""

from ws_server.applib.models.api import (
    Camera,
    ErrorEvent,
    JoinOkEvent,
    JoinRejectedEvent,
    JoinRequest,
    Presence,
    PresenceEvent,
    RoleRevokedEvent,
    SourceLostEvent,
    ViewState,
    ViewSyncEvent,
    ViewUpdate,
)

# Re-export all models for convenience
__all__ = [
    "Camera",
    "ErrorEvent",
    "JoinOkEvent",
    "JoinRejectedEvent",
    "JoinRequest",
    "Presence",
    "PresenceEvent",
    "RoleRevokedEvent",
    "SourceLostEvent",
    "ViewState",
    "ViewSyncEvent",
    "ViewUpdate",
]
