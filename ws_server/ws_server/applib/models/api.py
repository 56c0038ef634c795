"""
Wire models for the /ws/sync/ protocol.

Client -> server frames are validated with these models; server -> client
frames are built from them with ``model_dump()`` so field names stay in one place.
"""

from __future__ import annotations

import math
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ws_server.applib.config import config
from ws_server.applib.types import Role


def normalize_session_id(raw: str) -> str:
    """Upper-case and strip a session id, enforcing the configured length bounds."""
    session_id = raw.strip().upper()
    if len(session_id) < config.SESSION_ID_MIN_LENGTH:
        raise ValueError(f"session_id must be at least {config.SESSION_ID_MIN_LENGTH} characters")
    if len(session_id) > config.SESSION_ID_MAX_LENGTH:
        raise ValueError(f"session_id must be at most {config.SESSION_ID_MAX_LENGTH} characters")
    return session_id


class Camera(BaseModel):
    """A map camera position without the server stamp."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    latitude: float = Field(ge=-90.0, le=90.0, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(ge=-180.0, le=180.0, validation_alias=AliasChoices("longitude", "lng"))
    zoom: float = Field(ge=0.0)

    @field_validator("latitude", "longitude", "zoom")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("must be a finite number")
        return value


class ViewState(Camera):
    """Camera position accepted from the source, stamped with server wall-clock ms."""

    timestamp: int


class JoinRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["join"] = "join"
    session_id: str
    role: Role
    participant_token: Optional[str] = None

    @field_validator("session_id")
    @classmethod
    def _normalize_session_id(cls, value: str) -> str:
        return normalize_session_id(value)

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, value):
        if isinstance(value, str):
            return Role.parse(value)
        return value


class ViewUpdate(Camera):
    type: Literal["view_update"] = "view_update"


class Presence(BaseModel):
    source_connected: bool
    follower_connected: bool


class PresenceEvent(Presence):
    type: Literal["presence"] = "presence"


class JoinOkEvent(BaseModel):
    type: Literal["join_ok"] = "join_ok"
    role: Role
    session_id: str
    presence: Presence
    participant_token: str
    last_view: Optional[ViewState] = None


class JoinRejectedEvent(BaseModel):
    type: Literal["join_rejected"] = "join_rejected"
    reason: str
    message: str


class ViewSyncEvent(ViewState):
    type: Literal["view_sync"] = "view_sync"


class SourceLostEvent(BaseModel):
    type: Literal["source_lost"] = "source_lost"


class RoleRevokedEvent(BaseModel):
    type: Literal["role_revoked"] = "role_revoked"
    reason: str = "superseded"


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str
    message: Optional[str] = None
