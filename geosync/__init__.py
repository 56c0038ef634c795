"""
Client side of the GeoSync view sync protocol.

- FrameCoalescer: follower side; at most one atomic camera apply per refresh tick
- EmitThrottle: source side; leading-edge rate limit with feedback suppression
- Participant: per-connection client state machine tying both to a transport
"""

from .coalescer import FrameCoalescer
from .participant import ConnectionStatus, Participant, new_session_id
from .scheduling import AsyncioFrameScheduler
from .surface import Camera, HeadlessSurface, ViewState, apply_camera
from .throttle import ApplyGuard, EmitThrottle

__all__ = [
    "ApplyGuard",
    "AsyncioFrameScheduler",
    "Camera",
    "ConnectionStatus",
    "EmitThrottle",
    "FrameCoalescer",
    "HeadlessSurface",
    "Participant",
    "ViewState",
    "apply_camera",
    "new_session_id",
]
