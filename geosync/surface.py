"""
Rendering surface capability and camera value types.

The map engine itself is an external collaborator. Anything that can report
its camera, accept a camera, and notify on camera changes can be driven:

- get_camera() -> Camera
- set_camera_atomic(camera)      position and zoom in one render pass
- on_camera_changed(callback)

Surfaces without ``set_camera_atomic`` but with ``set_center``/``set_zoom`` are
still accepted, in a degraded mode that shows a two-step jump.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Camera:
    latitude: float
    longitude: float
    zoom: float

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Camera":
        return cls(
            latitude=float(payload["latitude"] if "latitude" in payload else payload["lat"]),
            longitude=float(payload["longitude"] if "longitude" in payload else payload["lng"]),
            zoom=float(payload["zoom"]),
        )

    def as_payload(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude, "zoom": self.zoom}


@dataclass(frozen=True)
class ViewState:
    """A camera as stamped by the server (``timestamp`` in wall-clock ms)."""

    camera: Camera
    timestamp: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ViewState":
        ts = payload.get("timestamp")
        return cls(camera=Camera.from_payload(payload), timestamp=int(ts) if ts is not None else None)


@runtime_checkable
class RenderingSurface(Protocol):
    def get_camera(self) -> Camera: ...

    def set_camera_atomic(self, camera: Camera) -> None: ...

    def on_camera_changed(self, callback: Callable[[Camera], None]) -> None: ...


def apply_camera(surface: Any, camera: Camera) -> bool:
    """Move ``surface`` to ``camera``. Returns False when nothing could be applied."""
    if surface is None:
        return False
    atomic = getattr(surface, "set_camera_atomic", None)
    if atomic is not None:
        atomic(camera)
        return True
    set_center = getattr(surface, "set_center", None)
    set_zoom = getattr(surface, "set_zoom", None)
    if set_center is None or set_zoom is None:
        logger.debug("Surface %r cannot move its camera; apply dropped", surface)
        return False
    logger.warning("Surface has no atomic camera call; applying position then zoom (visible jump)")
    set_center(camera.latitude, camera.longitude)
    set_zoom(camera.zoom)
    return True


class HeadlessSurface:
    """
    In-memory surface used by the CLI client and tests.

    Like a real map, it notifies listeners after programmatic moves as well as
    user moves; the apply guard is what keeps the former from being re-emitted.
    """

    def __init__(self, camera: Optional[Camera] = None):
        self._camera = camera or Camera(latitude=40.7128, longitude=-74.006, zoom=13.0)
        self._listeners: List[Callable[[Camera], None]] = []
        self.applied: List[Camera] = []

    def get_camera(self) -> Camera:
        return self._camera

    def set_camera_atomic(self, camera: Camera) -> None:
        self._camera = camera
        self.applied.append(camera)
        self._notify()

    def move(self, camera: Camera) -> None:
        """Simulate the user panning or zooming."""
        self._camera = camera
        self._notify()

    def on_camera_changed(self, callback: Callable[[Camera], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback(self._camera)
