"""
Source-side emission control.

EmitThrottle is a leading-edge throttle: the first change after a quiet period
is sent at once and anything inside the following interval is dropped, with no
trailing flush. Continuous panning produces a steady stream of events, so the
next event carries the latest camera.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .surface import Camera

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL = 0.050
DEFAULT_GUARD_SECONDS = 0.100


class ApplyGuard:
    """Open for a short window after a remote view was applied to the local surface.

    Camera-change events seen while the guard is open come from that apply, not
    from the user, and must not be sent back out.
    """

    def __init__(self, hold_seconds: float = DEFAULT_GUARD_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.hold_seconds = hold_seconds
        self._clock = clock
        self._until: Optional[float] = None

    def hold(self) -> None:
        self._until = self._clock() + self.hold_seconds

    def release(self) -> None:
        self._until = None

    @property
    def active(self) -> bool:
        return self._until is not None and self._clock() < self._until


class EmitThrottle:
    def __init__(
        self,
        emit: Callable[[Camera], None],
        guard: Optional[ApplyGuard] = None,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._emit = emit
        self._guard = guard
        self.min_interval = min_interval
        self._clock = clock
        self._last_emit: Optional[float] = None

    def offer(self, camera: Camera) -> bool:
        """Handle one local camera change; returns True if it was emitted."""
        if self._guard is not None and self._guard.active:
            return False
        now = self._clock()
        if self._last_emit is not None and now - self._last_emit < self.min_interval:
            return False
        self._last_emit = now
        self._emit(camera)
        return True

    def reset(self) -> None:
        self._last_emit = None
