"""
Follower-side update coalescing.

Views can arrive faster than the display refreshes. Only the newest unapplied
view is kept; at most one frame callback is outstanding; the frame applies
position and zoom in one surface call. Intermediate views are dropped on
purpose, and since the transport delivers in order, overwriting ``pending``
with each arrival means an older view is never applied after a newer one.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .scheduling import FrameHandle, FrameScheduler
from .surface import ViewState, apply_camera
from .throttle import ApplyGuard

logger = logging.getLogger(__name__)


class FrameCoalescer:
    def __init__(
        self,
        scheduler: FrameScheduler,
        surface: Any = None,
        guard: Optional[ApplyGuard] = None,
        on_applied: Optional[Callable[[ViewState], None]] = None,
    ):
        self._scheduler = scheduler
        self._surface = surface
        self._guard = guard
        self._on_applied = on_applied
        self._pending: Optional[ViewState] = None
        self._frame: Optional[FrameHandle] = None
        self._closed = False
        self.applied_count = 0
        self.dropped_count = 0

    @property
    def pending(self) -> Optional[ViewState]:
        return self._pending

    @property
    def frame_scheduled(self) -> bool:
        return self._frame is not None

    def attach(self, surface: Any) -> None:
        self._surface = surface

    def detach(self) -> None:
        self._surface = None

    def push(self, view: ViewState) -> None:
        """Record ``view`` as the newest arrival and make sure a frame will apply it."""
        if self._closed:
            return
        if self._pending is not None:
            self.dropped_count += 1
        self._pending = view
        if self._frame is None:
            self._frame = self._scheduler.request_frame(self._run_frame)

    def _run_frame(self) -> None:
        self._frame = None
        view, self._pending = self._pending, None
        if view is None or self._closed:
            return
        if self._guard is not None:
            # Opened before the call: surfaces notify listeners synchronously.
            self._guard.hold()
        try:
            applied = apply_camera(self._surface, view.camera)
        except Exception:
            logger.debug("Surface failed to apply view; dropped", exc_info=True)
            applied = False
        if not applied:
            if self._guard is not None:
                self._guard.release()
            logger.debug("View not applied; dropped")
            return
        self.applied_count += 1
        if self._on_applied is not None:
            self._on_applied(view)

    def teardown(self) -> None:
        """Cancel any scheduled frame; later arrivals are ignored."""
        self._closed = True
        if self._frame is not None:
            self._frame.cancel()
            self._frame = None
        self._pending = None
        self._surface = None
