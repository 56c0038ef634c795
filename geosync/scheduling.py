"""
Frame scheduling: run a callback at the next display-refresh opportunity.

Callers get back a handle with ``cancel()``; a cancelled callback never runs.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Protocol


class FrameHandle(Protocol):
    def cancel(self) -> None: ...


class FrameScheduler(Protocol):
    def request_frame(self, callback: Callable[[], None]) -> FrameHandle: ...


class AsyncioFrameScheduler:
    """Schedules callbacks on the event loop, aligned to a fixed refresh rate."""

    def __init__(self, refresh_hz: float = 60.0, loop: Optional[asyncio.AbstractEventLoop] = None):
        if refresh_hz <= 0:
            raise ValueError("refresh_hz must be positive")
        self.interval = 1.0 / refresh_hz
        self._loop = loop

    def request_frame(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        delay = self.interval - (loop.time() % self.interval)
        return loop.call_later(delay, callback)
