"""Per-frame scheduling for live visualization.

A ``FrameScheduler`` plays the role of a display's animation-frame
callback: ``request_frame`` schedules one callback and returns a handle,
``cancel_frame`` cancels it synchronously. Loops re-request a frame at
the end of each tick, so cancelling the pending handle ends the loop.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from voiseform.constants import DEFAULT_FRAME_RATE
from voiseform.utils.time import get_monotonic_ms

FrameCallback = Callable[[float], None]


class FrameScheduler(ABC):
    """Source of cancellable one-shot frame callbacks."""

    @abstractmethod
    def request_frame(self, callback: FrameCallback) -> Any:
        """
        Schedule ``callback(now_ms)`` for the next frame.

        Args:
            callback: Function receiving a monotonic timestamp in ms

        Returns:
            Handle accepted by cancel_frame()
        """
        pass

    @abstractmethod
    def cancel_frame(self, handle: Any) -> None:
        """Cancel a pending frame. Must take effect before returning."""
        pass

    def now_ms(self) -> float:
        """Current time on the clock passed to frame callbacks."""
        return get_monotonic_ms()


class AsyncioFrameScheduler(FrameScheduler):
    """Frame scheduler driven by the running asyncio loop."""

    def __init__(self, fps: float = DEFAULT_FRAME_RATE, loop: asyncio.AbstractEventLoop | None = None):
        """
        Initialize scheduler.

        Args:
            fps: Target frames per second
            loop: Event loop (defaults to the running loop at request time)
        """
        if fps <= 0:
            raise ValueError("fps must be positive")
        self.fps = fps
        self._loop = loop

    @property
    def frame_interval(self) -> float:
        """Seconds between frames."""
        return 1.0 / self.fps

    def request_frame(self, callback: FrameCallback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(self.frame_interval, lambda: callback(get_monotonic_ms()))

    def cancel_frame(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()
