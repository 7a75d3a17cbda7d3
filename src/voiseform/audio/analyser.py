"""Live amplitude feed for waveform and level visualization.

An ``AnalyserTap`` reads samples from a capture device without touching
the recorded stream. ``AnalyserFeed`` owns one tap plus the frame loop
that samples it and hands each frame to a draw callback.

The loop body is given the recording generation explicitly; a tick that
belongs to an older generation, or that fires after the tap has been
disconnected, draws nothing and does not re-schedule itself.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any

import numpy as np

from voiseform.audio.capture import CaptureDevice
from voiseform.audio.scheduler import FrameScheduler
from voiseform.constants import DB_MAX, DB_MIN, DEFAULT_FFT_SIZE, WAVEFORM_WIDTH
from voiseform.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AnalyserFrame:
    """One visualization frame."""
    samples: np.ndarray
    generation: int
    elapsed_ms: float
    rms_db: float = DB_MIN
    peak_db: float = DB_MIN
    slot_index: int | None = None


DrawCallback = Callable[[AnalyserFrame], None]


class AnalyserTap:
    """
    Fixed-size time-domain window over the live signal.

    Attributes:
        fft_size: Number of points returned by sample()
        connected: False once disconnected; a disconnected tap ignores input
        sample_count: Number of sample() calls served
    """

    def __init__(self, fft_size: int = DEFAULT_FFT_SIZE):
        if fft_size <= 0:
            raise ValueError("fft_size must be positive")
        self.fft_size = fft_size
        self.connected = True
        self.sample_count = 0
        self._buffer = np.zeros(fft_size, dtype=np.float32)

    def feed(self, samples: np.ndarray) -> None:
        """Push newly captured samples into the window."""
        if not self.connected or samples.size == 0:
            return

        n = samples.size
        if n >= self.fft_size:
            self._buffer[:] = samples[-self.fft_size:]
        else:
            self._buffer = np.roll(self._buffer, -n)
            self._buffer[-n:] = samples

    def sample(self) -> np.ndarray:
        """Return a copy of the current window (length ``fft_size``)."""
        self.sample_count += 1
        return self._buffer.copy()

    def disconnect(self) -> None:
        """Stop accepting input. Idempotent."""
        self.connected = False


def compute_levels(samples: np.ndarray) -> tuple[float, float]:
    """
    Compute RMS and peak levels in dBFS.

    Args:
        samples: Float32 samples normalized to -1..1

    Returns:
        Tuple of (rms_db, peak_db) clamped to [DB_MIN, DB_MAX]
    """
    array = np.asarray(samples, dtype=np.float32)
    if array.size == 0:
        return DB_MIN, DB_MIN

    rms = float(np.sqrt(np.mean(np.square(array), dtype=np.float32)))
    peak = float(np.max(np.abs(array)))
    return _to_db(rms), _to_db(peak)


def _to_db(value: float) -> float:
    if value <= 0:
        return DB_MIN
    return max(DB_MIN, min(DB_MAX, 20.0 * math.log10(value)))


def render_waveform(samples: np.ndarray, width: int = WAVEFORM_WIDTH) -> str:
    """
    Render samples as a one-line text waveform.

    Each column shows the peak amplitude of its slice of the window.

    Args:
        samples: Float32 samples normalized to -1..1
        width: Number of output characters

    Returns:
        String of exactly ``width`` characters
    """
    blocks = " ▁▂▃▄▅▆▇█"
    if width <= 0:
        return ""
    if samples.size == 0:
        return blocks[0] * width

    columns = np.array_split(np.abs(samples), width)
    chars = []
    for column in columns:
        amplitude = float(column.max()) if column.size else 0.0
        index = min(len(blocks) - 1, int(round(amplitude * (len(blocks) - 1))))
        chars.append(blocks[index])
    return "".join(chars)


class AnalyserFeed:
    """
    Analyser tap plus its cancellable per-frame sampling loop.

    The pending frame handle is held on the feed; ``cancel()`` and
    ``detach()`` cancel it synchronously so no draw can happen after
    they return.
    """

    def __init__(
        self,
        scheduler: FrameScheduler,
        fft_size: int = DEFAULT_FFT_SIZE,
        slot_index: int | None = None
    ):
        """
        Initialize analyser feed.

        Args:
            scheduler: Frame scheduler driving the loop
            fft_size: Window length exposed by the tap
            slot_index: Owning slot (reported on frames)
        """
        self.scheduler = scheduler
        self.fft_size = fft_size
        self.slot_index = slot_index
        self.frames_drawn = 0

        self._tap: AnalyserTap | None = None
        self._device: CaptureDevice | None = None
        self._handle: Any | None = None
        self._generation: int | None = None
        self._on_draw: DrawCallback | None = None
        self._started_at_ms = 0.0

    @property
    def tap(self) -> AnalyserTap | None:
        """Attached tap, or None."""
        return self._tap

    @property
    def is_attached(self) -> bool:
        """Whether a tap is connected to a device."""
        return self._tap is not None

    @property
    def is_running(self) -> bool:
        """Whether a frame is pending."""
        return self._handle is not None

    def attach(self, device: CaptureDevice) -> AnalyserTap:
        """
        Connect a new tap to ``device``.

        Any previous tap is detached first.

        Args:
            device: Live capture device

        Returns:
            The new AnalyserTap
        """
        self.detach()
        tap = AnalyserTap(self.fft_size)
        device.add_sink(tap)
        self._tap = tap
        self._device = device
        return tap

    def start(self, on_draw: DrawCallback | None, generation: int) -> None:
        """
        Begin the frame loop for ``generation``.

        Args:
            on_draw: Called with each AnalyserFrame
            generation: Recording generation the loop belongs to

        Raises:
            RuntimeError: If no tap is attached
        """
        if self._tap is None:
            raise RuntimeError("AnalyserFeed.start() called before attach()")

        self.cancel()
        self._on_draw = on_draw
        self._generation = generation
        self._started_at_ms = self.scheduler.now_ms()
        self._handle = self.scheduler.request_frame(partial(self._tick, self._tap, generation))

    def _tick(self, tap: AnalyserTap, generation: int, now_ms: float) -> None:
        """Sample the tap, draw, and re-schedule."""
        if tap is not self._tap or not tap.connected or generation != self._generation:
            return

        self._handle = None
        samples = tap.sample()
        self.frames_drawn += 1
        rms_db, peak_db = compute_levels(samples)
        frame = AnalyserFrame(
            samples=samples,
            generation=generation,
            elapsed_ms=max(0.0, now_ms - self._started_at_ms),
            rms_db=rms_db,
            peak_db=peak_db,
            slot_index=self.slot_index,
        )

        if self._on_draw is not None:
            try:
                self._on_draw(frame)
            except Exception as e:
                logger.warning(f"Draw callback error: {e}")

        # The draw callback may have stopped the recording
        if tap is self._tap and tap.connected and generation == self._generation and self._handle is None:
            self._handle = self.scheduler.request_frame(partial(self._tick, tap, generation))

    def cancel(self) -> None:
        """Cancel the pending frame, if any."""
        if self._handle is not None:
            self.scheduler.cancel_frame(self._handle)
            self._handle = None

    def detach(self) -> None:
        """Cancel the loop and disconnect the tap. Idempotent."""
        self.cancel()
        if self._tap is not None:
            if self._device is not None:
                self._device.remove_sink(self._tap)
            self._tap.disconnect()
        self._tap = None
        self._device = None
        self._on_draw = None
        self._generation = None
