"""Microphone capture for voice answers.

This module owns the single live microphone stream used by a recorder.
A ``CaptureBackend`` turns a ``CaptureConfig`` into a ``CaptureDevice``
(the granted stream); ``AudioCaptureSession`` guarantees that at most
one device is open at a time and that closing it is idempotent.

PortAudio delivers blocks on its own thread. The sounddevice backend
hands every block to the event loop with ``call_soon_threadsafe`` so
that listeners and analyser taps only ever run on the loop thread.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import numpy as np

from voiseform.audio.encoding import pcm16_to_float
from voiseform.constants import DEFAULT_BLOCK_SIZE, DEFAULT_CHANNELS, DEFAULT_SAMPLE_RATE
from voiseform.exceptions import DeviceUnavailableError, PermissionDeniedError
from voiseform.utils.logger import get_logger

logger = get_logger(__name__)

ChunkListener = Callable[[bytes], None]

# PortAudio / OS messages that indicate the user or OS refused access
_PERMISSION_MARKERS = ("permission", "denied", "not authorized", "not permitted", "access")


@dataclass
class CaptureConfig:
    """Microphone capture configuration."""
    sample_rate: int = DEFAULT_SAMPLE_RATE  # 16kHz for speech recognition
    channels: int = DEFAULT_CHANNELS  # Mono
    block_size: int = DEFAULT_BLOCK_SIZE  # Frames per callback
    device: int | str | None = None  # None for default device


class SampleSink(Protocol):
    """Anything that consumes live float32 samples (analyser taps)."""

    def feed(self, samples: np.ndarray) -> None: ...

    def disconnect(self) -> None: ...


class CaptureDevice:
    """
    One granted microphone permission plus its live stream.

    Raw int16 blocks are fanned out, in arrival order, to the current
    chunk listener (the recording slot) and to every attached sample
    sink. Sinks only read; they never alter what the listener receives.

    Attributes:
        stream: Backend stream handle (needs ``stop()`` and ``close()``)
        sample_rate: Sample rate in Hz
        channels: Channel count
        closed: Whether the stream has been released
    """

    def __init__(self, stream: Any, sample_rate: int, channels: int):
        self.stream = stream
        self.sample_rate = sample_rate
        self.channels = channels
        self.closed = False

        self._chunk_listener: ChunkListener | None = None
        self._sinks: list[SampleSink] = []

    @property
    def sinks(self) -> list[SampleSink]:
        """Currently attached sample sinks."""
        return list(self._sinks)

    def set_chunk_listener(self, listener: ChunkListener | None) -> None:
        """Route raw blocks to ``listener`` (None stops buffering)."""
        self._chunk_listener = listener

    def add_sink(self, sink: SampleSink) -> None:
        """Attach a sample sink."""
        if sink not in self._sinks:
            self._sinks.append(sink)

    def remove_sink(self, sink: SampleSink) -> None:
        """Detach a sample sink if attached."""
        if sink in self._sinks:
            self._sinks.remove(sink)

    def deliver(self, block: bytes) -> None:
        """
        Distribute one captured block. Must be called on the loop thread.

        Args:
            block: Raw interleaved int16 PCM bytes
        """
        if self.closed or not block:
            return

        if self._chunk_listener is not None:
            self._chunk_listener(block)

        if self._sinks:
            samples = pcm16_to_float(block)
            if self.channels > 1:
                samples = samples[: len(samples) - len(samples) % self.channels]
                samples = samples.reshape(-1, self.channels)[:, 0]
            for sink in list(self._sinks):
                sink.feed(samples)

    def close(self) -> None:
        """Disconnect sinks, stop and release the stream. Idempotent."""
        if self.closed:
            return

        self.closed = True
        self._chunk_listener = None
        for sink in list(self._sinks):
            sink.disconnect()
        self._sinks.clear()

        if self.stream is not None:
            try:
                self.stream.stop()
                self.stream.close()
            except Exception as e:
                logger.warning(f"Error closing capture stream: {e}")
            self.stream = None


class CaptureBackend(ABC):
    """Source of capture devices (real microphone or a test double)."""

    @abstractmethod
    async def open(self, config: CaptureConfig) -> CaptureDevice:
        """
        Request microphone access and start streaming.

        Args:
            config: Capture configuration

        Returns:
            Live CaptureDevice

        Raises:
            PermissionDeniedError: If access is refused
            DeviceUnavailableError: If there is no usable input device
        """
        pass


class SoundDeviceBackend(CaptureBackend):
    """Capture backend built on sounddevice (PortAudio)."""

    async def open(self, config: CaptureConfig) -> CaptureDevice:
        """Open a raw int16 input stream on the configured device."""
        sd = self._import_sounddevice()
        loop = asyncio.get_running_loop()
        device = CaptureDevice(None, config.sample_rate, config.channels)

        def audio_callback(indata, frames, time_info, status):
            """Callback for sounddevice input stream (PortAudio thread)."""
            if status:
                logger.warning(f"Sounddevice callback status: {status}")
            try:
                loop.call_soon_threadsafe(device.deliver, bytes(indata))
            except RuntimeError:
                # Loop already closed during shutdown
                pass

        try:
            stream = await loop.run_in_executor(
                None, self._start_stream, sd, config, audio_callback
            )
        except (sd.PortAudioError, ValueError) as e:
            raise self._map_error(e, config) from e

        device.stream = stream
        logger.info(
            f"Microphone opened (sr={config.sample_rate}, channels={config.channels}, "
            f"device={config.device if config.device is not None else 'default'})"
        )
        return device

    @staticmethod
    def _start_stream(sd: Any, config: CaptureConfig, callback: Callable) -> Any:
        """Query the device and start the stream (blocking)."""
        sd.query_devices(config.device, kind='input')
        stream = sd.RawInputStream(
            samplerate=config.sample_rate,
            channels=config.channels,
            dtype='int16',
            blocksize=config.block_size,
            device=config.device,
            callback=callback
        )
        stream.start()
        return stream

    @staticmethod
    def _import_sounddevice() -> Any:
        """Import sounddevice, mapping a missing PortAudio to DeviceUnavailableError."""
        try:
            import sounddevice as sd
            return sd
        except (ImportError, OSError) as e:
            raise DeviceUnavailableError(
                "Audio input is not available (sounddevice/PortAudio missing)",
                cause=e
            ) from e

    @staticmethod
    def _map_error(error: Exception, config: CaptureConfig) -> Exception:
        """Translate a PortAudio error into the capture error taxonomy."""
        message = str(error).lower()
        if any(marker in message for marker in _PERMISSION_MARKERS):
            return PermissionDeniedError(
                "Microphone access was denied",
                device=config.device,
                cause=error
            )
        return DeviceUnavailableError(
            "No usable audio input device",
            device=config.device,
            cause=error
        )


def list_input_devices() -> list[dict[str, Any]]:
    """
    List available audio input devices.

    Returns:
        List of device information dictionaries
    """
    sd = SoundDeviceBackend._import_sounddevice()
    devices = []
    for i, info in enumerate(sd.query_devices()):
        if info.get('max_input_channels', 0) > 0:
            devices.append({
                'index': i,
                'name': info.get('name', f'Device {i}'),
                'channels': info.get('max_input_channels', 0),
                'sample_rate': info.get('default_samplerate', 0)
            })
    return devices


class AudioCaptureSession:
    """
    Owner of the single microphone stream for one recorder.

    ``open()`` returns the existing device when one is already open and
    joins an in-flight request when the permission prompt is still
    pending, so the hardware is never opened twice.
    """

    def __init__(
        self,
        backend: CaptureBackend | None = None,
        config: CaptureConfig | None = None
    ):
        """
        Initialize capture session.

        Args:
            backend: Capture backend (defaults to sounddevice)
            config: Capture configuration
        """
        self.backend = backend or SoundDeviceBackend()
        self.config = config or CaptureConfig()

        self._device: CaptureDevice | None = None
        self._opening: asyncio.Future | None = None
        self._close_count = 0

    @property
    def device(self) -> CaptureDevice | None:
        """Live device handle, or None when closed."""
        return self._device

    @property
    def is_open(self) -> bool:
        """Whether a device is currently held."""
        return self._device is not None

    async def open(self) -> CaptureDevice:
        """
        Acquire the microphone, reusing the open device if present.

        Returns:
            Live CaptureDevice

        Raises:
            PermissionDeniedError: If access is refused
            DeviceUnavailableError: If no input device is usable
        """
        if self._device is not None:
            return self._device

        if self._opening is None:
            self._opening = asyncio.ensure_future(self._open_device(self._close_count))

        return await asyncio.shield(self._opening)

    async def _open_device(self, close_count: int) -> CaptureDevice:
        try:
            device = await self.backend.open(self.config)
        finally:
            self._opening = None

        if close_count != self._close_count:
            # close() ran while the permission prompt was pending
            device.close()
            raise DeviceUnavailableError("Capture session closed while opening")

        self._device = device
        return device

    def close(self) -> None:
        """Release the device and disconnect all taps. Idempotent."""
        self._close_count += 1
        device = self._device
        self._device = None

        if device is not None:
            device.close()
            logger.info("Microphone released")
