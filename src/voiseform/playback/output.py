"""Audio output for question prompts."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import httpx
import numpy as np

from voiseform.audio.encoding import decode_wav, parse_data_uri
from voiseform.exceptions import PlaybackError
from voiseform.utils.logger import get_logger

logger = get_logger(__name__)

FinishedCallback = Callable[[], None]


class AudioOutput(ABC):
    """
    Single audio element: one clip at a time.

    ``start()`` replaces whatever is playing. ``on_finished`` fires once
    when the clip ends on its own, never after ``stop()``.
    """

    @abstractmethod
    async def load(self, url: str) -> Any:
        """
        Fetch and decode ``url`` into a playable clip.

        Raises:
            PlaybackError: If the audio cannot be loaded
        """
        pass

    @abstractmethod
    def start(self, clip: Any, on_finished: FinishedCallback | None = None) -> None:
        """
        Start playing a loaded clip.

        Raises:
            PlaybackError: If the output device refused the clip
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop playback. Idempotent."""
        pass


class SoundDeviceOutput(AudioOutput):
    """Plays WAV clips through the default output device with sounddevice."""

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        """
        Initialize output.

        Args:
            http_client: Client used for http(s) audio URLs
        """
        self._http_client = http_client
        self._finish_handle: asyncio.TimerHandle | None = None

    async def load(self, url: str) -> tuple[np.ndarray, int]:
        if url.startswith("data:"):
            try:
                _, data = parse_data_uri(url)
            except ValueError as e:
                raise PlaybackError(f"Invalid audio URL: {e}", cause=e) from e
        elif url.startswith(("http://", "https://")):
            data = await self._fetch(url)
        else:
            raise PlaybackError("Unsupported audio URL", context={"scheme": url.split(":", 1)[0]})

        try:
            return decode_wav(data)
        except ValueError as e:
            raise PlaybackError(f"Cannot decode question audio: {e}", cause=e) from e

    async def _fetch(self, url: str) -> bytes:
        client = self._http_client or httpx.AsyncClient(timeout=30.0)
        try:
            response = await client.get(url)
            response.raise_for_status()
            return response.content
        except httpx.HTTPError as e:
            raise PlaybackError(f"Failed to fetch question audio: {e}", cause=e) from e
        finally:
            if self._http_client is None:
                await client.aclose()

    def start(self, clip: tuple[np.ndarray, int], on_finished: FinishedCallback | None = None) -> None:
        samples, sample_rate = clip
        self._cancel_finish()

        try:
            import sounddevice as sd
            sd.play(samples, sample_rate)
        except (ImportError, OSError) as e:
            raise PlaybackError("Audio output is not available", cause=e) from e
        except Exception as e:
            raise PlaybackError(f"Playback failed: {e}", cause=e) from e

        if on_finished is not None:
            duration = len(samples) / sample_rate if sample_rate else 0.0
            loop = asyncio.get_running_loop()
            self._finish_handle = loop.call_later(duration, on_finished)

    def _cancel_finish(self) -> None:
        if self._finish_handle is not None:
            self._finish_handle.cancel()
            self._finish_handle = None

    def stop(self) -> None:
        self._cancel_finish()
        try:
            import sounddevice as sd
            sd.stop()
        except (ImportError, OSError) as e:
            logger.debug(f"Nothing to stop: {e}")
