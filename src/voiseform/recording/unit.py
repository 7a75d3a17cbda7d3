"""Per-question recording state machine.

States::

    idle -> recording -> stopped -> transcribing -> submitted
                 |                       |
                 +-------> error <-------+

Every operation that suspends captures the unit's generation before the
``await`` and compares it afterwards. ``reset()`` and ``invalidate()``
bump the generation, so a late capture grant or transcription result for
an abandoned attempt is dropped instead of being applied.
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any

from voiseform.audio.analyser import AnalyserFeed, DrawCallback
from voiseform.audio.capture import AudioCaptureSession, CaptureDevice
from voiseform.audio.encoding import pcm_to_wav
from voiseform.audio.scheduler import FrameScheduler
from voiseform.constants import DEFAULT_FFT_SIZE, RECORDING_MIME_TYPE, SAMPLE_WIDTH_BYTES
from voiseform.exceptions import (
    CaptureError,
    EmptyRecordingError,
    InvalidStateError,
    TranscriptionError,
)
from voiseform.transcription.base import SourceTier, TranscriptionResult
from voiseform.transcription.pipeline import TranscriptionPipeline
from voiseform.utils.logger import get_logger

logger = get_logger(__name__)


class RecordingState(Enum):
    """Recording slot state."""
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"
    TRANSCRIBING = "transcribing"
    SUBMITTED = "submitted"
    ERROR = "error"


@dataclass(frozen=True)
class RecordedAudio:
    """Finalized recording: raw int16 PCM plus its format."""
    pcm: bytes
    sample_rate: int
    channels: int = 1

    @property
    def size_bytes(self) -> int:
        """Size of the PCM payload."""
        return len(self.pcm)

    @property
    def duration_ms(self) -> float:
        """Audio duration in milliseconds."""
        bytes_per_second = self.sample_rate * self.channels * SAMPLE_WIDTH_BYTES
        if bytes_per_second <= 0:
            return 0.0
        return len(self.pcm) / bytes_per_second * 1000

    def to_wav(self) -> bytes:
        """Encode as a WAV file."""
        return pcm_to_wav(self.pcm, self.sample_rate, self.channels)


@dataclass
class RecordingSlot:
    """Recording data for one question."""
    slot_index: int
    question: str
    state: RecordingState = RecordingState.IDLE
    audio_chunks: list[bytes] = field(default_factory=list)
    recorded: RecordedAudio | None = None
    transcription: str | None = None
    source_tier: SourceTier | None = None
    question_audio_url: str | None = None
    error: Exception | None = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (without audio payloads)."""
        return {
            "slot_index": self.slot_index,
            "question": self.question,
            "state": self.state.value,
            "chunks": len(self.audio_chunks),
            "size_bytes": self.recorded.size_bytes if self.recorded else 0,
            "duration_ms": self.duration_ms,
            "transcription": self.transcription,
            "source_tier": self.source_tier.value if self.source_tier else None,
            "error": str(self.error) if self.error else None,
        }


class RecordingUnit:
    """
    State machine for a single RecordingSlot.

    The unit does not enforce the one-recording-at-a-time rule; the
    owning recorder claims its active index before calling start().

    Attributes:
        slot: The slot this unit drives
        session: Shared microphone session
        feed: Analyser feed for this slot's visualization
        generation: Attempt counter used to discard stale async results
    """

    def __init__(
        self,
        slot: RecordingSlot,
        session: AudioCaptureSession,
        scheduler: FrameScheduler,
        fft_size: int = DEFAULT_FFT_SIZE,
        on_draw: DrawCallback | None = None
    ):
        """
        Initialize recording unit.

        Args:
            slot: Slot to drive
            session: Shared capture session
            scheduler: Frame scheduler for the analyser loop
            fft_size: Analyser window length
            on_draw: Visualization callback
        """
        self.slot = slot
        self.session = session
        self.feed = AnalyserFeed(scheduler, fft_size=fft_size, slot_index=slot.slot_index)
        self.on_draw = on_draw
        self.generation = 0

        self._device: CaptureDevice | None = None

    @property
    def state(self) -> RecordingState:
        """Current slot state."""
        return self.slot.state

    @property
    def index(self) -> int:
        """Slot index."""
        return self.slot.slot_index

    def _set_state(self, state: RecordingState) -> None:
        if state is not self.slot.state:
            logger.debug(f"Slot {self.index}: {self.slot.state.value} -> {state.value}")
            self.slot.state = state

    def _require(self, operation: str, *allowed: RecordingState) -> None:
        if self.slot.state not in allowed:
            raise InvalidStateError(
                f"Cannot {operation} slot {self.index} while {self.slot.state.value}",
                slot_index=self.index,
                state=self.slot.state.value
            )

    async def start(self) -> bool:
        """
        Begin recording.

        The state becomes ``recording`` before the microphone request
        suspends, then the analyser is attached and chunk buffering begins.

        Returns:
            True if this call attached the microphone, False if the
            recording was stopped or superseded while access was pending

        Raises:
            InvalidStateError: If not idle or error
            PermissionDeniedError: If microphone access is refused
            DeviceUnavailableError: If no input device is usable
        """
        self._require("start", RecordingState.IDLE, RecordingState.ERROR)

        self.generation += 1
        generation = self.generation
        self.slot.audio_chunks = []
        self.slot.recorded = None
        self.slot.error = None
        self.slot.duration_ms = 0.0
        self._set_state(RecordingState.RECORDING)

        try:
            device = await self.session.open()
        except CaptureError as e:
            if generation == self.generation:
                self.feed.detach()
                self.slot.error = e
                self._set_state(RecordingState.ERROR)
            raise

        if generation != self.generation or self.slot.state is not RecordingState.RECORDING:
            logger.debug(f"Slot {self.index}: microphone granted after recording was abandoned")
            return False

        self._device = device
        device.set_chunk_listener(partial(self._append_chunk, generation))
        self.feed.attach(device)
        self.feed.start(self.on_draw, generation)
        logger.info(f"Recording started on slot {self.index}")
        return True

    def _append_chunk(self, generation: int, chunk: bytes) -> None:
        if generation == self.generation and self.slot.state is RecordingState.RECORDING:
            self.slot.audio_chunks.append(chunk)

    def _release_device(self) -> None:
        """Stop chunk delivery and tear down the analyser (synchronous)."""
        if self._device is not None:
            self._device.set_chunk_listener(None)
            self._device = None
        self.feed.detach()

    def stop(self) -> RecordedAudio:
        """
        Stop recording and finalize the buffer.

        Returns:
            The finalized RecordedAudio

        Raises:
            InvalidStateError: If not recording
            EmptyRecordingError: If no audio was captured (slot returns to idle)
        """
        self._require("stop", RecordingState.RECORDING)

        device = self._device
        self._release_device()

        pcm = b"".join(self.slot.audio_chunks)
        if not pcm:
            self.slot.audio_chunks = []
            self._set_state(RecordingState.IDLE)
            raise EmptyRecordingError(
                "No audio was captured",
                slot_index=self.index,
                state=RecordingState.IDLE.value
            )

        sample_rate = device.sample_rate if device else self.session.config.sample_rate
        channels = device.channels if device else self.session.config.channels
        recorded = RecordedAudio(pcm=pcm, sample_rate=sample_rate, channels=channels)
        self.slot.recorded = recorded
        self.slot.duration_ms = recorded.duration_ms
        self._set_state(RecordingState.STOPPED)
        logger.info(
            f"Recording stopped on slot {self.index} "
            f"({recorded.size_bytes} bytes, {recorded.duration_ms:.0f}ms)"
        )
        return recorded

    async def submit(self, pipeline: TranscriptionPipeline) -> TranscriptionResult | None:
        """
        Transcribe the finalized buffer.

        Allowed from ``stopped``, or from ``error`` when a buffer is still
        present (manual retry).

        Args:
            pipeline: Transcription pipeline

        Returns:
            TranscriptionResult, or None if the slot was reset or
            invalidated while the transcription was pending

        Raises:
            InvalidStateError: If there is nothing to submit
            TranscriptionError: If transcription is unavailable (slot moves to error)
        """
        if not (
            self.slot.state is RecordingState.STOPPED
            or (self.slot.state is RecordingState.ERROR and self.slot.recorded is not None)
        ):
            raise InvalidStateError(
                f"Cannot submit slot {self.index} while {self.slot.state.value}",
                slot_index=self.index,
                state=self.slot.state.value
            )

        recorded = self.slot.recorded
        generation = self.generation
        self.slot.error = None
        self._set_state(RecordingState.TRANSCRIBING)

        try:
            result = await pipeline.transcribe(recorded.to_wav(), RECORDING_MIME_TYPE)
        except TranscriptionError as e:
            if generation != self.generation:
                return None
            self.slot.error = e
            self._set_state(RecordingState.ERROR)
            raise

        if generation != self.generation:
            logger.debug(f"Slot {self.index}: discarding transcription for an abandoned attempt")
            return None

        self.slot.transcription = result.text
        self.slot.source_tier = result.source_tier
        self._set_state(RecordingState.SUBMITTED)
        return result

    def reset(self) -> None:
        """
        Discard the recording and return to idle.

        Raises:
            InvalidStateError: If recording or transcribing
        """
        self._require("reset", RecordingState.STOPPED, RecordingState.SUBMITTED, RecordingState.ERROR)

        self.generation += 1
        self._release_device()
        self.slot.audio_chunks = []
        self.slot.recorded = None
        self.slot.transcription = None
        self.slot.source_tier = None
        self.slot.error = None
        self.slot.duration_ms = 0.0
        self._set_state(RecordingState.IDLE)

    def invalidate(self) -> None:
        """
        Abandon any in-flight work (recorder shutdown).

        A recording slot drops its partial buffer and returns to idle; a
        transcribing slot returns to stopped and its pending result will
        be discarded.
        """
        self.generation += 1
        self._release_device()

        if self.slot.state is RecordingState.RECORDING:
            self.slot.audio_chunks = []
            self._set_state(RecordingState.IDLE)
        elif self.slot.state is RecordingState.TRANSCRIBING:
            self._set_state(RecordingState.STOPPED)
