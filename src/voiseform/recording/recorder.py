"""Multi-question recorder.

Owns one RecordingUnit per question, the single microphone session and
the active-index rule: at most one slot records at a time, and a start
request while any slot is active is rejected rather than queued.

Invalid operations never raise out of the recorder. They leave the
slots in a consistent state and are reported as ``Notice`` values
through the ``on_notice`` callback.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from voiseform.audio.analyser import DrawCallback
from voiseform.audio.capture import AudioCaptureSession
from voiseform.audio.scheduler import AsyncioFrameScheduler, FrameScheduler
from voiseform.constants import DEFAULT_FFT_SIZE
from voiseform.exceptions import (
    CaptureError,
    ConcurrentRecordingRejected,
    EmptyRecordingError,
    InvalidStateError,
    PermissionDeniedError,
    PersistenceError,
    TranscriptionError,
    TranscriptionUnavailableError,
)
from voiseform.recording.sink import SubmissionRecord, SubmissionSink
from voiseform.recording.unit import RecordedAudio, RecordingSlot, RecordingState, RecordingUnit
from voiseform.transcription.base import TranscriptionResult
from voiseform.transcription.pipeline import TranscriptionPipeline
from voiseform.utils.logger import get_logger

logger = get_logger(__name__)


class NoticeKind(Enum):
    """User-visible conditions reported by the recorder."""
    PERMISSION_DENIED = "permission_denied"
    DEVICE_UNAVAILABLE = "device_unavailable"
    EMPTY_RECORDING = "empty_recording"
    TRANSCRIPTION_UNAVAILABLE = "transcription_unavailable"
    TRANSCRIPTION_DEGRADED = "transcription_degraded"
    CONCURRENT_RECORDING_REJECTED = "concurrent_recording_rejected"
    ACTIVE_RECORDING_NAVIGATION = "active_recording_navigation"
    NOT_ACTIVE = "not_active"
    INVALID_OPERATION = "invalid_operation"
    PERSISTENCE_FAILED = "persistence_failed"


_ERROR_KINDS = {
    NoticeKind.PERMISSION_DENIED,
    NoticeKind.DEVICE_UNAVAILABLE,
    NoticeKind.TRANSCRIPTION_UNAVAILABLE,
    NoticeKind.PERSISTENCE_FAILED,
}


@dataclass
class Notice:
    """A reported condition (toast/banner in a UI, a line in the CLI)."""
    kind: NoticeKind
    slot_index: int | None
    message: str
    error: Exception | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_error(self) -> bool:
        """True for failures, False for warnings."""
        return self.kind in _ERROR_KINDS

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": self.kind.value,
            "slot_index": self.slot_index,
            "message": self.message,
            "error": self.error.to_json() if hasattr(self.error, "to_json") else (
                str(self.error) if self.error else None
            ),
            "timestamp": self.timestamp.isoformat(),
        }


NoticeCallback = Callable[[Notice], None]


class MultiSlotRecorder:
    """
    Recorder for an ordered list of questions.

    Example:
        recorder = MultiSlotRecorder(questions, session, pipeline)
        await recorder.request_start(0)
        recorder.request_stop(0)
        await recorder.submit(0)
    """

    def __init__(
        self,
        questions: Sequence[str],
        session: AudioCaptureSession,
        pipeline: TranscriptionPipeline,
        sink: SubmissionSink | None = None,
        scheduler: FrameScheduler | None = None,
        on_notice: NoticeCallback | None = None,
        on_draw: DrawCallback | None = None,
        question_audio_urls: Sequence[str | None] | None = None,
        fft_size: int = DEFAULT_FFT_SIZE
    ):
        """
        Initialize recorder.

        Args:
            questions: Question texts in display order
            session: Microphone session shared by every slot
            pipeline: Transcription pipeline used on submit
            sink: Optional persistence sink for submitted answers
            scheduler: Frame scheduler for visualization (asyncio by default)
            on_notice: Called with every Notice
            on_draw: Called with every AnalyserFrame
            question_audio_urls: Previously synthesized question audio, by slot
            fft_size: Analyser window length
        """
        self.session = session
        self.pipeline = pipeline
        self.sink = sink
        self.scheduler = scheduler or AsyncioFrameScheduler()
        self.on_notice = on_notice
        self.current_index = 0

        urls = list(question_audio_urls or [])
        self._slots = [
            RecordingSlot(
                slot_index=i,
                question=question,
                question_audio_url=urls[i] if i < len(urls) else None,
            )
            for i, question in enumerate(questions)
        ]
        self._units = [
            RecordingUnit(slot, session, self.scheduler, fft_size=fft_size, on_draw=on_draw)
            for slot in self._slots
        ]
        self._active_index: int | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def slots(self) -> list[RecordingSlot]:
        """Slots in question order."""
        return list(self._slots)

    @property
    def units(self) -> list[RecordingUnit]:
        """Recording units in question order."""
        return list(self._units)

    @property
    def active_index(self) -> int | None:
        """Slot currently holding the microphone, or None."""
        return self._active_index

    @property
    def can_navigate(self) -> bool:
        """False while a recording is active."""
        return self._active_index is None

    @property
    def is_closed(self) -> bool:
        """Whether close() has run."""
        return self._closed

    @property
    def all_submitted(self) -> bool:
        """Whether every slot has a transcription."""
        return bool(self._slots) and all(
            slot.state is RecordingState.SUBMITTED for slot in self._slots
        )

    def progress(self) -> dict[str, Any]:
        """
        Summarize completion.

        Returns:
            Dictionary with submitted count, total and current index
        """
        submitted = sum(1 for slot in self._slots if slot.state is RecordingState.SUBMITTED)
        return {
            "submitted": submitted,
            "total": len(self._slots),
            "current_index": self.current_index,
            "active_index": self._active_index,
        }

    # ------------------------------------------------------------------
    # Notices
    # ------------------------------------------------------------------

    def _notify(
        self,
        kind: NoticeKind,
        slot_index: int | None,
        message: str,
        error: Exception | None = None
    ) -> Notice:
        notice = Notice(kind=kind, slot_index=slot_index, message=message, error=error)
        level = logging.ERROR if notice.is_error else logging.WARNING
        logger.log(level, f"[{kind.value}] slot={slot_index}: {message}")

        if self.on_notice is not None:
            try:
                self.on_notice(notice)
            except Exception as e:
                logger.warning(f"Notice callback error: {e}")
        return notice

    def _unit(self, index: int, operation: str) -> RecordingUnit | None:
        if self._closed:
            self._notify(NoticeKind.INVALID_OPERATION, index, f"Cannot {operation}: recorder is closed")
            return None
        if not 0 <= index < len(self._units):
            self._notify(NoticeKind.INVALID_OPERATION, index, f"Cannot {operation}: no question {index}")
            return None
        return self._units[index]

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def request_start(self, index: int) -> bool:
        """
        Start recording ``index``.

        Args:
            index: Slot to record

        Returns:
            True if the slot is now recording
        """
        unit = self._unit(index, "start recording")
        if unit is None:
            return False

        if self._active_index is not None:
            error = ConcurrentRecordingRejected(
                f"Question {self._active_index + 1} is already recording",
                slot_index=index,
                active_index=self._active_index
            )
            self._notify(NoticeKind.CONCURRENT_RECORDING_REJECTED, index, error.message, error)
            return False

        if unit.state not in (RecordingState.IDLE, RecordingState.ERROR):
            self._notify(
                NoticeKind.INVALID_OPERATION,
                index,
                f"Question {index + 1} is {unit.state.value}; reset it to record again"
            )
            return False

        # Claim before the first suspension point
        self._active_index = index

        try:
            started = await unit.start()
        except CaptureError as e:
            if self._active_index == index:
                self._active_index = None
            if self._closed:
                logger.debug(f"Capture for slot {index} ended by close(): {e.message}")
                return False
            if isinstance(e, PermissionDeniedError):
                self._notify(
                    NoticeKind.PERMISSION_DENIED,
                    index,
                    "Microphone access denied. Allow microphone access to record answers.",
                    e
                )
            else:
                self._notify(NoticeKind.DEVICE_UNAVAILABLE, index, "No microphone available", e)
            return False

        return started

    def request_stop(self, index: int) -> RecordedAudio | None:
        """
        Stop recording ``index``.

        Args:
            index: Slot to stop (must be the active slot)

        Returns:
            RecordedAudio, or None if nothing was recorded
        """
        unit = self._unit(index, "stop recording")
        if unit is None:
            return None

        if self._active_index != index:
            self._notify(NoticeKind.NOT_ACTIVE, index, f"Question {index + 1} is not recording")
            return None

        self._active_index = None
        try:
            return unit.stop()
        except EmptyRecordingError as e:
            self._notify(NoticeKind.EMPTY_RECORDING, index, "No audio recorded. Please try again.", e)
            return None

    async def submit(self, index: int) -> TranscriptionResult | None:
        """
        Transcribe and submit ``index``.

        Args:
            index: Slot to submit

        Returns:
            TranscriptionResult, or None on failure or if the result was discarded
        """
        unit = self._unit(index, "submit")
        if unit is None:
            return None

        try:
            result = await unit.submit(self.pipeline)
        except InvalidStateError as e:
            self._notify(NoticeKind.INVALID_OPERATION, index, e.message, e)
            return None
        except TranscriptionUnavailableError as e:
            self._notify(
                NoticeKind.TRANSCRIPTION_UNAVAILABLE,
                index,
                "Transcription is unavailable. Submit again to retry.",
                e
            )
            return None
        except TranscriptionError as e:
            self._notify(NoticeKind.TRANSCRIPTION_UNAVAILABLE, index, e.message, e)
            return None

        if result is None:
            return None

        if result.is_mock:
            self._notify(
                NoticeKind.TRANSCRIPTION_DEGRADED,
                index,
                "Transcription services are unavailable; a placeholder transcript was saved."
            )

        await self._persist(unit)
        return result

    async def _persist(self, unit: RecordingUnit) -> None:
        if self.sink is None:
            return

        slot = unit.slot
        record = SubmissionRecord(
            slot_index=slot.slot_index,
            question=slot.question,
            transcription=slot.transcription,
            source_tier=slot.source_tier,
            audio=slot.recorded,
        )
        try:
            await self.sink.persist(record)
        except PersistenceError as e:
            self._notify(NoticeKind.PERSISTENCE_FAILED, slot.slot_index, e.message, e)
        except Exception as e:
            error = PersistenceError(f"Submission sink failed: {e}", cause=e)
            self._notify(NoticeKind.PERSISTENCE_FAILED, slot.slot_index, error.message, error)

    def reset(self, index: int) -> bool:
        """
        Discard the recording of ``index``.

        Returns:
            True if the slot is back to idle
        """
        unit = self._unit(index, "reset")
        if unit is None:
            return False

        try:
            unit.reset()
        except InvalidStateError as e:
            self._notify(NoticeKind.INVALID_OPERATION, index, e.message, e)
            return False
        return True

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def go_to(self, index: int) -> bool:
        """
        Move to question ``index``.

        Returns:
            True if the current index changed (or already was ``index``)
        """
        if not 0 <= index < len(self._slots):
            self._notify(NoticeKind.INVALID_OPERATION, index, f"No question {index}")
            return False
        if index == self.current_index:
            return True
        if self._active_index is not None:
            self._notify(
                NoticeKind.ACTIVE_RECORDING_NAVIGATION,
                self._active_index,
                "Stop the current recording before moving to another question"
            )
            return False

        self.current_index = index
        return True

    def next(self) -> bool:
        """Move to the next question."""
        if self.current_index + 1 >= len(self._slots):
            return False
        return self.go_to(self.current_index + 1)

    def previous(self) -> bool:
        """Move to the previous question."""
        if self.current_index == 0:
            return False
        return self.go_to(self.current_index - 1)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Stop any recording, abandon pending transcriptions and release the microphone. Idempotent."""
        if self._closed:
            return

        self._closed = True
        for unit in self._units:
            unit.invalidate()
        self._active_index = None
        self.session.close()
        logger.info("Recorder closed")
