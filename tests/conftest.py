"""Common fixtures for tests."""

import sys
from pathlib import Path
from typing import Any

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from voiseform.audio.capture import AudioCaptureSession, CaptureBackend, CaptureConfig, CaptureDevice
from voiseform.audio.scheduler import FrameScheduler
from voiseform.playback.output import AudioOutput
from voiseform.playback.synthesis import SpeechSynthesizer
from voiseform.recording.recorder import MultiSlotRecorder, Notice
from voiseform.recording.sink import SubmissionRecord, SubmissionSink
from voiseform.transcription.base import TranscriptionBackend, TranscriptionRequest
from voiseform.transcription.pipeline import TranscriptionPipeline


QUESTIONS = [
    "How was your experience today?",
    "What could we improve?",
    "Would you recommend us to a friend?",
]


# ============================================================================
# Capture Fakes
# ============================================================================

class FakeStream:
    """Stand-in for a PortAudio stream."""

    def __init__(self):
        self.stopped = 0
        self.closed = 0

    def stop(self):
        self.stopped += 1

    def close(self):
        self.closed += 1


class FakeCaptureBackend(CaptureBackend):
    """Capture backend that hands out fake devices.

    Set ``error`` to make the next open() fail, or ``gate`` (an
    asyncio.Event) to hold open() until the test releases it.
    """

    def __init__(self, sample_rate: int = 16000, channels: int = 1):
        self.sample_rate = sample_rate
        self.channels = channels
        self.open_calls = 0
        self.error: Exception | None = None
        self.gate = None
        self.devices: list[CaptureDevice] = []

    async def open(self, config: CaptureConfig) -> CaptureDevice:
        self.open_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        device = CaptureDevice(FakeStream(), self.sample_rate, self.channels)
        self.devices.append(device)
        return device


class ManualFrameScheduler(FrameScheduler):
    """Frame scheduler advanced explicitly with tick()."""

    def __init__(self):
        self.now_ms_value = 0.0
        self._next_id = 0
        self._pending: dict[int, Any] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def request_frame(self, callback):
        self._next_id += 1
        self._pending[self._next_id] = callback
        return self._next_id

    def cancel_frame(self, handle):
        self._pending.pop(handle, None)

    def now_ms(self) -> float:
        return self.now_ms_value

    def tick(self, elapsed_ms: float = 33.0) -> int:
        """Run every callback pending at call time; return how many ran."""
        self.now_ms_value += elapsed_ms
        due = list(self._pending.items())
        self._pending.clear()
        for _, callback in due:
            callback(self.now_ms_value)
        return len(due)


# ============================================================================
# Transcription Fakes
# ============================================================================

class FakeTier(TranscriptionBackend):
    """Transcription backend returning fixed text or raising."""

    def __init__(self, name: str, text: str | None = None, error: Exception | None = None):
        self.name = name
        self.text = text
        self.error = error
        self.calls: list[TranscriptionRequest] = []
        self.gate = None

    async def transcribe(self, request: TranscriptionRequest) -> str:
        self.calls.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.text


# ============================================================================
# Playback Fakes
# ============================================================================

class FakeSynthesizer(SpeechSynthesizer):
    """Synthesizer returning a deterministic data URI."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[str] = []
        self.gate = None

    async def synthesize(self, text: str) -> str:
        self.calls.append(text)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return f"data:audio/wav;base64,{len(self.calls):04d}"


class FakeOutput(AudioOutput):
    """Audio output that records what it was asked to play."""

    def __init__(self):
        self.loaded: list[str] = []
        self.started: list[Any] = []
        self.stop_calls = 0
        self._on_finished = None

    async def load(self, url: str) -> Any:
        self.loaded.append(url)
        return url

    def start(self, clip, on_finished=None) -> None:
        self.started.append(clip)
        self._on_finished = on_finished

    def stop(self) -> None:
        self.stop_calls += 1
        self._on_finished = None

    def finish(self) -> None:
        """Simulate the clip ending on its own."""
        callback, self._on_finished = self._on_finished, None
        if callback is not None:
            callback()


# ============================================================================
# Persistence Fakes
# ============================================================================

class FakeSink(SubmissionSink):
    """Sink collecting records in memory."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.records: list[SubmissionRecord] = []

    async def persist(self, record: SubmissionRecord) -> None:
        if self.error is not None:
            raise self.error
        self.records.append(record)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def questions() -> list[str]:
    """Three feedback questions."""
    return list(QUESTIONS)


@pytest.fixture
def capture_backend() -> FakeCaptureBackend:
    """Fake microphone backend."""
    return FakeCaptureBackend()


@pytest.fixture
def capture_session(capture_backend: FakeCaptureBackend) -> AudioCaptureSession:
    """Capture session over the fake backend."""
    return AudioCaptureSession(backend=capture_backend)


@pytest.fixture
def scheduler() -> ManualFrameScheduler:
    """Manually ticked frame scheduler."""
    return ManualFrameScheduler()


@pytest.fixture
def primary_tier() -> FakeTier:
    """Primary tier that transcribes successfully."""
    return FakeTier("primary", text="hello world")


@pytest.fixture
def pipeline(primary_tier: FakeTier) -> TranscriptionPipeline:
    """Single-tier pipeline."""
    return TranscriptionPipeline([primary_tier])


@pytest.fixture
def sink() -> FakeSink:
    """In-memory submission sink."""
    return FakeSink()


@pytest.fixture
def notices() -> list[Notice]:
    """List collecting recorder notices."""
    return []


@pytest.fixture
def recorder(questions, capture_session, pipeline, sink, scheduler, notices) -> MultiSlotRecorder:
    """Recorder wired entirely to fakes."""
    return MultiSlotRecorder(
        questions,
        capture_session,
        pipeline,
        sink=sink,
        scheduler=scheduler,
        on_notice=notices.append,
    )


@pytest.fixture
def pcm_chunk() -> bytes:
    """500 bytes of non-silent int16 PCM."""
    return (b"\x10\x27\xf0\xd8" * 125)
