"""Tests for the per-slot recording state machine."""

import asyncio
import wave
import io

import pytest

from conftest import FakeTier
from voiseform.exceptions import (
    DeviceUnavailableError,
    EmptyRecordingError,
    InvalidStateError,
    PermissionDeniedError,
    TranscriptionUnavailableError,
)
from voiseform.recording.unit import RecordedAudio, RecordingSlot, RecordingState, RecordingUnit
from voiseform.transcription.base import SourceTier
from voiseform.transcription.pipeline import TranscriptionPipeline


@pytest.fixture
def unit(capture_session, scheduler) -> RecordingUnit:
    """Unit for question 0."""
    return RecordingUnit(RecordingSlot(0, "How was your experience today?"), capture_session, scheduler)


async def record(unit: RecordingUnit, *chunks: bytes) -> RecordedAudio:
    """Start, deliver chunks and stop."""
    await unit.start()
    for chunk in chunks:
        unit.session.device.deliver(chunk)
    return unit.stop()


# ============================================================================
# RecordedAudio Tests
# ============================================================================

class TestRecordedAudio:
    """Test finalized buffers."""

    def test_duration(self):
        """Test duration from byte count."""
        audio = RecordedAudio(pcm=b"\x00" * 32000, sample_rate=16000)
        assert audio.duration_ms == pytest.approx(1000.0)
        assert audio.size_bytes == 32000

    def test_to_wav(self):
        """Test WAV encoding keeps the PCM."""
        audio = RecordedAudio(pcm=b"\x01\x02" * 10, sample_rate=8000)
        with wave.open(io.BytesIO(audio.to_wav()), 'rb') as wav_file:
            assert wav_file.getframerate() == 8000
            assert wav_file.readframes(10) == b"\x01\x02" * 10


# ============================================================================
# Start / Stop Tests
# ============================================================================

class TestStartStop:
    """Test recording start and stop."""

    @pytest.mark.asyncio
    async def test_start_enters_recording(self, unit, scheduler):
        """Test start opens the device and starts the analyser loop."""
        assert await unit.start() is True

        assert unit.state == RecordingState.RECORDING
        assert unit.feed.is_attached is True
        assert scheduler.pending_count == 1

    @pytest.mark.asyncio
    async def test_state_claimed_before_device_grant(self, unit, capture_backend):
        """Test the state is recording while the permission prompt is pending."""
        capture_backend.gate = asyncio.Event()
        task = asyncio.create_task(unit.start())
        await asyncio.sleep(0)

        assert unit.state == RecordingState.RECORDING

        capture_backend.gate.set()
        await task

    @pytest.mark.asyncio
    async def test_chunks_concatenated_in_order(self, unit):
        """Test stop joins chunks in arrival order."""
        recorded = await record(unit, b"\x01\x00", b"\x02\x00", b"\x03\x00")

        assert recorded.pcm == b"\x01\x00\x02\x00\x03\x00"
        assert unit.state == RecordingState.STOPPED
        assert unit.slot.recorded is recorded
        assert unit.slot.duration_ms == pytest.approx(recorded.duration_ms)

    @pytest.mark.asyncio
    async def test_stop_cancels_loop_and_detaches(self, unit, scheduler):
        """Test no frame is pending and no tap attached after stop."""
        await record(unit, b"\x01\x00")

        assert scheduler.pending_count == 0
        assert unit.feed.is_attached is False
        assert unit.session.device.sinks == []

    @pytest.mark.asyncio
    async def test_chunks_after_stop_ignored(self, unit):
        """Test late blocks are not buffered."""
        recorded = await record(unit, b"\x01\x00")
        unit.session.device.deliver(b"\x02\x00")

        assert unit.slot.audio_chunks == [b"\x01\x00"]
        assert recorded.pcm == b"\x01\x00"

    @pytest.mark.asyncio
    async def test_empty_recording_returns_to_idle(self, unit):
        """Test stop with no audio raises and leaves the slot idle."""
        await unit.start()

        with pytest.raises(EmptyRecordingError):
            unit.stop()

        assert unit.state == RecordingState.IDLE
        assert unit.slot.recorded is None

    @pytest.mark.asyncio
    async def test_stop_when_not_recording(self, unit):
        """Test stop from idle is invalid."""
        with pytest.raises(InvalidStateError):
            unit.stop()

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self, unit):
        """Test start while recording is invalid."""
        await unit.start()
        with pytest.raises(InvalidStateError):
            await unit.start()

    @pytest.mark.asyncio
    async def test_permission_denied_enters_error(self, unit, capture_backend, scheduler):
        """Test a capture failure moves the slot to error and re-raises."""
        capture_backend.error = PermissionDeniedError("Microphone access was denied")

        with pytest.raises(PermissionDeniedError):
            await unit.start()

        assert unit.state == RecordingState.ERROR
        assert isinstance(unit.slot.error, PermissionDeniedError)
        assert scheduler.pending_count == 0

    @pytest.mark.asyncio
    async def test_start_from_error(self, unit, capture_backend):
        """Test recording can be retried after a capture failure."""
        capture_backend.error = DeviceUnavailableError("No usable audio input device")
        with pytest.raises(DeviceUnavailableError):
            await unit.start()

        capture_backend.error = None
        await unit.start()

        assert unit.state == RecordingState.RECORDING
        assert unit.slot.error is None

    @pytest.mark.asyncio
    async def test_stop_during_pending_grant(self, unit, capture_backend, scheduler):
        """Test a device granted after stop is not used for recording."""
        capture_backend.gate = asyncio.Event()
        task = asyncio.create_task(unit.start())
        await asyncio.sleep(0)

        with pytest.raises(EmptyRecordingError):
            unit.stop()
        capture_backend.gate.set()
        assert await task is False

        assert unit.state == RecordingState.IDLE
        assert unit.feed.is_attached is False
        assert scheduler.pending_count == 0


# ============================================================================
# Submit Tests
# ============================================================================

class TestSubmit:
    """Test transcription of a finalized buffer."""

    @pytest.mark.asyncio
    async def test_submit_success(self, unit, pipeline):
        """Test submit stores the transcription."""
        await record(unit, b"\x01\x00" * 250)

        result = await unit.submit(pipeline)

        assert result.text == "hello world"
        assert unit.state == RecordingState.SUBMITTED
        assert unit.slot.transcription == "hello world"
        assert unit.slot.source_tier == SourceTier.PRIMARY

    @pytest.mark.asyncio
    async def test_submit_sends_wav(self, unit, pipeline, primary_tier):
        """Test the pipeline receives a WAV file."""
        await record(unit, b"\x01\x00")
        await unit.submit(pipeline)

        request = primary_tier.calls[0]
        assert request.mime_type == "audio/wav"
        assert request.audio[:4] == b"RIFF"

    @pytest.mark.asyncio
    async def test_submit_requires_stopped(self, unit, pipeline):
        """Test submit from idle is invalid."""
        with pytest.raises(InvalidStateError):
            await unit.submit(pipeline)

    @pytest.mark.asyncio
    async def test_submit_while_recording_rejected(self, unit, pipeline):
        """Test submit during recording is invalid."""
        await unit.start()
        with pytest.raises(InvalidStateError):
            await unit.submit(pipeline)

    @pytest.mark.asyncio
    async def test_transcribing_state(self, unit, primary_tier, pipeline):
        """Test the slot is transcribing while the pipeline is pending."""
        await record(unit, b"\x01\x00")
        primary_tier.gate = asyncio.Event()

        task = asyncio.create_task(unit.submit(pipeline))
        await asyncio.sleep(0)
        assert unit.state == RecordingState.TRANSCRIBING

        primary_tier.gate.set()
        await task
        assert unit.state == RecordingState.SUBMITTED

    @pytest.mark.asyncio
    async def test_unavailable_enters_error_and_allows_retry(self, unit):
        """Test all tiers failing moves to error, and a manual retry succeeds."""
        tier = FakeTier("primary", error=RuntimeError("service down"))
        pipeline = TranscriptionPipeline([tier], allow_mock=False)
        await record(unit, b"\x01\x00")

        with pytest.raises(TranscriptionUnavailableError):
            await unit.submit(pipeline)
        assert unit.state == RecordingState.ERROR
        assert unit.slot.recorded is not None

        tier.error = None
        tier.text = "second try"
        result = await unit.submit(pipeline)

        assert result.text == "second try"
        assert unit.state == RecordingState.SUBMITTED

    @pytest.mark.asyncio
    async def test_result_discarded_after_invalidate(self, unit, primary_tier, pipeline):
        """Test a transcription finishing after invalidate() is dropped."""
        await record(unit, b"\x01\x00")
        primary_tier.gate = asyncio.Event()

        task = asyncio.create_task(unit.submit(pipeline))
        await asyncio.sleep(0)
        unit.invalidate()
        primary_tier.gate.set()

        assert await task is None
        assert unit.slot.transcription is None
        assert unit.state == RecordingState.STOPPED

    @pytest.mark.asyncio
    async def test_submitted_only_with_buffer(self, unit, pipeline):
        """Test the error state without a buffer cannot be submitted."""
        unit.slot.state = RecordingState.ERROR
        with pytest.raises(InvalidStateError):
            await unit.submit(pipeline)


# ============================================================================
# Reset Tests
# ============================================================================

class TestReset:
    """Test discarding a recording."""

    @pytest.mark.asyncio
    async def test_reset_from_stopped(self, unit):
        """Test reset clears the buffer."""
        await record(unit, b"\x01\x00")
        generation = unit.generation

        unit.reset()

        assert unit.state == RecordingState.IDLE
        assert unit.slot.audio_chunks == []
        assert unit.slot.recorded is None
        assert unit.generation == generation + 1

    @pytest.mark.asyncio
    async def test_reset_from_submitted(self, unit, pipeline):
        """Test reset clears the transcription."""
        await record(unit, b"\x01\x00")
        await unit.submit(pipeline)

        unit.reset()

        assert unit.slot.transcription is None
        assert unit.slot.source_tier is None

    @pytest.mark.asyncio
    async def test_reset_while_recording_rejected(self, unit):
        """Test reset during recording is invalid."""
        await unit.start()
        with pytest.raises(InvalidStateError):
            unit.reset()
        assert unit.state == RecordingState.RECORDING

    def test_reset_from_idle_rejected(self, unit):
        """Test reset from idle is invalid."""
        with pytest.raises(InvalidStateError):
            unit.reset()

    @pytest.mark.asyncio
    async def test_record_again_after_reset(self, unit):
        """Test a fresh recording after reset starts from an empty buffer."""
        await record(unit, b"\x01\x00")
        unit.reset()

        recorded = await record(unit, b"\x02\x00")

        assert recorded.pcm == b"\x02\x00"


# ============================================================================
# Invalidate Tests
# ============================================================================

class TestInvalidate:
    """Test abandoning in-flight work."""

    @pytest.mark.asyncio
    async def test_invalidate_recording(self, unit, scheduler):
        """Test invalidate drops a partial recording and stops the loop."""
        await unit.start()
        unit.session.device.deliver(b"\x01\x00")

        unit.invalidate()

        assert unit.state == RecordingState.IDLE
        assert unit.slot.audio_chunks == []
        assert scheduler.pending_count == 0

    def test_invalidate_idle(self, unit):
        """Test invalidate on an idle slot only bumps the generation."""
        unit.invalidate()
        assert unit.state == RecordingState.IDLE
        assert unit.generation == 1
