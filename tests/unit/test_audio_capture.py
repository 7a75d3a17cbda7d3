"""Tests for microphone capture."""

import asyncio
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from conftest import FakeCaptureBackend, FakeStream
from voiseform.audio.analyser import AnalyserTap
from voiseform.audio.capture import (
    AudioCaptureSession,
    CaptureConfig,
    CaptureDevice,
    SoundDeviceBackend,
    list_input_devices,
)
from voiseform.exceptions import DeviceUnavailableError, PermissionDeniedError


# ============================================================================
# CaptureDevice Tests
# ============================================================================

class TestCaptureDevice:
    """Test block fan-out and release."""

    def test_deliver_to_listener_in_order(self):
        """Test blocks reach the listener in arrival order."""
        device = CaptureDevice(FakeStream(), 16000, 1)
        received = []
        device.set_chunk_listener(received.append)

        device.deliver(b"\x01\x00")
        device.deliver(b"\x02\x00")

        assert received == [b"\x01\x00", b"\x02\x00"]

    def test_deliver_feeds_sinks_without_altering_chunks(self):
        """Test analyser taps see samples while the listener gets raw bytes."""
        device = CaptureDevice(FakeStream(), 16000, 1)
        received = []
        device.set_chunk_listener(received.append)
        tap = AnalyserTap(fft_size=4)
        device.add_sink(tap)

        block = np.array([16384, -16384], dtype=np.int16).tobytes()
        device.deliver(block)

        assert received == [block]
        np.testing.assert_allclose(tap.sample(), [0.0, 0.0, 0.5, -0.5])

    def test_stereo_sinks_get_first_channel(self):
        """Test multi-channel blocks are reduced to one channel for sinks."""
        device = CaptureDevice(FakeStream(), 16000, 2)
        tap = AnalyserTap(fft_size=2)
        device.add_sink(tap)

        device.deliver(np.array([16384, 0, -16384, 0], dtype=np.int16).tobytes())

        np.testing.assert_allclose(tap.sample(), [0.5, -0.5])

    def test_add_sink_once(self):
        """Test the same sink is not attached twice."""
        device = CaptureDevice(FakeStream(), 16000, 1)
        tap = AnalyserTap()
        device.add_sink(tap)
        device.add_sink(tap)
        assert device.sinks == [tap]

    def test_close_disconnects_and_releases(self):
        """Test close disconnects sinks and stops the stream."""
        stream = FakeStream()
        device = CaptureDevice(stream, 16000, 1)
        tap = AnalyserTap()
        device.add_sink(tap)

        device.close()

        assert device.closed is True
        assert tap.connected is False
        assert device.sinks == []
        assert stream.stopped == 1
        assert stream.closed == 1

    def test_close_idempotent(self):
        """Test a second close does nothing."""
        stream = FakeStream()
        device = CaptureDevice(stream, 16000, 1)
        device.close()
        device.close()
        assert stream.closed == 1

    def test_close_stream_error_logged(self):
        """Test stream errors on close do not propagate."""
        stream = MagicMock()
        stream.stop.side_effect = RuntimeError("device gone")
        device = CaptureDevice(stream, 16000, 1)

        device.close()

        assert device.closed is True
        assert device.stream is None

    def test_deliver_after_close_ignored(self):
        """Test no block is delivered after close."""
        device = CaptureDevice(FakeStream(), 16000, 1)
        received = []
        device.set_chunk_listener(received.append)
        device.close()

        device.deliver(b"\x01\x00")

        assert received == []


# ============================================================================
# AudioCaptureSession Tests
# ============================================================================

class TestAudioCaptureSession:
    """Test single-device ownership."""

    @pytest.mark.asyncio
    async def test_open_reuses_device(self, capture_session, capture_backend):
        """Test a second open returns the same device without a new request."""
        first = await capture_session.open()
        second = await capture_session.open()

        assert first is second
        assert capture_backend.open_calls == 1
        assert capture_session.is_open is True

    @pytest.mark.asyncio
    async def test_concurrent_open_shares_request(self, capture_session, capture_backend):
        """Test overlapping opens share one pending request."""
        capture_backend.gate = asyncio.Event()

        first = asyncio.create_task(capture_session.open())
        second = asyncio.create_task(capture_session.open())
        await asyncio.sleep(0)
        capture_backend.gate.set()

        devices = await asyncio.gather(first, second)

        assert devices[0] is devices[1]
        assert capture_backend.open_calls == 1

    @pytest.mark.asyncio
    async def test_permission_denied_propagates(self, capture_session, capture_backend):
        """Test permission errors surface and leave the session closed."""
        capture_backend.error = PermissionDeniedError("Microphone access was denied")

        with pytest.raises(PermissionDeniedError):
            await capture_session.open()

        assert capture_session.is_open is False

    @pytest.mark.asyncio
    async def test_open_after_failure_retries(self, capture_session, capture_backend):
        """Test a failed open does not poison later attempts."""
        capture_backend.error = DeviceUnavailableError("No usable audio input device")
        with pytest.raises(DeviceUnavailableError):
            await capture_session.open()

        capture_backend.error = None
        device = await capture_session.open()

        assert device is not None
        assert capture_backend.open_calls == 2

    @pytest.mark.asyncio
    async def test_close_releases_device(self, capture_session):
        """Test close stops the stream and clears the device."""
        device = await capture_session.open()
        stream = device.stream

        capture_session.close()

        assert capture_session.device is None
        assert device.closed is True
        assert stream.closed == 1

    @pytest.mark.asyncio
    async def test_close_idempotent(self, capture_session):
        """Test close twice is harmless."""
        device = await capture_session.open()
        stream = device.stream

        capture_session.close()
        capture_session.close()

        assert stream.closed == 1

    def test_close_without_open(self):
        """Test close on a never-opened session."""
        session = AudioCaptureSession(backend=FakeCaptureBackend())
        session.close()
        assert session.is_open is False

    @pytest.mark.asyncio
    async def test_close_while_opening(self, capture_session, capture_backend):
        """Test a device granted after close() is released, not kept."""
        capture_backend.gate = asyncio.Event()
        task = asyncio.create_task(capture_session.open())
        await asyncio.sleep(0)

        capture_session.close()
        capture_backend.gate.set()

        with pytest.raises(DeviceUnavailableError):
            await task
        assert capture_session.is_open is False
        assert capture_backend.devices[0].closed is True

    @pytest.mark.asyncio
    async def test_reopen_after_close(self, capture_session, capture_backend):
        """Test a new device is requested after close."""
        first = await capture_session.open()
        capture_session.close()
        second = await capture_session.open()

        assert first is not second
        assert capture_backend.open_calls == 2


# ============================================================================
# SoundDeviceBackend Tests
# ============================================================================

class TestSoundDeviceBackend:
    """Test the sounddevice backend with sounddevice mocked."""

    def test_map_permission_error(self):
        """Test permission-like errors map to PermissionDeniedError."""
        error = SoundDeviceBackend._map_error(
            RuntimeError("Error opening InputStream: Permission denied"), CaptureConfig()
        )
        assert isinstance(error, PermissionDeniedError)

    def test_map_other_error(self):
        """Test other errors map to DeviceUnavailableError."""
        error = SoundDeviceBackend._map_error(
            ValueError("No input device matching 'usb'"), CaptureConfig(device="usb")
        )
        assert isinstance(error, DeviceUnavailableError)
        assert error.device == "usb"

    def test_missing_sounddevice(self):
        """Test a missing PortAudio library maps to DeviceUnavailableError."""
        with patch.dict("sys.modules", {"sounddevice": None}):
            with pytest.raises(DeviceUnavailableError):
                SoundDeviceBackend._import_sounddevice()

    @pytest.mark.asyncio
    async def test_open_starts_raw_stream(self):
        """Test open builds an int16 RawInputStream and starts it."""
        sd = MagicMock()
        sd.PortAudioError = type("PortAudioError", (Exception,), {})
        stream = MagicMock()
        sd.RawInputStream.return_value = stream

        with patch.object(SoundDeviceBackend, "_import_sounddevice", return_value=sd):
            device = await SoundDeviceBackend().open(CaptureConfig(sample_rate=16000))

        kwargs = sd.RawInputStream.call_args.kwargs
        assert kwargs["dtype"] == "int16"
        assert kwargs["samplerate"] == 16000
        stream.start.assert_called_once()
        assert device.stream is stream

    @pytest.mark.asyncio
    async def test_open_maps_portaudio_error(self):
        """Test PortAudio failures become capture errors."""
        sd = MagicMock()
        sd.PortAudioError = type("PortAudioError", (Exception,), {})
        sd.query_devices.side_effect = sd.PortAudioError("Error querying device -1")

        with patch.object(SoundDeviceBackend, "_import_sounddevice", return_value=sd):
            with pytest.raises(DeviceUnavailableError):
                await SoundDeviceBackend().open(CaptureConfig())

    def test_list_input_devices(self):
        """Test only devices with input channels are listed."""
        sd = MagicMock()
        sd.query_devices.return_value = [
            {"name": "Speakers", "max_input_channels": 0, "default_samplerate": 48000.0},
            {"name": "USB Mic", "max_input_channels": 1, "default_samplerate": 44100.0},
        ]

        with patch.object(SoundDeviceBackend, "_import_sounddevice", return_value=sd):
            devices = list_input_devices()

        assert devices == [{"index": 1, "name": "USB Mic", "channels": 1, "sample_rate": 44100.0}]
