"""Audio input module for voice answers.

This module provides:
- Microphone capture through a single owned capture session
- Analyser taps and the per-frame visualization loop
- PCM/WAV encoding helpers
"""

from voiseform.audio.analyser import (
    AnalyserFeed,
    AnalyserFrame,
    AnalyserTap,
    compute_levels,
    render_waveform,
)
from voiseform.audio.capture import (
    AudioCaptureSession,
    CaptureBackend,
    CaptureConfig,
    CaptureDevice,
    SoundDeviceBackend,
    list_input_devices,
)
from voiseform.audio.encoding import decode_wav, parse_data_uri, pcm_to_wav, to_data_uri
from voiseform.audio.scheduler import AsyncioFrameScheduler, FrameScheduler

__all__ = [
    # Capture
    "AudioCaptureSession",
    "CaptureBackend",
    "CaptureConfig",
    "CaptureDevice",
    "SoundDeviceBackend",
    "list_input_devices",
    # Analyser
    "AnalyserFeed",
    "AnalyserFrame",
    "AnalyserTap",
    "compute_levels",
    "render_waveform",
    # Scheduling
    "FrameScheduler",
    "AsyncioFrameScheduler",
    # Encoding
    "pcm_to_wav",
    "decode_wav",
    "to_data_uri",
    "parse_data_uri",
]
