"""Application-wide constants.

This module centralizes magic numbers and configuration values
to improve code maintainability and reduce hard-coded values.
"""

# ============================================================================
# Audio Capture
# ============================================================================

DEFAULT_SAMPLE_RATE = 16000  # 16kHz for speech recognition
DEFAULT_CHANNELS = 1  # Mono
DEFAULT_BLOCK_SIZE = 1024  # Frames per capture callback
SAMPLE_WIDTH_BYTES = 2  # int16 PCM

# ============================================================================
# Analyser / Visualization
# ============================================================================

DEFAULT_FFT_SIZE = 2048  # Points of time-domain data per sample()
DEFAULT_FRAME_RATE = 30  # Visualization ticks per second
DB_MIN = -60.0
DB_MAX = 0.0
WAVEFORM_WIDTH = 60  # Characters in the terminal waveform

# ============================================================================
# Transcription
# ============================================================================

DEFAULT_WHISPER_MODEL = "whisper-1"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
GEMINI_TRANSCRIBE_PROMPT = "Transcribe the following audio:"
DEFAULT_TRANSCRIPTION_TIMEOUT = 60.0  # Seconds per tier call
MOCK_TRANSCRIPTION_PREFIX = "[Mock transcription]"
RECORDING_MIME_TYPE = "audio/wav"

# ============================================================================
# Speech Synthesis
# ============================================================================

DEFAULT_TTS_MODEL = "tts-1"
DEFAULT_TTS_VOICE = "alloy"
MAX_TEXT_LENGTH = 500  # Maximum text length for TTS input
SYNTHESIS_SAMPLE_RATE = 24000  # tts-1 PCM output rate

# ============================================================================
# File Paths (defaults)
# ============================================================================

DEFAULT_OUTPUT_DIR = "./submissions"
SUBMISSIONS_LOG_NAME = "submissions.jsonl"
