"""Configuration and question-list loading.

Settings live in a YAML file; every section is optional. API keys are
never read from the file: backends take them from OPENAI_API_KEY and
GOOGLE_API_KEY / GEMINI_API_KEY.

Example config::

    audio:
      sample_rate: 16000
      device: null
    transcription:
      tiers: [whisper, gemini]
      allow_mock: true
    output_dir: ./submissions
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from voiseform.audio.capture import CaptureConfig
from voiseform.constants import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_CHANNELS,
    DEFAULT_FFT_SIZE,
    DEFAULT_FRAME_RATE,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_TRANSCRIPTION_TIMEOUT,
    DEFAULT_TTS_MODEL,
    DEFAULT_TTS_VOICE,
    DEFAULT_WHISPER_MODEL,
)
from voiseform.exceptions import ConfigError

KNOWN_TIERS = ("whisper", "gemini", "http")


class AudioSettings(BaseModel):
    """Microphone capture settings."""

    sample_rate: int = Field(default=DEFAULT_SAMPLE_RATE, gt=0)
    channels: int = Field(default=DEFAULT_CHANNELS, ge=1, le=2)
    block_size: int = Field(default=DEFAULT_BLOCK_SIZE, gt=0)
    device: int | str | None = Field(default=None, description="Input device index or name")

    def to_capture_config(self) -> CaptureConfig:
        """Convert to the capture layer's dataclass."""
        return CaptureConfig(
            sample_rate=self.sample_rate,
            channels=self.channels,
            block_size=self.block_size,
            device=self.device,
        )


class AnalyserSettings(BaseModel):
    """Live visualization settings."""

    fft_size: int = Field(default=DEFAULT_FFT_SIZE, ge=32, le=32768)
    fps: float = Field(default=DEFAULT_FRAME_RATE, gt=0, le=120)

    @field_validator('fft_size')
    @classmethod
    def validate_fft_size(cls, v):
        """FFT size must be a power of two."""
        if v & (v - 1):
            raise ValueError("fft_size must be a power of two")
        return v


class TranscriptionConfig(BaseModel):
    """Transcription tiers and backend options."""

    tiers: list[str] = Field(default_factory=lambda: ["whisper", "gemini"], min_length=1)
    whisper_model: str = DEFAULT_WHISPER_MODEL
    gemini_model: str = DEFAULT_GEMINI_MODEL
    http_endpoint: str | None = None
    language: str | None = None
    allow_mock: bool = True
    timeout: float = Field(default=DEFAULT_TRANSCRIPTION_TIMEOUT, gt=0)

    @field_validator('tiers')
    @classmethod
    def validate_tiers(cls, v):
        """Tiers must be known and unique."""
        for name in v:
            if name not in KNOWN_TIERS:
                raise ValueError(f"Unknown tier '{name}' (expected one of {KNOWN_TIERS})")
        if len(set(v)) != len(v):
            raise ValueError("Tiers must not repeat")
        return v


class SynthesisSettings(BaseModel):
    """Question text-to-speech settings."""

    enabled: bool = True
    model: str = DEFAULT_TTS_MODEL
    voice: str = DEFAULT_TTS_VOICE


class VoiseFormConfig(BaseModel):
    """Top-level configuration."""

    audio: AudioSettings = Field(default_factory=AudioSettings)
    analyser: AnalyserSettings = Field(default_factory=AnalyserSettings)
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    synthesis: SynthesisSettings = Field(default_factory=SynthesisSettings)
    output_dir: str = DEFAULT_OUTPUT_DIR
    log_level: str = "INFO"

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level


class QuestionItem(BaseModel):
    """One question, optionally with previously generated audio."""

    text: str = Field(..., min_length=1)
    audio_url: str | None = None


def _read_yaml(path: str | Path) -> Any:
    path = Path(path)
    try:
        with open(path, encoding='utf-8') as f:
            return yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"File not found: {path}", config_file=str(path), cause=e) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed YAML in {path}", config_file=str(path), cause=e) from e


def load_config(path: str | Path | None = None) -> VoiseFormConfig:
    """
    Load configuration from a YAML file.

    Args:
        path: Config file path (None for defaults)

    Returns:
        Validated VoiseFormConfig

    Raises:
        ConfigError: If the file is missing, malformed or invalid
    """
    if path is None:
        return VoiseFormConfig()

    data = _read_yaml(path) or {}
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping", config_file=str(path))

    try:
        return VoiseFormConfig.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigError(
            f"Invalid configuration: {first.get('msg')}",
            config_key=key or None,
            config_file=str(path),
            cause=e
        ) from e


def load_questions(path: str | Path) -> list[QuestionItem]:
    """
    Load the ordered question list from YAML or JSON.

    Accepted shapes: a list of strings, a list of ``{text, audio_url}``
    mappings, or either of those under a top-level ``questions`` key.

    Args:
        path: Questions file path

    Returns:
        Questions in order

    Raises:
        ConfigError: If the file is missing, malformed or has no questions
    """
    data = _read_yaml(path)
    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list) or not data:
        raise ConfigError("Questions file must contain a non-empty list", config_file=str(path))

    questions = []
    for i, entry in enumerate(data):
        raw = {"text": entry} if isinstance(entry, str) else entry
        try:
            questions.append(QuestionItem.model_validate(raw))
        except ValidationError as e:
            raise ConfigError(
                f"Invalid question at position {i}",
                config_key=f"questions[{i}]",
                config_file=str(path),
                cause=e
            ) from e
    return questions
