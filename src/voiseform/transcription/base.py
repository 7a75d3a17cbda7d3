"""Transcription value types and the backend interface."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SourceTier(Enum):
    """Which tier produced a transcript."""
    PRIMARY = "primary"
    FALLBACK = "fallback"
    MOCK = "mock"


@dataclass(frozen=True)
class TranscriptionRequest:
    """Audio submitted for transcription. Consumed once by the pipeline."""
    audio: bytes
    mime_type: str

    @property
    def size_bytes(self) -> int:
        """Size of the audio payload."""
        return len(self.audio)


@dataclass
class TranscriptionResult:
    """Result from speech transcription."""
    text: str
    source_tier: SourceTier
    backend: str
    duration_ms: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @property
    def is_mock(self) -> bool:
        """True when the text is fabricated placeholder text."""
        return self.source_tier is SourceTier.MOCK

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "text": self.text,
            "source_tier": self.source_tier.value,
            "backend": self.backend,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp,
        }


class TranscriptionBackend(ABC):
    """One hosted speech-to-text provider."""

    #: Short name used in logs and results
    name: str = "backend"

    @abstractmethod
    async def transcribe(self, request: TranscriptionRequest) -> str:
        """
        Transcribe audio to text.

        Args:
            request: Audio bytes and MIME type

        Returns:
            Transcribed text (may be empty; the pipeline rejects empty text)

        Raises:
            Exception: Any failure; the pipeline normalizes it into TierFailure
        """
        pass

    async def close(self) -> None:
        """Release client resources."""
        return None
