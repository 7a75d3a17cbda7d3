"""Speech-to-text for submitted voice answers.

Backends are imported lazily by create_transcription_pipeline so that a
missing provider SDK only disables its own tier.
"""

from voiseform.transcription.base import (
    SourceTier,
    TranscriptionBackend,
    TranscriptionRequest,
    TranscriptionResult,
)
from voiseform.transcription.pipeline import (
    TranscriptionPipeline,
    UnconfiguredBackend,
    create_transcription_pipeline,
    mock_transcription,
)

__all__ = [
    "SourceTier",
    "TranscriptionBackend",
    "TranscriptionRequest",
    "TranscriptionResult",
    "TranscriptionPipeline",
    "UnconfiguredBackend",
    "create_transcription_pipeline",
    "mock_transcription",
]
