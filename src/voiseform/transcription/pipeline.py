"""Tiered transcription with degradation to mock text.

Tiers are tried in a fixed order and the first one returning non-empty
text wins. Every tier error is normalized into ``TierFailure`` and the
next tier is tried immediately; nothing is retried. When every tier has
failed the pipeline either returns deterministic mock text tagged
``SourceTier.MOCK`` or, with ``allow_mock`` disabled, raises
``TranscriptionUnavailableError``.
"""

import time
from typing import TYPE_CHECKING

from voiseform.constants import MOCK_TRANSCRIPTION_PREFIX
from voiseform.exceptions import (
    ConfigError,
    TierFailure,
    TranscriptionUnavailableError,
    VoiseFormError,
)
from voiseform.transcription.base import (
    SourceTier,
    TranscriptionBackend,
    TranscriptionRequest,
    TranscriptionResult,
)
from voiseform.utils.logger import get_logger

if TYPE_CHECKING:
    from voiseform.config import TranscriptionConfig

logger = get_logger(__name__)


def mock_transcription(request: TranscriptionRequest) -> str:
    """
    Placeholder text for a request no tier could transcribe.

    The same request always yields the same text.
    """
    return f"{MOCK_TRANSCRIPTION_PREFIX} Voice response received ({request.size_bytes} bytes, {request.mime_type})"


class UnconfiguredBackend(TranscriptionBackend):
    """Tier whose backend could not be built (e.g. missing API key)."""

    def __init__(self, name: str, error: VoiseFormError):
        self.name = name
        self.error = error

    async def transcribe(self, request: TranscriptionRequest) -> str:
        raise self.error


class TranscriptionPipeline:
    """
    Ordered list of transcription tiers plus the mock fallback.

    Attributes:
        tiers: Backends in attempt order (first one is the primary)
        allow_mock: Whether to degrade to mock text when all tiers fail
        last_failures: TierFailures from the most recent call
    """

    def __init__(self, tiers: list[TranscriptionBackend], allow_mock: bool = True):
        """
        Initialize pipeline.

        Args:
            tiers: Backends in attempt order
            allow_mock: Degrade to mock text instead of raising
        """
        self.tiers = list(tiers)
        self.allow_mock = allow_mock
        self.last_failures: list[TierFailure] = []

    async def transcribe(self, audio: bytes, mime_type: str) -> TranscriptionResult:
        """
        Transcribe audio bytes.

        Args:
            audio: Encoded audio (e.g. WAV bytes)
            mime_type: MIME type of ``audio``

        Returns:
            TranscriptionResult tagged with the tier that produced it

        Raises:
            TranscriptionUnavailableError: If every tier failed and mock text is disabled
        """
        return await self.transcribe_request(TranscriptionRequest(audio=audio, mime_type=mime_type))

    async def transcribe_request(self, request: TranscriptionRequest) -> TranscriptionResult:
        """Run ``request`` through the tiers. See transcribe()."""
        failures: list[TierFailure] = []
        self.last_failures = failures

        for position, backend in enumerate(self.tiers):
            start = time.time()
            try:
                text = await self._call_tier(backend, request)
            except TierFailure as failure:
                failures.append(failure)
                logger.warning(f"Transcription tier '{backend.name}' failed: {failure.message}")
                continue

            duration_ms = (time.time() - start) * 1000
            tier = SourceTier.PRIMARY if position == 0 else SourceTier.FALLBACK
            logger.info(
                f"Transcribed {request.size_bytes} bytes via {backend.name} "
                f"({tier.value}, {duration_ms:.0f}ms)"
            )
            return TranscriptionResult(
                text=text,
                source_tier=tier,
                backend=backend.name,
                duration_ms=duration_ms,
            )

        if not self.allow_mock:
            raise TranscriptionUnavailableError(
                f"All {len(self.tiers)} transcription tiers failed",
                failures=failures
            )

        logger.warning("All transcription tiers failed, returning mock transcription")
        return TranscriptionResult(
            text=mock_transcription(request),
            source_tier=SourceTier.MOCK,
            backend="mock",
        )

    @staticmethod
    async def _call_tier(backend: TranscriptionBackend, request: TranscriptionRequest) -> str:
        """Call one backend, normalizing every failure into TierFailure."""
        try:
            text = await backend.transcribe(request)
        except TierFailure:
            raise
        except Exception as e:
            message = e.message if isinstance(e, VoiseFormError) else f"{type(e).__name__}: {e}"
            raise TierFailure(message, tier=backend.name, cause=e) from e

        if not isinstance(text, str) or not text.strip():
            raise TierFailure("Empty transcription", tier=backend.name)
        return text.strip()

    async def close(self) -> None:
        """Close every backend client; a failing close does not skip the rest."""
        for backend in self.tiers:
            try:
                await backend.close()
            except Exception as e:
                logger.warning(f"Failed to close transcription tier '{backend.name}': {e}")


def create_transcription_pipeline(config: "TranscriptionConfig") -> TranscriptionPipeline:
    """
    Build the pipeline described by ``config.tiers``.

    A tier whose backend cannot be built (missing API key) stays in its
    position and fails on every call, so tier tagging is unaffected.

    Args:
        config: Transcription configuration

    Returns:
        Configured TranscriptionPipeline

    Raises:
        ConfigError: On an unknown tier name, or the http tier without an endpoint
    """
    tiers: list[TranscriptionBackend] = []

    for name in config.tiers:
        try:
            tiers.append(_build_backend(name, config))
        except ConfigError as e:
            if name not in ("whisper", "gemini"):
                raise
            logger.warning(f"Transcription tier '{name}' unavailable: {e.message}")
            tiers.append(UnconfiguredBackend(name, e))

    return TranscriptionPipeline(tiers, allow_mock=config.allow_mock)


def _build_backend(name: str, config: "TranscriptionConfig") -> TranscriptionBackend:
    if name == "whisper":
        from voiseform.transcription.whisper import WhisperBackend
        return WhisperBackend(
            model=config.whisper_model,
            language=config.language,
            timeout=config.timeout
        )
    if name == "gemini":
        from voiseform.transcription.gemini import GeminiBackend
        return GeminiBackend(model=config.gemini_model, timeout=config.timeout)
    if name == "http":
        if not config.http_endpoint:
            raise ConfigError(
                "The http transcription tier needs an endpoint",
                config_key="transcription.http_endpoint"
            )
        from voiseform.transcription.http import HttpTranscriptionBackend
        return HttpTranscriptionBackend(config.http_endpoint, timeout=config.timeout)

    raise ConfigError(f"Unknown transcription tier: {name}", config_key="transcription.tiers")
