"""Primary transcription backend using the OpenAI Whisper API."""

import io
import os

from openai import AsyncOpenAI, OpenAIError

from voiseform.constants import DEFAULT_TRANSCRIPTION_TIMEOUT, DEFAULT_WHISPER_MODEL
from voiseform.exceptions import APIError, ConfigError
from voiseform.transcription.base import TranscriptionBackend, TranscriptionRequest
from voiseform.utils.logger import get_logger

logger = get_logger(__name__)

# File extensions Whisper uses to sniff the container format
_MIME_EXTENSIONS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/flac": "flac",
}


class WhisperBackend(TranscriptionBackend):
    """
    Speech-to-text through OpenAI's ``audio.transcriptions`` endpoint.

    Raises ConfigError at construction when no API key is
    available, so a pipeline built without credentials simply starts
    at the next tier.
    """

    name = "whisper"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_WHISPER_MODEL,
        language: str | None = None,
        timeout: float = DEFAULT_TRANSCRIPTION_TIMEOUT
    ):
        """
        Initialize Whisper backend.

        Args:
            api_key: OpenAI API key (reads OPENAI_API_KEY if not provided)
            model: Transcription model
            language: ISO-639-1 language hint (None to auto-detect)
            timeout: Request timeout in seconds
        """
        key = api_key or os.getenv("OPENAI_API_KEY")
        if not key:
            raise ConfigError(
                "OpenAI API key is required for Whisper transcription",
                config_key="OPENAI_API_KEY"
            )

        self.model = model
        self.language = language
        # Retries are the pipeline's job (it falls through instead)
        self.client = AsyncOpenAI(api_key=key, timeout=timeout, max_retries=0)

    async def transcribe(self, request: TranscriptionRequest) -> str:
        audio_file = io.BytesIO(request.audio)
        audio_file.name = f"recording.{_MIME_EXTENSIONS.get(request.mime_type, 'wav')}"

        kwargs = {"model": self.model, "file": audio_file}
        if self.language:
            kwargs["language"] = self.language

        try:
            response = await self.client.audio.transcriptions.create(**kwargs)
        except OpenAIError as e:
            raise APIError(
                f"Whisper transcription failed: {e}",
                status_code=getattr(e, "status_code", None),
                endpoint="audio.transcriptions",
                cause=e
            ) from e

        text = response if isinstance(response, str) else getattr(response, "text", None)
        if not isinstance(text, str):
            raise APIError("Whisper response has no text", endpoint="audio.transcriptions")
        logger.debug(f"Whisper {self.model} returned {len(text)} chars for {request.size_bytes} bytes")
        return text

    async def close(self) -> None:
        await self.client.close()
