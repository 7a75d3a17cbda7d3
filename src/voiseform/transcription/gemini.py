"""Secondary transcription backend using Google Gemini."""

import os

import google.generativeai as genai

from voiseform.constants import (
    DEFAULT_GEMINI_MODEL,
    DEFAULT_TRANSCRIPTION_TIMEOUT,
    GEMINI_TRANSCRIBE_PROMPT,
)
from voiseform.exceptions import APIError, ConfigError
from voiseform.transcription.base import TranscriptionBackend, TranscriptionRequest
from voiseform.utils.logger import get_logger

logger = get_logger(__name__)


class GeminiBackend(TranscriptionBackend):
    """
    Speech-to-text by prompting a Gemini model with inline audio.

    The audio is sent as an inline data part next to a fixed
    instruction prompt; the response text is the transcript.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_GEMINI_MODEL,
        prompt: str = GEMINI_TRANSCRIBE_PROMPT,
        timeout: float = DEFAULT_TRANSCRIPTION_TIMEOUT
    ):
        """
        Initialize Gemini backend.

        Args:
            api_key: Google API key (reads GOOGLE_API_KEY or GEMINI_API_KEY)
            model: Gemini model name
            prompt: Instruction sent with the audio
            timeout: Request timeout in seconds
        """
        key = api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        if not key:
            raise ConfigError(
                "Google API key is required for Gemini transcription",
                config_key="GOOGLE_API_KEY"
            )

        genai.configure(api_key=key)
        self.model_name = model
        self.prompt = prompt
        self.timeout = timeout
        self.model = genai.GenerativeModel(model)

    async def transcribe(self, request: TranscriptionRequest) -> str:
        audio_part = {
            "mime_type": request.mime_type,
            "data": request.audio,
        }

        try:
            response = await self.model.generate_content_async(
                [self.prompt, audio_part],
                request_options={"timeout": self.timeout}
            )
            # .text raises ValueError when the response was blocked or has no parts
            text = response.text
        except ValueError as e:
            raise APIError(
                f"Gemini returned no text: {e}",
                endpoint=f"models/{self.model_name}:generateContent",
                cause=e
            ) from e
        except Exception as e:
            raise APIError(
                f"Gemini transcription failed: {e}",
                status_code=getattr(e, "code", None),
                endpoint=f"models/{self.model_name}:generateContent",
                cause=e
            ) from e

        logger.debug(f"Gemini {self.model_name} returned {len(text)} chars for {request.size_bytes} bytes")
        return text
