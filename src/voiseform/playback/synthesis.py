"""Text-to-speech for question prompts."""

import os
from abc import ABC, abstractmethod

from openai import AsyncOpenAI, OpenAIError

from voiseform.audio.encoding import to_data_uri
from voiseform.constants import DEFAULT_TTS_MODEL, DEFAULT_TTS_VOICE, MAX_TEXT_LENGTH
from voiseform.exceptions import ConfigError, SynthesisError
from voiseform.utils.logger import get_logger

logger = get_logger(__name__)


class SpeechSynthesizer(ABC):
    """Turns question text into a playable audio URL."""

    @abstractmethod
    async def synthesize(self, text: str) -> str:
        """
        Synthesize ``text``.

        Args:
            text: Question text

        Returns:
            Playable URL (``data:audio/...;base64,...``)

        Raises:
            SynthesisError: If synthesis failed
        """
        pass


class OpenAISpeechSynthesizer(SpeechSynthesizer):
    """Speech synthesis through OpenAI's ``audio.speech`` endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_TTS_MODEL,
        voice: str = DEFAULT_TTS_VOICE
    ):
        """
        Initialize synthesizer.

        Args:
            api_key: OpenAI API key (reads OPENAI_API_KEY if not provided)
            model: TTS model
            voice: Voice name
        """
        key = api_key or os.getenv("OPENAI_API_KEY")
        if not key:
            raise ConfigError(
                "OpenAI API key is required for question audio",
                config_key="OPENAI_API_KEY"
            )

        self.model = model
        self.voice = voice
        self.client = AsyncOpenAI(api_key=key)

    async def synthesize(self, text: str) -> str:
        if not text.strip():
            raise SynthesisError("Cannot synthesize empty text")

        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=text[:MAX_TEXT_LENGTH],
                response_format="wav"
            )
            audio_data = await response.aread()
        except OpenAIError as e:
            raise SynthesisError(f"Speech synthesis failed: {e}", cause=e) from e

        if not audio_data:
            raise SynthesisError("Speech synthesis returned no audio")

        logger.debug(f"Synthesized {len(audio_data)} bytes for {len(text)} characters")
        return to_data_uri(audio_data, "audio/wav")
