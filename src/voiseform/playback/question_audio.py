"""Spoken question prompts with exclusive playback.

At most one question plays at a time. Each ``play()`` takes a new
request token; when synthesis or loading finishes, the request only
starts playback if its token is still current, so a slow synthesis can
never start audio after the user pressed stop or played another slot.
"""

from collections.abc import Sequence
from functools import partial

from voiseform.exceptions import PlaybackError, VoiseFormError
from voiseform.playback.output import AudioOutput
from voiseform.playback.synthesis import SpeechSynthesizer
from voiseform.recording.unit import RecordingSlot
from voiseform.utils.logger import get_logger

logger = get_logger(__name__)


class QuestionAudioPlayback:
    """
    Question audio for a recorder's slots.

    Synthesized audio is cached on each slot's ``question_audio_url``.

    Attributes:
        slots: Slots whose questions can be played
        synthesizer: Text-to-speech provider (None to only play cached audio)
        output: The single audio output
    """

    def __init__(
        self,
        slots: Sequence[RecordingSlot],
        output: AudioOutput,
        synthesizer: SpeechSynthesizer | None = None
    ):
        self.slots = list(slots)
        self.output = output
        self.synthesizer = synthesizer

        self._token = 0
        self._pending_index: int | None = None
        self._playing_index: int | None = None

    @property
    def playing_index(self) -> int | None:
        """Slot whose question is playing, or None."""
        return self._playing_index

    def is_playing(self, index: int) -> bool:
        """Whether slot ``index`` is playing."""
        return self._playing_index == index

    async def play(self, index: int) -> bool:
        """
        Play the question of slot ``index``, stopping any other question first.

        Args:
            index: Slot index

        Returns:
            True if playback started
        """
        if not 0 <= index < len(self.slots):
            logger.warning(f"No question {index} to play")
            return False

        self._token += 1
        token = self._token
        if self._playing_index is not None:
            self._halt()
        self._pending_index = index

        slot = self.slots[index]
        url = slot.question_audio_url
        if url is None:
            url = await self._synthesize(slot)
            if url is None:
                self._clear_pending(token)
                return False

        if token != self._token:
            logger.debug(f"Question {index} playback superseded during synthesis")
            return False

        try:
            clip = await self.output.load(url)
        except PlaybackError as e:
            logger.error(f"Cannot play question {index}: {e}")
            self._clear_pending(token)
            return False

        if token != self._token:
            logger.debug(f"Question {index} playback superseded while loading")
            return False

        try:
            self.output.start(clip, on_finished=partial(self._on_finished, token))
        except PlaybackError as e:
            logger.error(f"Cannot play question {index}: {e}")
            self._clear_pending(token)
            return False

        self._pending_index = None
        self._playing_index = index
        return True

    async def _synthesize(self, slot: RecordingSlot) -> str | None:
        if self.synthesizer is None:
            logger.warning(f"No question audio for slot {slot.slot_index} and no synthesizer configured")
            return None

        try:
            url = await self.synthesizer.synthesize(slot.question)
        except VoiseFormError as e:
            logger.error(f"Question audio synthesis failed for slot {slot.slot_index}: {e}")
            return None

        # Cache even if this request was superseded
        slot.question_audio_url = url
        return url

    def _clear_pending(self, token: int) -> None:
        if token == self._token:
            self._pending_index = None

    def _on_finished(self, token: int) -> None:
        if token == self._token:
            self._playing_index = None

    def _halt(self) -> None:
        self.output.stop()
        self._playing_index = None

    def stop(self, index: int) -> None:
        """Stop slot ``index`` (playing or pending). Idempotent."""
        if self._pending_index == index:
            self._token += 1
            self._pending_index = None
        if self._playing_index == index:
            self._token += 1
            self._halt()

    def stop_all(self) -> None:
        """Stop whatever is playing or pending."""
        self._token += 1
        self._pending_index = None
        self._halt()
