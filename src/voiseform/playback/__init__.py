"""Question audio: synthesis, output and exclusive playback."""

from voiseform.playback.output import AudioOutput, SoundDeviceOutput
from voiseform.playback.question_audio import QuestionAudioPlayback
from voiseform.playback.synthesis import OpenAISpeechSynthesizer, SpeechSynthesizer

__all__ = [
    "AudioOutput",
    "SoundDeviceOutput",
    "QuestionAudioPlayback",
    "SpeechSynthesizer",
    "OpenAISpeechSynthesizer",
]
