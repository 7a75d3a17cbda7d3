"""VoiseForm: spoken answers to form questions.

Microphone capture with live level feedback, per-question recording
slots, tiered speech-to-text and spoken question prompts.
"""

__version__ = "0.1.0"
