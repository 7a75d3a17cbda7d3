"""Hand-off of submitted answers to persistence."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from voiseform.constants import SUBMISSIONS_LOG_NAME
from voiseform.exceptions import PersistenceError
from voiseform.recording.unit import RecordedAudio
from voiseform.transcription.base import SourceTier
from voiseform.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SubmissionRecord:
    """One submitted answer."""
    slot_index: int
    question: str
    transcription: str
    source_tier: SourceTier
    audio: RecordedAudio
    submitted_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (audio summarized, not embedded)."""
        return {
            "slot_index": self.slot_index,
            "question": self.question,
            "transcription": self.transcription,
            "source_tier": self.source_tier.value,
            "size_bytes": self.audio.size_bytes,
            "duration_ms": round(self.audio.duration_ms, 1),
            "sample_rate": self.audio.sample_rate,
            "submitted_at": self.submitted_at.isoformat(),
        }


class SubmissionSink(ABC):
    """Receiver of submitted answers (database, file, API...)."""

    @abstractmethod
    async def persist(self, record: SubmissionRecord) -> None:
        """
        Store one submission.

        Raises:
            PersistenceError: If the record could not be stored
        """
        pass


class JsonlSubmissionSink(SubmissionSink):
    """
    Writes each answer's audio as a WAV file and appends its metadata
    to a JSONL log in the same directory.
    """

    def __init__(self, output_dir: str | Path):
        """
        Initialize sink.

        Args:
            output_dir: Directory for WAV files and the submissions log
        """
        self.output_dir = Path(output_dir)
        self.log_path = self.output_dir / SUBMISSIONS_LOG_NAME

    def _audio_path(self, record: SubmissionRecord) -> Path:
        """Unused WAV path for ``record``; earlier answers are never overwritten."""
        stem = f"slot_{record.slot_index}_{record.submitted_at.strftime('%Y%m%d_%H%M%S_%f')}"
        path = self.output_dir / f"{stem}.wav"
        suffix = 1
        while path.exists():
            path = self.output_dir / f"{stem}_{suffix}.wav"
            suffix += 1
        return path

    async def persist(self, record: SubmissionRecord) -> None:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            audio_path = self._audio_path(record)
            entry = record.to_dict()
            entry["audio_file"] = audio_path.name

            with open(audio_path, 'xb') as f:
                f.write(record.audio.to_wav())
            with open(self.log_path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(entry, ensure_ascii=False) + '\n')
        except OSError as e:
            raise PersistenceError(
                f"Failed to persist submission for slot {record.slot_index}",
                context={"output_dir": str(self.output_dir)},
                cause=e
            ) from e

        logger.info(f"Saved slot {record.slot_index} answer to {audio_path}")
