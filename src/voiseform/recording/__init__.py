"""Per-question recording: slots, the recorder and submission hand-off."""

from voiseform.recording.recorder import MultiSlotRecorder, Notice, NoticeCallback, NoticeKind
from voiseform.recording.sink import JsonlSubmissionSink, SubmissionRecord, SubmissionSink
from voiseform.recording.unit import RecordedAudio, RecordingSlot, RecordingState, RecordingUnit

__all__ = [
    "MultiSlotRecorder",
    "Notice",
    "NoticeCallback",
    "NoticeKind",
    "RecordedAudio",
    "RecordingSlot",
    "RecordingState",
    "RecordingUnit",
    "SubmissionRecord",
    "SubmissionSink",
    "JsonlSubmissionSink",
]
