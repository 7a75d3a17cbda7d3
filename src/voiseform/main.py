#!/usr/bin/env python3
"""Command-line entry point for VoiseForm voice answers."""

import argparse
import asyncio
import sys
from pathlib import Path

from voiseform.audio.analyser import AnalyserFrame, render_waveform
from voiseform.audio.capture import AudioCaptureSession, SoundDeviceBackend, list_input_devices
from voiseform.audio.scheduler import AsyncioFrameScheduler
from voiseform.config import QuestionItem, VoiseFormConfig, load_config, load_questions
from voiseform.exceptions import CaptureError, ConfigError, VoiseFormError
from voiseform.playback.output import SoundDeviceOutput
from voiseform.playback.question_audio import QuestionAudioPlayback
from voiseform.playback.synthesis import OpenAISpeechSynthesizer
from voiseform.recording.recorder import MultiSlotRecorder, Notice
from voiseform.recording.sink import JsonlSubmissionSink
from voiseform.recording.unit import RecordingState
from voiseform.transcription.pipeline import create_transcription_pipeline
from voiseform.utils.logger import get_logger, set_log_level
from voiseform.utils.time import format_duration

logger = get_logger(__name__)

HELP_TEXT = (
    "Commands: [Enter] start/stop  s submit  r reset  l listen  "
    "n next  p previous  g <num> go to  ? status  q quit"
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="voiseform",
        description="Record spoken answers to form questions"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    record = subparsers.add_parser("record", help="Answer questions by voice")
    record.add_argument(
        "--questions",
        type=str,
        required=True,
        help="Path to questions file (YAML or JSON)"
    )
    record.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config file"
    )
    record.add_argument(
        "--out",
        type=str,
        default=None,
        help="Output directory for submitted answers (overrides config)"
    )
    record.add_argument(
        "--no-playback",
        action="store_true",
        help="Disable spoken question audio"
    )
    record.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level (overrides config)"
    )

    subparsers.add_parser("devices", help="List audio input devices")

    return parser.parse_args(argv)


class TerminalSession:
    """
    Interactive terminal front end for a MultiSlotRecorder.

    The session's ``on_notice`` and ``on_draw`` are handed to the
    recorder at construction, so the recorder is attached afterwards.
    """

    def __init__(self):
        self.recorder: MultiSlotRecorder | None = None
        self.playback: QuestionAudioPlayback | None = None
        self._drawing = False

    def on_notice(self, notice: Notice) -> None:
        """Print a notice on its own line."""
        self._end_draw_line()
        marker = "!!" if notice.is_error else "!"
        print(f"{marker} {notice.message}")

    def on_draw(self, frame: AnalyserFrame) -> None:
        """Redraw the live waveform line."""
        waveform = render_waveform(frame.samples)
        sys.stdout.write(
            f"\r[{waveform}] {frame.rms_db:6.1f} dB  {format_duration(frame.elapsed_ms)} "
        )
        sys.stdout.flush()
        self._drawing = True

    def _end_draw_line(self) -> None:
        if self._drawing:
            sys.stdout.write("\n")
            self._drawing = False

    def show_current(self) -> None:
        """Print the current question and its state."""
        index = self.recorder.current_index
        slot = self.recorder.slots[index]
        total = len(self.recorder.slots)
        print(f"\nQuestion {index + 1}/{total}: {slot.question}")
        print(f"  state: {slot.state.value}")
        if slot.transcription:
            print(f"  answer ({slot.source_tier.value}): {slot.transcription}")

    def show_status(self) -> None:
        """Print a one-line summary per slot."""
        for slot in self.recorder.slots:
            marker = ">" if slot.slot_index == self.recorder.current_index else " "
            text = f" - {slot.transcription}" if slot.transcription else ""
            print(f"{marker} {slot.slot_index + 1}. [{slot.state.value}]{text}")
        progress = self.recorder.progress()
        print(f"{progress['submitted']}/{progress['total']} submitted")

    async def toggle_recording(self) -> None:
        """Start or stop the current slot."""
        index = self.recorder.current_index
        if self.recorder.active_index == index:
            recorded = self.recorder.request_stop(index)
            self._end_draw_line()
            if recorded is not None:
                print(f"Recorded {format_duration(recorded.duration_ms)}. Press 's' to submit.")
            return

        if self.playback is not None:
            self.playback.stop_all()
        if await self.recorder.request_start(index):
            print("Recording... press Enter to stop.")

    async def submit(self) -> None:
        """Submit the current slot."""
        index = self.recorder.current_index
        if self.recorder.slots[index].state in (RecordingState.STOPPED, RecordingState.ERROR):
            print("Transcribing...")
        result = await self.recorder.submit(index)
        if result is not None:
            print(f"Answer: {result.text}")
            if self.recorder.all_submitted:
                print("All questions answered. Press 'q' to finish.")
            elif self.recorder.next():
                self.show_current()

    async def listen(self) -> None:
        """Play the current question."""
        if self.playback is None:
            print("Question audio is disabled.")
            return
        index = self.recorder.current_index
        if self.playback.is_playing(index):
            self.playback.stop(index)
        elif not await self.playback.play(index):
            print("Question audio is unavailable.")

    async def handle(self, command: str) -> bool:
        """
        Run one command.

        Returns:
            False when the session should end
        """
        command = command.strip().lower()

        if command == "":
            await self.toggle_recording()
        elif command == "s":
            await self.submit()
        elif command == "r":
            if self.recorder.reset(self.recorder.current_index):
                print("Cleared.")
        elif command == "l":
            await self.listen()
        elif command == "n":
            if self.recorder.next():
                self.show_current()
        elif command == "p":
            if self.recorder.previous():
                self.show_current()
        elif command.startswith("g"):
            target = command[1:].strip()
            if target.isdigit() and self.recorder.go_to(int(target) - 1):
                self.show_current()
        elif command == "?":
            self.show_status()
        elif command == "q":
            return False
        else:
            print(HELP_TEXT)
        return True

    async def run(self) -> None:
        """Read commands until quit or end of input."""
        loop = asyncio.get_running_loop()
        print(HELP_TEXT)
        self.show_current()

        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            if not await self.handle(line):
                break


def build_session(
    config: VoiseFormConfig,
    questions: list[QuestionItem],
    output_dir: str,
    playback_enabled: bool = True
) -> TerminalSession:
    """
    Wire the recorder, pipeline, sink and playback from configuration.

    Args:
        config: Loaded configuration
        questions: Ordered questions
        output_dir: Directory for submitted answers
        playback_enabled: Whether to set up question audio

    Returns:
        TerminalSession ready to run
    """
    capture_session = AudioCaptureSession(SoundDeviceBackend(), config.audio.to_capture_config())
    pipeline = create_transcription_pipeline(config.transcription)
    sink = JsonlSubmissionSink(Path(output_dir))

    session = TerminalSession()
    recorder = MultiSlotRecorder(
        [q.text for q in questions],
        capture_session,
        pipeline,
        sink=sink,
        scheduler=AsyncioFrameScheduler(fps=config.analyser.fps),
        on_notice=session.on_notice,
        on_draw=session.on_draw,
        question_audio_urls=[q.audio_url for q in questions],
        fft_size=config.analyser.fft_size,
    )
    session.recorder = recorder

    if playback_enabled:
        synthesizer = None
        if config.synthesis.enabled:
            try:
                synthesizer = OpenAISpeechSynthesizer(
                    model=config.synthesis.model,
                    voice=config.synthesis.voice
                )
            except ConfigError as e:
                logger.warning(f"Question audio synthesis disabled: {e.message}")
        session.playback = QuestionAudioPlayback(recorder.slots, SoundDeviceOutput(), synthesizer)

    return session


async def run_record(args: argparse.Namespace) -> int:
    """Run the interactive recording session."""
    config = load_config(args.config)
    set_log_level(args.log_level or config.log_level)
    questions = load_questions(args.questions)
    output_dir = args.out or config.output_dir

    session = build_session(config, questions, output_dir, playback_enabled=not args.no_playback)
    try:
        await session.run()
    finally:
        if session.playback is not None:
            session.playback.stop_all()
        await session.recorder.close()
        await session.recorder.pipeline.close()

    progress = session.recorder.progress()
    print(f"\n{progress['submitted']}/{progress['total']} answers saved to {output_dir}")
    return 0


def run_devices() -> int:
    """Print available input devices."""
    try:
        devices = list_input_devices()
    except CaptureError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if not devices:
        print("No input devices found")
        return 1

    for device in devices:
        print(
            f"{device['index']:3d}  {device['name']}  "
            f"({device['channels']} ch, {device['sample_rate']:.0f} Hz)"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.command == "devices":
        return run_devices()

    try:
        return asyncio.run(run_record(args))
    except VoiseFormError as e:
        logger.error(str(e))
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
