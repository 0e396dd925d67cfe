"""Command-line entry point for VoiceScribe."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from voicescribe.audio.diagnostics import log_diagnostics_report, suggest_fixes
from voicescribe.audio.models import AudioArtifact
from voicescribe.audio.recorder import FFmpegAudioRecorder
from voicescribe.config.validators import AudioFormat, AudioRecordingOptions, QualityTier
from voicescribe.utils.exceptions import VoiceScribeError
from voicescribe.utils.logger import setup_logger

logger = setup_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voicescribe", description="Record microphone audio with FFmpeg."
    )
    parser.add_argument("--ffmpeg", help="Path to the FFmpeg executable")
    parser.add_argument("--platform", help="Override the detected platform")
    subparsers = parser.add_subparsers(dest="command", required=True)

    diagnostics_parser = subparsers.add_parser(
        "diagnostics", help="Check FFmpeg, platform and input devices"
    )
    diagnostics_parser.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )

    subparsers.add_parser("devices", help="List audio input devices")

    record_parser = subparsers.add_parser(
        "record", help="Record until Ctrl+C, silence or the duration limit"
    )
    record_parser.add_argument("--output", help="Where to write the recording")
    record_parser.add_argument(
        "--max-duration", type=float, help="Stop after this many seconds"
    )
    record_parser.add_argument(
        "--silence",
        type=float,
        help="Stop after this many seconds without audio activity",
    )
    record_parser.add_argument("--device", help="Input device id or name")
    record_parser.add_argument(
        "--format", choices=[f.value for f in AudioFormat], help="Output format"
    )
    record_parser.add_argument(
        "--quality", choices=[q.value for q in QualityTier], help="Quality tier"
    )

    test_parser = subparsers.add_parser(
        "test-recording", help="Make a short test recording"
    )
    test_parser.add_argument(
        "--duration", type=float, default=2.0, help="Seconds to record"
    )
    return parser


async def run_diagnostics_command(args: argparse.Namespace) -> int:
    report = await FFmpegAudioRecorder.run_diagnostics(args.ffmpeg, args.platform)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        log_diagnostics_report(report)
    return 0 if report.ok else 1


async def run_devices_command(args: argparse.Namespace) -> int:
    try:
        devices = await FFmpegAudioRecorder.detect_input_devices(
            args.ffmpeg, args.platform
        )
    except VoiceScribeError as e:
        logger.error(f"🛑 {e}")
        suggest_fixes(e)
        return 1

    if not devices:
        print("No audio input devices found.")
        return 1
    for device in devices:
        marker = " (default)" if device.is_default else ""
        print(f"{device.id}\t{device.name}{marker}")
    return 0


async def run_test_recording_command(args: argparse.Namespace) -> int:
    result = await FFmpegAudioRecorder.test_recording(
        args.duration, args.ffmpeg, args.platform
    )
    if result.command:
        logger.info(f"Command: {result.command}")
    if result.success:
        logger.info(
            f"✅ Test recording OK: {result.file_size} bytes in {result.duration:.1f}s"
        )
        return 0
    logger.error(f"🛑 Test recording failed: {result.error}")
    return 1


def _install_stop_handler(
    loop: asyncio.AbstractEventLoop, recorder: FFmpegAudioRecorder
) -> None:
    """Stop the recording on Ctrl+C instead of killing the process."""

    def request_stop() -> None:
        logger.info("Received interrupt signal, stopping recording...")
        recorder.stop_recording()

    try:
        loop.add_signal_handler(signal.SIGINT, request_stop)
        loop.add_signal_handler(signal.SIGTERM, request_stop)
    except NotImplementedError:
        # Windows event loops have no add_signal_handler
        signal.signal(
            signal.SIGINT, lambda sig, frame: loop.call_soon_threadsafe(request_stop)
        )


async def run_record_command(args: argparse.Namespace) -> int:
    loop = asyncio.get_running_loop()
    recorder = FFmpegAudioRecorder(platform_id=args.platform)
    outcome: "asyncio.Future[AudioArtifact]" = loop.create_future()

    def on_stopped(artifact: AudioArtifact) -> None:
        if not outcome.done():
            outcome.set_result(artifact)

    def on_error(error: VoiceScribeError) -> None:
        if not outcome.done():
            outcome.set_exception(error)

    recorder.recording_stopped.connect(on_stopped)
    recorder.error_occurred.connect(on_error)

    silence = args.silence
    try:
        options = AudioRecordingOptions.from_config(
            binary_path=args.ffmpeg,
            max_duration=args.max_duration,
            input_device=args.device,
            audio_format=args.format,
            quality=args.quality,
            silence_detection=True if silence else None,
            silence_duration=silence,
        )
    except VoiceScribeError as e:
        logger.error(f"🛑 {e}")
        return 2

    if await recorder.start_recording(options):
        logger.info("🔴 Recording... press Ctrl+C to stop")
        _install_stop_handler(loop, recorder)

    try:
        artifact = await outcome
    except VoiceScribeError as e:
        logger.error(f"🛑 {e}")
        suggest_fixes(e)
        return 1

    output = Path(args.output or artifact.file_name).expanduser()
    output.write_bytes(artifact.data)
    logger.info(
        f"✅ Saved {artifact.size} bytes ({artifact.duration:.1f}s, "
        f"{artifact.mime_type}) to {output}"
    )
    return 0


COMMANDS = {
    "diagnostics": run_diagnostics_command,
    "devices": run_devices_command,
    "record": run_record_command,
    "test-recording": run_test_recording_command,
}


def main(argv: Optional[List[str]] = None) -> None:
    """Main function to run the VoiceScribe CLI."""
    args = build_parser().parse_args(argv)

    if getattr(args, "json", False):
        # Keep stdout clean for the JSON document
        logging.disable(logging.CRITICAL)

    try:
        exit_code = asyncio.run(COMMANDS[args.command](args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user (Ctrl+C)")
        exit_code = 130
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
