"""Audio diagnostics and troubleshooting for VoiceScribe.

This module gathers what the recorder depends on (FFmpeg, the platform
dialect, input devices) into one report, runs short test recordings, and
logs actionable fixes for classified errors.
"""

import asyncio
import re
import time
from typing import Optional

from voicescribe.audio.availability import check_availability
from voicescribe.audio.device_manager import list_devices, resolve_device
from voicescribe.audio.encoder_command import build_capture_command
from voicescribe.audio.models import DiagnosticsReport, RecordingTestResult
from voicescribe.audio.platform_commands import (
    PlatformCommandSet,
    PlatformId,
    detect_platform,
    resolve,
)
from voicescribe.config.config_loader import config
from voicescribe.config.validators import AudioRecordingOptions
from voicescribe.utils.exceptions import (
    AudioCaptureError,
    ErrorKind,
    VoiceScribeError,
)
from voicescribe.utils.file_manager import FileManager
from voicescribe.utils.logger import setup_logger

logger = setup_logger(__name__)

TEST_RECORDING_PREFIX = "voicescribe-test-recording-"

# Oldest FFmpeg major version whose device listings are known to parse
MIN_RECOMMENDED_MAJOR_VERSION = 4

_MAJOR_VERSION = re.compile(r"^n?(\d+)\.")
_MAC_MICROPHONE_HINTS = ("built-in", "microphone")


async def run_diagnostics(
    custom_path: Optional[str] = None, platform_id: Optional[str] = None
) -> DiagnosticsReport:
    """Collect a diagnostics report. Never raises.

    Args:
        custom_path: Custom FFmpeg path to check instead of PATH.
        platform_id: OS identifier, None for the running platform.

    Returns:
        Report with availability, devices, recommendation, warnings and
        errors.
    """
    availability = await check_availability(custom_path)
    report = DiagnosticsReport(availability=availability)

    if not availability.available:
        report.errors.append(availability.error or "FFmpeg is not available")
    elif _is_outdated(availability.version):
        report.warnings.append(
            f"FFmpeg {availability.version} is old. Version "
            f"{MIN_RECOMMENDED_MAJOR_VERSION} or newer is recommended."
        )

    try:
        commands = resolve(platform_id)
    except VoiceScribeError as e:
        report.platform = str(platform_id or detect_platform())
        report.errors.append(str(e))
        return report

    report.platform = commands.platform.value
    report.commands = commands
    report.recommended_device = commands.default_device

    if not availability.available:
        return report

    try:
        report.devices = await list_devices(commands, availability.path)
    except VoiceScribeError as e:
        report.errors.append(f"Failed to detect input devices: {e}")
        return report

    report.recommended_device = resolve_device(None, report.devices, commands)

    if not report.devices:
        report.warnings.append(
            "No audio input devices detected. Check that a microphone is "
            "connected and that access is allowed."
        )
    elif commands.platform is PlatformId.MACOS and not any(
        hint in device.name.lower()
        for device in report.devices
        for hint in _MAC_MICROPHONE_HINTS
    ):
        report.warnings.append(
            "Built-in microphone not detected. You may need to grant "
            "microphone permissions to this application."
        )

    return report


def _is_outdated(version: Optional[str]) -> bool:
    if not version:
        return False
    match = _MAJOR_VERSION.match(version)
    if not match:
        # Git snapshot builds carry no release number
        return False
    return int(match.group(1)) < MIN_RECOMMENDED_MAJOR_VERSION


async def test_recording(
    duration: float = 2.0,
    custom_path: Optional[str] = None,
    platform_id: Optional[str] = None,
) -> RecordingTestResult:
    """Record a short clip from the recommended device to check the setup.

    The clip is written to a temp file that is always removed afterwards.

    Args:
        duration: Length of the test recording in seconds.
        custom_path: Custom FFmpeg path.
        platform_id: OS identifier, None for the running platform.

    Returns:
        Result with file size, wall-clock duration, command and error text.
    """
    report = await run_diagnostics(custom_path, platform_id)
    if not report.availability.available:
        return RecordingTestResult(
            success=False,
            error=report.availability.error or "FFmpeg not available",
        )
    if report.commands is None:
        return RecordingTestResult(success=False, error="; ".join(report.errors))

    commands: PlatformCommandSet = report.commands
    device = report.recommended_device or commands.default_device
    file_manager = FileManager(config.get("temp.directory"))
    timeout = duration + float(config.get("encoder.probe_timeout", 10.0))

    try:
        output_path = file_manager.allocate("wav", prefix=TEST_RECORDING_PREFIX)
    except VoiceScribeError as e:
        return RecordingTestResult(success=False, error=str(e))

    command = build_capture_command(
        report.availability.path,
        commands,
        device,
        output_path,
        AudioRecordingOptions(),
        duration_limit=duration,
    )
    command_line = " ".join(command)
    logger.info(f"🎙️ Test recording {duration}s from {device}")

    start_time = time.monotonic()
    try:
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return RecordingTestResult(
                success=False,
                duration=time.monotonic() - start_time,
                command=command_line,
                error=f"Process error: {e}",
            )

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return RecordingTestResult(
                success=False,
                duration=time.monotonic() - start_time,
                command=command_line,
                error=f"Test recording did not finish within {timeout:.0f}s",
            )

        elapsed = time.monotonic() - start_time
        file_size = output_path.stat().st_size if output_path.exists() else 0
        error_output = stderr.decode("utf-8", errors="replace").strip()

        error = None
        if process.returncode != 0:
            error = f"Exit code: {process.returncode}, stderr: {error_output}"
        elif file_size == 0:
            error = f"No audio captured. stderr: {error_output}"

        return RecordingTestResult(
            success=error is None,
            file_size=file_size,
            duration=elapsed,
            command=command_line,
            error=error,
        )
    finally:
        file_manager.discard(output_path)


def log_diagnostics_report(report: DiagnosticsReport) -> None:
    """Log a diagnostics report in a readable block."""
    availability = report.availability

    logger.info("=" * 60)
    logger.info("AUDIO DIAGNOSTICS")
    logger.info("=" * 60)
    logger.info(f"Platform: {report.platform or 'unknown'}")
    if availability.available:
        logger.info(f"FFmpeg: {availability.version} at {availability.path}")
    else:
        logger.info("FFmpeg: not available")

    if report.commands is not None:
        logger.info(f"Input format: {report.commands.input_format}")

    logger.info(f"Input devices: {len(report.devices)}")
    for device in report.devices:
        marker = " (default)" if device.is_default else ""
        logger.info(f"  {device.id}: {device.name}{marker}")
    if report.recommended_device:
        logger.info(f"Recommended device: {report.recommended_device}")

    for warning in report.warnings:
        logger.warning(f"⚠️ {warning}")
    for error in report.errors:
        logger.error(f"🛑 {error}")

    logger.info("=" * 60)


def suggest_fixes(error: BaseException) -> None:
    """Log troubleshooting steps for a recording error.

    Args:
        error: The exception that occurred.
    """
    kind = error.kind if isinstance(error, VoiceScribeError) else None

    logger.info("=" * 60)
    logger.info("SUGGESTED FIXES")
    logger.info("=" * 60)

    if kind in (ErrorKind.BINARY_NOT_FOUND, ErrorKind.BINARY_NOT_EXECUTABLE):
        logger.info("FFmpeg problem detected:")
        logger.info("  1. Install FFmpeg (brew install ffmpeg, apt install ffmpeg,")
        logger.info("     or download a build from ffmpeg.org)")
        logger.info("  2. Make sure the ffmpeg executable is on your PATH")
        logger.info("  3. Or set recording.binary_path in config.yml")

    elif kind is ErrorKind.PERMISSION_DENIED:
        logger.info("Permission error detected:")
        logger.info("  1. Grant microphone access in your system privacy settings")
        logger.info("  2. Add this application (or your terminal) to allowed apps")
        logger.info("  3. Restart the application after granting permissions")

    elif kind is ErrorKind.DEVICE_NOT_FOUND:
        logger.info("Device error detected:")
        logger.info("  1. Check if your microphone is connected")
        logger.info("  2. Run 'voicescribe devices' and pick a listed device")
        logger.info("  3. Close other applications that are using the microphone")

    elif kind is ErrorKind.NO_AUDIO_CAPTURED:
        logger.info("Nothing was recorded:")
        logger.info("  1. Hold the record button a little longer")
        logger.info("  2. Run 'voicescribe test-recording' to check the input")
        logger.info("  3. Verify microphone permissions")

    elif kind is ErrorKind.UNSUPPORTED_PLATFORM:
        logger.info("Recording is supported on macOS, Windows and Linux only.")

    elif isinstance(error, AudioCaptureError):
        logger.info("FFmpeg failure detected:")
        logger.info("  1. Run 'voicescribe diagnostics' and review the report")
        logger.info("  2. Try a different input device")
        logger.info("  3. Check the log file for FFmpeg's own messages")

    else:
        logger.info("General troubleshooting steps:")
        logger.info("  1. Restart the application")
        logger.info("  2. Check your audio device connection")
        logger.info("  3. Verify microphone permissions")

    logger.info("=" * 60)
