"""FFmpeg-backed audio recording for VoiceScribe.

The recorder owns at most one encoder process at a time. Progress is inferred
from the encoder's stderr, which also drives silence detection, and every
session ends through a single stop path that reads and removes the temp file.
"""

import asyncio
import codecs
import re
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Deque, List, Optional

from PySide6.QtCore import QObject, Signal

from voicescribe.audio import availability, diagnostics, permissions
from voicescribe.audio.device_manager import list_devices, resolve_device
from voicescribe.audio.encoder_command import (
    build_capture_command,
    file_extension_for,
    mime_type_for,
    supported_mime_types,
)
from voicescribe.audio.models import (
    AudioArtifact,
    AvailabilityResult,
    DeviceDescriptor,
    DiagnosticsReport,
    MicrophonePermission,
    RecordingTestResult,
    StopReason,
)
from voicescribe.audio.output_classifier import LineKind, classify_line
from voicescribe.audio.platform_commands import resolve
from voicescribe.config.config_loader import config
from voicescribe.config.validators import AudioRecordingOptions
from voicescribe.utils.exceptions import (
    AlreadyRecordingError,
    NoAudioCapturedError,
    ProcessExitedUnexpectedlyError,
    ProcessSpawnError,
    VoiceScribeError,
)
from voicescribe.utils.file_manager import FileManager
from voicescribe.utils.logger import setup_logger

logger = setup_logger(__name__)

# Presses shorter than this produce the "too short" message
MIN_RECORDING_SECONDS = 0.5

STDERR_TAIL_LINES = 10

# Smaller files hold a container header and no audio
MIN_OUTPUT_BYTES = 1000

_LINE_BREAK = re.compile(r"[\r\n]+")


class RecordingState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RECORDING = "recording"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class RecordingSession:
    """Mutable bookkeeping for the single active recording."""

    options: AudioRecordingOptions
    file_manager: FileManager
    lines: "asyncio.Queue[Optional[str]]" = field(default_factory=asyncio.Queue)
    released: asyncio.Event = field(default_factory=asyncio.Event)
    started_at: float = 0.0
    stopped_at: float = 0.0
    last_activity: float = 0.0
    captured_bytes: int = 0
    process: Optional[asyncio.subprocess.Process] = None
    output_path: Optional[Path] = None
    command: List[str] = field(default_factory=list)
    stop_reason: Optional[StopReason] = None
    pending_stop: Optional[StopReason] = None
    error: Optional[VoiceScribeError] = None
    stderr_tail: Deque[str] = field(
        default_factory=lambda: deque(maxlen=STDERR_TAIL_LINES)
    )
    reader_task: Optional[asyncio.Task] = None
    consumer_task: Optional[asyncio.Task] = None
    silence_task: Optional[asyncio.Task] = None
    duration_task: Optional[asyncio.Task] = None
    finalize_task: Optional[asyncio.Task] = None


class FFmpegAudioRecorder(QObject):
    """Records microphone audio by supervising an FFmpeg child process."""

    recording_started = Signal()
    # AudioArtifact
    recording_stopped = Signal(object)
    # VoiceScribeError
    error_occurred = Signal(object)

    def __init__(
        self,
        platform_id: Optional[str] = None,
        stop_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        file_manager: Optional[FileManager] = None,
    ) -> None:
        """Initialize the recorder.

        Args:
            platform_id: OS identifier, None for the running platform.
            stop_timeout: Seconds to wait after terminate before killing the
                encoder (defaults to ``encoder.stop_timeout``).
            clock: Monotonic clock used for activity and duration tracking.
            file_manager: Temp file manager (defaults to ``temp.directory``).
        """
        super().__init__()
        self.platform_id = platform_id
        if stop_timeout is None:
            stop_timeout = config.get("encoder.stop_timeout", 5.0)
        self.stop_timeout = float(stop_timeout)
        self._clock = clock
        self.file_manager = file_manager or FileManager(config.get("temp.directory"))

        self._state = RecordingState.IDLE
        self._session: Optional[RecordingSession] = None

        self.file_manager.cleanup_old_files(
            float(config.get("temp.retention_hours", 24.0))
        )
        logger.info(f"FFmpegAudioRecorder initialized (stop timeout {self.stop_timeout}s)")

    # -- state -----------------------------------------------------------

    def get_state(self) -> RecordingState:
        return self._state

    def get_is_recording(self) -> bool:
        """True while a session is starting or capturing."""
        return self._state in (RecordingState.STARTING, RecordingState.RECORDING)

    def get_recording_duration(self) -> float:
        """Seconds since the encoder started, 0.0 when not recording."""
        session = self._session
        if session is None or not session.started_at:
            return 0.0
        end = session.stopped_at or self._clock()
        return max(0.0, end - session.started_at)

    def get_supported_mime_types(self) -> List[str]:
        return supported_mime_types()

    async def wait_until_idle(self) -> None:
        """Wait until the current session, if any, has been cleaned up."""
        session = self._session
        if session is not None:
            await session.released.wait()

    # -- start -----------------------------------------------------------

    async def start_recording(
        self, options: Optional[AudioRecordingOptions] = None
    ) -> bool:
        """Start a recording session.

        Failures are reported through ``error_occurred``; nothing is raised.

        Args:
            options: Recording options, None to build them from the config.

        Returns:
            True if the encoder is running, False otherwise.
        """
        if self._state is not RecordingState.IDLE:
            logger.warning("⚠️ Recording already in progress")
            self.error_occurred.emit(AlreadyRecordingError())
            return False

        try:
            if options is None:
                options = AudioRecordingOptions.from_config()
        except VoiceScribeError as e:
            logger.error(f"🛑 Cannot start recording: {e}")
            self.error_occurred.emit(e)
            return False

        file_manager = self.file_manager
        if options.output_directory:
            file_manager = FileManager(options.output_directory)

        session = RecordingSession(options=options, file_manager=file_manager)
        self._session = session
        self._state = RecordingState.STARTING
        logger.info("🎤 Starting recording...")

        try:
            await self._launch(session)
        except VoiceScribeError as e:
            await self._abort_start(session)
            logger.error(f"🛑 Failed to start recording: {e}")
            self.error_occurred.emit(e)
            return False
        except asyncio.CancelledError:
            await self._abort_start(session)
            raise
        except Exception as e:
            logger.exception("🛑 Unexpected error while starting FFmpeg")
            await self._abort_start(session)
            error = ProcessSpawnError(f"Failed to start recording: {e}")
            self.error_occurred.emit(error)
            return False

        now = self._clock()
        session.started_at = now
        session.last_activity = now
        session.reader_task = asyncio.create_task(self._read_diagnostics(session))
        session.consumer_task = asyncio.create_task(
            self._consume_diagnostics(session)
        )
        self._state = RecordingState.RECORDING
        logger.info(f"🔴 Recording started (pid {session.process.pid})")
        self.recording_started.emit()

        self._arm_guards(session)
        if session.pending_stop is not None:
            logger.debug("Stop was requested while starting, stopping now")
            self.stop_recording(session.pending_stop)
        return True

    async def _launch(self, session: RecordingSession) -> None:
        options = session.options
        commands = resolve(self.platform_id)

        probe = await availability.check_availability(options.binary_path)
        probe.raise_for_error()

        devices = await list_devices(commands, probe.path)
        device = resolve_device(options.input_device, devices, commands)

        session.output_path = session.file_manager.allocate(
            file_extension_for(options.audio_format)
        )
        session.command = build_capture_command(
            probe.path, commands, device, session.output_path, options
        )
        logger.debug(f"FFmpeg command: {' '.join(session.command)}")

        try:
            session.process = await asyncio.create_subprocess_exec(
                *session.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessSpawnError(f"Failed to start FFmpeg: {e}") from e

    async def _abort_start(self, session: RecordingSession) -> None:
        process = session.process
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        self._release(session)

    def _arm_guards(self, session: RecordingSession) -> None:
        options = session.options
        if options.silence_detection:
            session.silence_task = asyncio.create_task(self._watch_silence(session))
            logger.debug(
                f"Silence detection armed: {options.silence_duration}s threshold, "
                f"checked every {options.effective_silence_check_interval}s"
            )
        if options.max_duration:
            session.duration_task = asyncio.create_task(
                self._enforce_max_duration(session)
            )
            logger.debug(f"Max duration armed: {options.max_duration}s")

    # -- stop ------------------------------------------------------------

    def stop_recording(
        self, reason: StopReason = StopReason.MANUAL
    ) -> Optional[asyncio.Task]:
        """Stop the current recording.

        Safe to call repeatedly and from any state. A stop requested while
        the encoder is still starting is applied once it is running.

        Args:
            reason: Why the recording is being stopped.

        Returns:
            The task that finalizes the session, or None if nothing is being
            stopped yet.
        """
        session = self._session
        if session is None:
            return None
        if self._state is RecordingState.STARTING:
            if session.pending_stop is None:
                session.pending_stop = reason
            return None
        if self._state is not RecordingState.RECORDING:
            return session.finalize_task
        return self._begin_stop(session, reason)

    def _begin_stop(
        self,
        session: RecordingSession,
        reason: StopReason,
        error: Optional[VoiceScribeError] = None,
    ) -> asyncio.Task:
        self._state = RecordingState.ERROR if error else RecordingState.STOPPING
        session.stop_reason = reason
        session.error = error
        session.stopped_at = self._clock()
        self._cancel_guards(session)

        logger.info(f"⏹️ Stopping recording ({reason.value})")
        session.finalize_task = asyncio.create_task(self._finalize(session))
        return session.finalize_task

    def _cancel_guards(self, session: RecordingSession) -> None:
        current = asyncio.current_task()
        for task in (session.silence_task, session.duration_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

    async def _finalize(self, session: RecordingSession) -> None:
        error = session.error
        artifact = None
        try:
            await self._terminate(session.process)
            await self._drain(session)
            if error is None:
                artifact = await self._collect_artifact(session)
        except VoiceScribeError as e:
            error = e
        finally:
            self._release(session)

        if error is not None:
            logger.error(f"🛑 Recording failed: {error}")
            self.error_occurred.emit(error)
        else:
            logger.info(
                f"✅ Recording complete: {artifact.size} bytes, "
                f"{artifact.duration:.1f}s ({artifact.stop_reason.value})"
            )
            self.recording_stopped.emit(artifact)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"⚠️ FFmpeg did not exit within {self.stop_timeout}s, killing it"
                )
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        # 255 is FFmpeg's normal answer to SIGTERM
        logger.debug(f"FFmpeg exited with code {process.returncode}")

    async def _drain(self, session: RecordingSession) -> None:
        tasks = [t for t in (session.reader_task, session.consumer_task) if t]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=self.stop_timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("⚠️ FFmpeg diagnostic stream did not close, abandoned it")
            await asyncio.gather(*pending, return_exceptions=True)

    async def _collect_artifact(self, session: RecordingSession) -> AudioArtifact:
        duration = session.stopped_at - session.started_at
        data = await asyncio.to_thread(self._read_output, session)
        if len(data) < MIN_OUTPUT_BYTES:
            logger.warning(f"⚠️ Recording file holds only {len(data)} bytes")
            if duration < MIN_RECORDING_SECONDS:
                raise NoAudioCapturedError(
                    "Recording too short. Hold the record button a little longer."
                )
            if data:
                raise NoAudioCapturedError(
                    "Recording file is too small. Check that the microphone "
                    "is working and not muted."
                )
            raise NoAudioCapturedError()

        audio_format = session.options.audio_format
        return AudioArtifact(
            data=data,
            mime_type=mime_type_for(audio_format),
            file_name=f"recording.{file_extension_for(audio_format)}",
            duration=duration,
            stop_reason=session.stop_reason,
        )

    @staticmethod
    def _read_output(session: RecordingSession) -> bytes:
        path = session.output_path
        if path is None or not path.exists():
            return b""
        return session.file_manager.read(path)

    def _release(self, session: RecordingSession) -> None:
        """Remove the temp file and return to idle. Runs once per session."""
        if session.released.is_set():
            return
        session.file_manager.discard(session.output_path)
        if self._session is session:
            self._session = None
            self._state = RecordingState.IDLE
        session.released.set()

    # -- diagnostic stream ----------------------------------------------

    async def _read_diagnostics(self, session: RecordingSession) -> None:
        """Split encoder stderr into lines and queue them in order."""
        stream = session.process.stderr
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        try:
            while True:
                chunk = await stream.read(4096)
                if not chunk:
                    break
                pending += decoder.decode(chunk)
                *lines, pending = _LINE_BREAK.split(pending)
                for line in lines:
                    if line:
                        session.lines.put_nowait(line)
            pending += decoder.decode(b"", final=True)
            if pending.strip():
                session.lines.put_nowait(pending)
        finally:
            session.lines.put_nowait(None)

    async def _consume_diagnostics(self, session: RecordingSession) -> None:
        """Classify queued lines and react to activity, errors and exit."""
        while True:
            line = await session.lines.get()
            if line is None:
                break
            session.stderr_tail.append(line)
            result = classify_line(line)

            if result.kind is LineKind.ACTIVITY:
                session.last_activity = max(session.last_activity, self._clock())
                if result.captured_bytes:
                    session.captured_bytes = result.captured_bytes
            elif result.kind is LineKind.DEVICE_ERROR:
                if not result.fatal:
                    logger.warning(f"⚠️ FFmpeg: {line}")
                elif self._is_live(session):
                    logger.error(f"🛑 FFmpeg device error: {line}")
                    self._begin_stop(session, StopReason.DEVICE_ERROR, result.error)
                else:
                    logger.debug(f"FFmpeg error after stop: {line}")
            else:
                logger.debug(f"FFmpeg: {line}")

        exit_code = await session.process.wait()
        if self._is_live(session):
            tail = " | ".join(session.stderr_tail)
            error = ProcessExitedUnexpectedlyError(
                f"FFmpeg stopped unexpectedly (exit code {exit_code}). {tail}".strip(),
                exit_code=exit_code,
            )
            self._begin_stop(session, StopReason.PROCESS_EXIT, error)

    def _is_live(self, session: RecordingSession) -> bool:
        return self._session is session and self._state is RecordingState.RECORDING

    # -- guards ----------------------------------------------------------

    async def _watch_silence(self, session: RecordingSession) -> None:
        options = session.options
        interval = options.effective_silence_check_interval
        while self._is_live(session):
            await asyncio.sleep(interval)
            if not self._is_live(session):
                return
            silent_for = self._clock() - session.last_activity
            if silent_for >= options.silence_duration:
                logger.info(f"🔇 No audio activity for {silent_for:.1f}s")
                self.stop_recording(StopReason.SILENCE)
                return

    async def _enforce_max_duration(self, session: RecordingSession) -> None:
        await asyncio.sleep(session.options.max_duration)
        if self._is_live(session):
            logger.info(f"⏱️ Max recording duration reached ({session.options.max_duration}s)")
            self.stop_recording(StopReason.MAX_DURATION)

    # -- diagnostics -----------------------------------------------------

    @staticmethod
    async def check_availability(
        custom_path: Optional[str] = None,
    ) -> AvailabilityResult:
        return await availability.check_availability(custom_path)

    @staticmethod
    async def detect_input_devices(
        custom_path: Optional[str] = None, platform_id: Optional[str] = None
    ) -> List[DeviceDescriptor]:
        """List audio input devices.

        Raises:
            AudioCaptureError: If the platform is unsupported, FFmpeg is
                unavailable or the listing cannot be started.
        """
        commands = resolve(platform_id)
        probe = await availability.check_availability(custom_path)
        probe.raise_for_error()
        return await list_devices(commands, probe.path)

    @staticmethod
    async def run_diagnostics(
        custom_path: Optional[str] = None, platform_id: Optional[str] = None
    ) -> DiagnosticsReport:
        return await diagnostics.run_diagnostics(custom_path, platform_id)

    @staticmethod
    async def check_microphone_permission(
        custom_path: Optional[str] = None, platform_id: Optional[str] = None
    ) -> MicrophonePermission:
        return await permissions.check_microphone_permission(custom_path, platform_id)

    @staticmethod
    async def test_recording(
        duration: float = 2.0,
        custom_path: Optional[str] = None,
        platform_id: Optional[str] = None,
    ) -> RecordingTestResult:
        return await diagnostics.test_recording(duration, custom_path, platform_id)
