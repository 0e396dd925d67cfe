"""Custom exception definitions for VoiceScribe."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classified failure kinds reported to the host application."""

    BINARY_NOT_FOUND = "BinaryNotFound"
    BINARY_NOT_EXECUTABLE = "BinaryNotExecutable"
    DEVICE_NOT_FOUND = "DeviceNotFound"
    PERMISSION_DENIED = "PermissionDenied"
    PROCESS_SPAWN_FAILURE = "ProcessSpawnFailure"
    PROCESS_EXITED_UNEXPECTEDLY = "ProcessExitedUnexpectedly"
    NO_AUDIO_CAPTURED = "NoAudioCaptured"
    ALREADY_RECORDING = "AlreadyRecording"
    UNSUPPORTED_PLATFORM = "UnsupportedPlatform"
    TEMP_FILE_ERROR = "TempFileError"
    CONFIGURATION = "Configuration"


class VoiceScribeError(Exception):
    """Base exception class for VoiceScribe errors.

    Every subclass carries an :class:`ErrorKind` and a default message that is
    readable without interpreting the kind.
    """

    kind: Optional[ErrorKind] = None
    default_message = "Audio capture failed."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ConfigurationError(VoiceScribeError):
    """Raised when configuration is invalid or cannot be loaded."""

    kind = ErrorKind.CONFIGURATION
    default_message = "VoiceScribe configuration is invalid."


class AudioCaptureError(VoiceScribeError):
    """Base class for failures of the capture pipeline."""


class BinaryNotFoundError(AudioCaptureError):
    """Raised when the FFmpeg binary cannot be located."""

    kind = ErrorKind.BINARY_NOT_FOUND
    default_message = (
        "FFmpeg not found. Install FFmpeg and add it to your PATH, "
        "or set a custom binary path."
    )


class BinaryNotExecutableError(AudioCaptureError):
    """Raised when the FFmpeg binary exists but cannot be run."""

    kind = ErrorKind.BINARY_NOT_EXECUTABLE
    default_message = "FFmpeg was found but could not be executed."


class DeviceNotFoundError(AudioCaptureError):
    """Raised when the requested input device is missing or unusable."""

    kind = ErrorKind.DEVICE_NOT_FOUND
    default_message = (
        "No microphone found. Check that an input device is connected."
    )


class PermissionDeniedError(AudioCaptureError):
    """Raised when the OS refuses microphone access."""

    kind = ErrorKind.PERMISSION_DENIED
    default_message = (
        "Permission denied accessing the microphone. "
        "Grant microphone access to this application."
    )


class ProcessSpawnError(AudioCaptureError):
    """Raised when the encoder process cannot be started."""

    kind = ErrorKind.PROCESS_SPAWN_FAILURE
    default_message = "Failed to start the FFmpeg process."


class ProcessExitedUnexpectedlyError(AudioCaptureError):
    """Raised when the encoder dies while a recording is in progress."""

    kind = ErrorKind.PROCESS_EXITED_UNEXPECTEDLY
    default_message = "FFmpeg stopped unexpectedly during recording."

    def __init__(
        self, message: Optional[str] = None, exit_code: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class NoAudioCapturedError(AudioCaptureError):
    """Raised when a recording finished without any audio data."""

    kind = ErrorKind.NO_AUDIO_CAPTURED
    default_message = (
        "Nothing was captured. Check your microphone and its permissions."
    )


class AlreadyRecordingError(AudioCaptureError):
    """Raised when a recording is requested while one is active."""

    kind = ErrorKind.ALREADY_RECORDING
    default_message = "Recording is already in progress."


class UnsupportedPlatformError(AudioCaptureError):
    """Raised when no FFmpeg command set exists for the operating system."""

    kind = ErrorKind.UNSUPPORTED_PLATFORM
    default_message = "This operating system is not supported for recording."


class TempFileError(AudioCaptureError):
    """Raised when the temporary recording file cannot be created or read."""

    kind = ErrorKind.TEMP_FILE_ERROR
    default_message = "Could not create the temporary recording file."
