"""Data records exchanged between the capture components and the host."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from voicescribe.utils.exceptions import (
    BinaryNotExecutableError,
    BinaryNotFoundError,
    ErrorKind,
)

if TYPE_CHECKING:
    from voicescribe.audio.platform_commands import PlatformCommandSet


class StopReason(str, Enum):
    """Why a recording session ended."""

    MANUAL = "manual"
    SILENCE = "silence"
    MAX_DURATION = "max_duration"
    PROCESS_EXIT = "process_exit"
    DEVICE_ERROR = "device_error"


@dataclass(frozen=True)
class DeviceDescriptor:
    """One input device as addressed by the encoder."""

    id: str
    name: str
    is_default: bool = False


@dataclass(frozen=True)
class AudioArtifact:
    """Finished recording handed to the host."""

    data: bytes
    mime_type: str
    file_name: str
    duration: float = 0.0
    stop_reason: StopReason = StopReason.MANUAL

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class AvailabilityResult:
    """Outcome of locating and probing the encoder binary."""

    available: bool
    path: Optional[str] = None
    version: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    def raise_for_error(self) -> None:
        """Raise the classified exception if the binary is unusable.

        Raises:
            BinaryNotFoundError: If no binary was located.
            BinaryNotExecutableError: If the binary could not be run.
        """
        if self.available and self.path:
            return
        if self.error_kind is ErrorKind.BINARY_NOT_EXECUTABLE:
            raise BinaryNotExecutableError(self.error)
        raise BinaryNotFoundError(self.error)


@dataclass
class DiagnosticsReport:
    """Consolidated view of encoder, platform and devices."""

    availability: AvailabilityResult
    platform: Optional[str] = None
    commands: Optional["PlatformCommandSet"] = None
    devices: List[DeviceDescriptor] = field(default_factory=list)
    recommended_device: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serialisable representation."""
        availability = asdict(self.availability)
        if self.availability.error_kind is not None:
            availability["error_kind"] = self.availability.error_kind.value
        return {
            "availability": availability,
            "platform": self.platform,
            "commands": self.commands.to_dict() if self.commands else None,
            "devices": [asdict(device) for device in self.devices],
            "recommended_device": self.recommended_device,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class RecordingTestResult:
    """Result of a short diagnostic recording."""

    success: bool
    file_size: int = 0
    duration: float = 0.0
    command: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class MicrophonePermission:
    """Best-effort microphone access state."""

    state: str
    available: bool

