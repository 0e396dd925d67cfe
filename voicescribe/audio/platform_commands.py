"""Per-platform FFmpeg command dialects.

Every other component takes a :class:`PlatformCommandSet` instead of checking
the operating system itself.
"""

import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from voicescribe.utils.exceptions import UnsupportedPlatformError


class PlatformId(str, Enum):
    MACOS = "macos"
    WINDOWS = "windows"
    LINUX = "linux"


@dataclass(frozen=True)
class PlatformCommandSet:
    """Input flag, device addressing and listing invocation for one OS."""

    platform: PlatformId
    input_format: str
    device_template: str
    default_device: str
    list_devices_args: Tuple[str, ...]

    def device_address(self, native_id: str) -> str:
        """Format a native device index or name into an FFmpeg input address."""
        return self.device_template.format(native_id)

    def input_args(self) -> Tuple[str, ...]:
        return ("-f", self.input_format)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform.value,
            "input_format": self.input_format,
            "device_template": self.device_template,
            "default_device": self.default_device,
            "list_devices_args": list(self.list_devices_args),
        }


_COMMAND_SETS: Dict[PlatformId, PlatformCommandSet] = {
    PlatformId.MACOS: PlatformCommandSet(
        platform=PlatformId.MACOS,
        input_format="avfoundation",
        device_template=":{}",
        default_device=":0",
        list_devices_args=(
            "-hide_banner",
            "-f",
            "avfoundation",
            "-list_devices",
            "true",
            "-i",
            "",
        ),
    ),
    PlatformId.WINDOWS: PlatformCommandSet(
        platform=PlatformId.WINDOWS,
        input_format="dshow",
        device_template="audio={}",
        default_device="audio=Microphone",
        list_devices_args=(
            "-hide_banner",
            "-list_devices",
            "true",
            "-f",
            "dshow",
            "-i",
            "dummy",
        ),
    ),
    PlatformId.LINUX: PlatformCommandSet(
        platform=PlatformId.LINUX,
        input_format="pulse",
        device_template="{}",
        default_device="default",
        list_devices_args=("-hide_banner", "-sources", "pulse"),
    ),
}

_ALIASES: Dict[str, PlatformId] = {
    "darwin": PlatformId.MACOS,
    "macos": PlatformId.MACOS,
    "mac": PlatformId.MACOS,
    "osx": PlatformId.MACOS,
    "win32": PlatformId.WINDOWS,
    "windows": PlatformId.WINDOWS,
    "cygwin": PlatformId.WINDOWS,
    "linux": PlatformId.LINUX,
    "linux2": PlatformId.LINUX,
}


def detect_platform() -> str:
    """Return the raw OS identifier of the running interpreter."""
    return sys.platform


def platform_id_for(os_id: Optional[str] = None) -> PlatformId:
    """Map an OS identifier to a supported platform.

    Args:
        os_id: Identifier such as ``sys.platform`` or "macos". None means the
            running interpreter's platform.

    Raises:
        UnsupportedPlatformError: If the identifier is not supported.
    """
    if os_id is None:
        os_id = detect_platform()
    if isinstance(os_id, PlatformId):
        return os_id
    platform_id = _ALIASES.get(str(os_id).strip().lower())
    if platform_id is None:
        raise UnsupportedPlatformError(
            f"Unsupported platform '{os_id}'. "
            "Recording works on macOS, Windows and Linux."
        )
    return platform_id


def resolve(os_id: Optional[str] = None) -> PlatformCommandSet:
    """Return the command set for an operating system.

    Args:
        os_id: OS identifier, None for the running platform.

    Returns:
        The static command set for that platform.

    Raises:
        UnsupportedPlatformError: If the identifier is not supported.
    """
    return _COMMAND_SETS[platform_id_for(os_id)]
