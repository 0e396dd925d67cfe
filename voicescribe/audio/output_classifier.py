"""Classification of FFmpeg diagnostic lines.

FFmpeg writes its banner, stream information, progress and errors to stderr
as free text. Only some of those lines prove that audio is flowing, and the
silence watcher must not mistake banner chatter for speech.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Type

from voicescribe.utils.exceptions import (
    AudioCaptureError,
    DeviceNotFoundError,
    PermissionDeniedError,
)


class LineKind(str, Enum):
    SERVICE = "service"
    DEVICE_ERROR = "device_error"
    ACTIVITY = "activity"


@dataclass(frozen=True)
class LineClassification:
    """Verdict for a single diagnostic line."""

    kind: LineKind
    error: Optional[AudioCaptureError] = None
    fatal: bool = False
    captured_bytes: Optional[int] = None

    @property
    def is_activity(self) -> bool:
        return self.kind is LineKind.ACTIVITY


SERVICE_PATTERNS: List[re.Pattern] = [
    re.compile(r"^ffmpeg version", re.IGNORECASE),
    re.compile(r"^\s*configuration:"),
    re.compile(r"^\s*built with", re.IGNORECASE),
    re.compile(r"^\s*lib\w+\s+\d+\.\s*\d+\.\s*\d+"),
    re.compile(r"Copyright", re.IGNORECASE),
]

# (pattern, exception type, message); matched top to bottom
FATAL_DEVICE_PATTERNS: List[Tuple[re.Pattern, Type[AudioCaptureError], str]] = [
    (
        re.compile(r"Permission denied|Operation not permitted|not authorized", re.I),
        PermissionDeniedError,
        "Microphone permission denied. Grant microphone access to the "
        "application in your system privacy settings.",
    ),
    (
        re.compile(r"Device or resource busy", re.I),
        DeviceNotFoundError,
        "The audio input device is busy. Close other applications that are "
        "using the microphone.",
    ),
    (
        re.compile(
            r"No such file or directory|Could not find \w+(?: only)? device|"
            r"(?:device|input)\b.*\bnot found|"
            r"Error opening input|Invalid data found when processing input|"
            r"Input/output error",
            re.I,
        ),
        DeviceNotFoundError,
        "The audio input device could not be opened. Check that a microphone "
        "is connected and selected.",
    ),
]

RECOVERABLE_DEVICE_PATTERNS: List[re.Pattern] = [
    re.compile(r"buffer (?:overrun|underrun)|\b(?:overrun|underrun)\b", re.I),
    re.compile(r"frames? dropped|dropping frame", re.I),
]

ACTIVITY_PATTERNS: List[re.Pattern] = [
    re.compile(r"^\s*Input #\d+,"),
    re.compile(r"^\s*Stream #\d+:\d+"),
    re.compile(r"Press \[q\] to (?:quit|stop)"),
]

_SIZE_MARKER = re.compile(r"size=\s*(N/A|(\d+(?:\.\d+)?)\s*([KMG]i?B|[kK]B|B)?)")

_UNIT_MULTIPLIERS = {
    None: 1,
    "B": 1,
    "kB": 1024,
    "KB": 1024,
    "KiB": 1024,
    "MB": 1024**2,
    "MiB": 1024**2,
    "GB": 1024**3,
    "GiB": 1024**3,
}

_SERVICE = LineClassification(kind=LineKind.SERVICE)
_ACTIVITY = LineClassification(kind=LineKind.ACTIVITY)


def parse_size_bytes(line: str) -> Optional[int]:
    """Return the byte count of a ``size=`` progress marker.

    Returns:
        Byte count, None when the line has no marker or reports ``N/A``.
    """
    match = _SIZE_MARKER.search(line)
    if not match or match.group(1) == "N/A":
        return None
    value = float(match.group(2))
    multiplier = _UNIT_MULTIPLIERS.get(match.group(3), 1)
    return int(value * multiplier)


def classify_line(line: str) -> LineClassification:
    """Classify one diagnostic line.

    Service patterns are checked first, then device errors, then activity.
    Anything else, including a progress marker reporting zero bytes, counts
    as service chatter.

    Args:
        line: One line of encoder stderr, without the terminator.

    Returns:
        The classification; a fresh exception instance accompanies device
        errors.
    """
    text = line.strip()
    if not text:
        return _SERVICE

    for pattern in SERVICE_PATTERNS:
        if pattern.search(text):
            return _SERVICE

    for pattern, error_type, message in FATAL_DEVICE_PATTERNS:
        if pattern.search(text):
            return LineClassification(
                kind=LineKind.DEVICE_ERROR,
                error=error_type(f"{message} ({text})"),
                fatal=True,
            )

    for pattern in RECOVERABLE_DEVICE_PATTERNS:
        if pattern.search(text):
            return LineClassification(kind=LineKind.DEVICE_ERROR, fatal=False)

    for pattern in ACTIVITY_PATTERNS:
        if pattern.search(text):
            return _ACTIVITY

    captured = parse_size_bytes(text)
    if captured:
        return LineClassification(kind=LineKind.ACTIVITY, captured_bytes=captured)

    return _SERVICE
