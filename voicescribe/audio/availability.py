"""Locate the FFmpeg binary and confirm that it runs."""

import asyncio
import os
import re
import shutil
from pathlib import Path
from typing import List, Optional

from voicescribe.audio.models import AvailabilityResult
from voicescribe.config.config_loader import config
from voicescribe.utils.exceptions import ErrorKind
from voicescribe.utils.logger import setup_logger

logger = setup_logger(__name__)

BINARY_NAME = "ffmpeg"

_VERSION_PATTERN = re.compile(r"ffmpeg version (\S+)")

# Common install locations that are often missing from a GUI app's PATH.
STANDARD_LOCATIONS: List[str] = [
    "/opt/homebrew/bin/ffmpeg",
    "/usr/local/bin/ffmpeg",
    "/usr/bin/ffmpeg",
    "/snap/bin/ffmpeg",
    r"C:\ffmpeg\bin\ffmpeg.exe",
    r"C:\Program Files\ffmpeg\bin\ffmpeg.exe",
]


def find_binary() -> Optional[str]:
    """Search PATH, then the standard install locations."""
    found = shutil.which(BINARY_NAME)
    if found:
        return found
    for candidate in STANDARD_LOCATIONS:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    return None


def _not_found(error: str) -> AvailabilityResult:
    return AvailabilityResult(
        available=False, error=error, error_kind=ErrorKind.BINARY_NOT_FOUND
    )


def _not_executable(path: str, error: str) -> AvailabilityResult:
    return AvailabilityResult(
        available=False,
        path=path,
        error=error,
        error_kind=ErrorKind.BINARY_NOT_EXECUTABLE,
    )


async def check_availability(
    custom_path: Optional[str] = None, timeout: Optional[float] = None
) -> AvailabilityResult:
    """Check whether FFmpeg is installed and working.

    The custom path wins when given; otherwise PATH and the platform-standard
    locations are searched. A ``-version`` probe confirms the binary runs.

    Args:
        custom_path: Explicit path to the FFmpeg executable.
        timeout: Probe timeout in seconds (defaults to ``encoder.probe_timeout``).

    Returns:
        Availability result. Never raises for a missing or broken binary.
    """
    if timeout is None:
        timeout = float(config.get("encoder.probe_timeout", 10.0))

    if custom_path:
        candidate = Path(custom_path).expanduser()
        if not candidate.is_file():
            logger.error(f"🛑 FFmpeg not found at configured path: {candidate}")
            return _not_found(
                f"FFmpeg not found at '{candidate}'. "
                "Check the custom FFmpeg path in your settings."
            )
        if not os.access(candidate, os.X_OK):
            logger.error(f"🛑 FFmpeg at {candidate} is not executable")
            return _not_executable(
                str(candidate), f"FFmpeg at '{candidate}' is not executable."
            )
        binary = str(candidate)
    else:
        found = find_binary()
        if found is None:
            logger.error("🛑 FFmpeg not found in PATH")
            return _not_found(
                "FFmpeg not found in PATH. Please install FFmpeg and add it to "
                "your system PATH, or specify the path in settings."
            )
        binary = found

    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            "-version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error(f"🛑 Error running FFmpeg at {binary}: {e}")
        return _not_executable(binary, f"Error running FFmpeg: {e}")

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.error(f"🛑 FFmpeg version probe timed out after {timeout}s")
        return _not_executable(binary, "FFmpeg check timed out.")

    if process.returncode != 0:
        return _not_executable(
            binary,
            f"FFmpeg found but not working properly (exit code: {process.returncode})",
        )

    output = stdout.decode("utf-8", errors="replace")
    match = _VERSION_PATTERN.search(output)
    version = match.group(1) if match else "unknown"
    logger.debug(f"✅ FFmpeg {version} at {binary}")
    return AvailabilityResult(available=True, path=binary, version=version)
