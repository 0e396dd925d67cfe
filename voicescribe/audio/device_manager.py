"""Input device enumeration through the encoder's listing mode.

FFmpeg prints its device inventory as free-form text, so each platform has its
own parser. Parsing is kept separate from the subprocess call so it can be
exercised against captured listings.
"""

import asyncio
import re
from typing import List, Optional

from voicescribe.audio.models import DeviceDescriptor
from voicescribe.audio.platform_commands import PlatformCommandSet, PlatformId
from voicescribe.config.config_loader import config
from voicescribe.utils.exceptions import DeviceNotFoundError, ProcessSpawnError
from voicescribe.utils.logger import setup_logger

logger = setup_logger(__name__)

_AVFOUNDATION_DEVICE = re.compile(r"\[AVFoundation[^\]]*\]\s+\[(\d+)\]\s+(.+)$")
_DSHOW_TAGGED_AUDIO = re.compile(r'"([^"]+)"\s+\(audio\)')
_DSHOW_QUOTED = re.compile(r'"([^"]+)"')
_PULSE_SOURCE = re.compile(r"^\s*(\*)?\s*(\S+)\s+\[(.*)\]\s*$")


def _parse_avfoundation(text: str) -> List[DeviceDescriptor]:
    devices = []
    in_audio_section = False
    for line in text.splitlines():
        line = line.strip()
        if "AVFoundation audio devices:" in line:
            in_audio_section = True
            continue
        if "AVFoundation video devices:" in line:
            in_audio_section = False
            continue
        if not in_audio_section:
            continue
        match = _AVFOUNDATION_DEVICE.search(line)
        if match:
            index, name = match.groups()
            devices.append(
                DeviceDescriptor(
                    id=f":{index}", name=name.strip(), is_default=index == "0"
                )
            )
    return devices


def _parse_dshow(text: str) -> List[DeviceDescriptor]:
    names = []
    in_audio_section = False
    for line in text.splitlines():
        if "Alternative name" in line:
            continue
        if "DirectShow audio devices" in line:
            in_audio_section = True
            continue
        if "DirectShow video devices" in line:
            in_audio_section = False
            continue

        # FFmpeg 5+ tags every device, older builds group them in sections
        tagged = _DSHOW_TAGGED_AUDIO.search(line)
        if tagged:
            names.append(tagged.group(1))
            continue
        if in_audio_section and "(video)" not in line:
            quoted = _DSHOW_QUOTED.search(line)
            if quoted:
                names.append(quoted.group(1))

    return [
        DeviceDescriptor(id=f"audio={name}", name=name, is_default=i == 0)
        for i, name in enumerate(names)
    ]


def _parse_pulse(text: str) -> List[DeviceDescriptor]:
    devices = []
    for line in text.splitlines():
        match = _PULSE_SOURCE.match(line)
        if not match:
            continue
        star, source, description = match.groups()
        if source.endswith(".monitor"):
            continue
        devices.append(
            DeviceDescriptor(
                id=source, name=description.strip() or source, is_default=bool(star)
            )
        )
    return devices


_PARSERS = {
    PlatformId.MACOS: _parse_avfoundation,
    PlatformId.WINDOWS: _parse_dshow,
    PlatformId.LINUX: _parse_pulse,
}


def _normalise_defaults(devices: List[DeviceDescriptor]) -> List[DeviceDescriptor]:
    """Drop duplicate ids and flag exactly one default."""
    unique: List[DeviceDescriptor] = []
    seen = set()
    for device in devices:
        if device.id in seen:
            continue
        seen.add(device.id)
        unique.append(device)

    if not unique:
        return unique

    default_index = next(
        (i for i, device in enumerate(unique) if device.is_default), 0
    )
    return [
        DeviceDescriptor(id=device.id, name=device.name, is_default=i == default_index)
        for i, device in enumerate(unique)
    ]


def parse_device_listing(text: str, platform: PlatformId) -> List[DeviceDescriptor]:
    """Parse a device listing printed by FFmpeg.

    Args:
        text: Combined listing output.
        platform: Platform whose listing dialect to parse.

    Returns:
        Audio input devices in listing order, one flagged default when the
        list is non-empty.
    """
    parser = _PARSERS[PlatformId(platform)]
    return _normalise_defaults(parser(text))


async def list_devices(
    commands: PlatformCommandSet,
    binary: str,
    timeout: Optional[float] = None,
) -> List[DeviceDescriptor]:
    """Enumerate audio input devices.

    Args:
        commands: Platform command set supplying the listing arguments.
        binary: Path to the FFmpeg executable.
        timeout: Seconds to wait for the listing (defaults to
            ``encoder.listing_timeout``).

    Returns:
        Parsed devices; empty when none are found or the listing crashed.

    Raises:
        ProcessSpawnError: If the listing process cannot be started.
    """
    if timeout is None:
        timeout = float(config.get("encoder.listing_timeout", 5.0))

    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            *commands.list_devices_args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ProcessSpawnError(f"Failed to list audio devices: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.warning(f"⚠️ Device listing timed out after {timeout}s")
        return []

    # Listing mode normally exits 1; only a signal means it did not run
    if process.returncode is not None and process.returncode < 0:
        logger.warning(
            f"⚠️ Device listing crashed (exit code: {process.returncode})"
        )
        return []

    text = stderr.decode("utf-8", errors="replace")
    text += "\n" + stdout.decode("utf-8", errors="replace")
    devices = parse_device_listing(text, commands.platform)

    if devices:
        logger.info(f"🎤 Found {len(devices)} audio input device(s)")
        for device in devices:
            marker = " (default)" if device.is_default else ""
            logger.debug(f"  {device.id}: {device.name}{marker}")
    else:
        logger.warning("⚠️ No audio input devices found")
    return devices


def resolve_device(
    requested: Optional[str],
    devices: List[DeviceDescriptor],
    commands: PlatformCommandSet,
) -> str:
    """Pick the device address to record from.

    Args:
        requested: Device id or name asked for, None for automatic.
        devices: Enumerated devices, possibly empty.
        commands: Platform command set for the fallback address.

    Returns:
        Device address to pass to the encoder.

    Raises:
        DeviceNotFoundError: If an explicit request matches no listed device.
    """
    if not requested:
        for device in devices:
            if device.is_default:
                return device.id
        if devices:
            return devices[0].id
        logger.debug(f"No devices listed, using fallback {commands.default_device}")
        return commands.default_device

    if not devices:
        # Nothing to verify against
        return requested

    for device in devices:
        if requested in (device.id, device.name):
            return device.id

    available = ", ".join(device.name for device in devices)
    raise DeviceNotFoundError(
        f"Audio input device '{requested}' was not found. Available: {available}"
    )
