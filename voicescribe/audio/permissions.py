"""Best-effort microphone permission probe.

FFmpeg cannot ask the OS for microphone consent, so the probe infers access
from whether the device listing shows any input devices.
"""

from typing import Optional

from voicescribe.audio.availability import check_availability
from voicescribe.audio.device_manager import list_devices
from voicescribe.audio.models import MicrophonePermission
from voicescribe.audio.platform_commands import resolve
from voicescribe.utils.exceptions import VoiceScribeError
from voicescribe.utils.logger import setup_logger

logger = setup_logger(__name__)

GRANTED = "granted"
DENIED = "denied"
UNKNOWN = "unknown"


async def check_microphone_permission(
    custom_path: Optional[str] = None, platform_id: Optional[str] = None
) -> MicrophonePermission:
    """Check whether a microphone appears to be accessible.

    Args:
        custom_path: Custom FFmpeg path.
        platform_id: OS identifier, None for the running platform.

    Returns:
        ``granted`` when devices are listed, ``denied`` when FFmpeg is missing
        or no device is visible, ``unknown`` when the probe itself failed.
    """
    logger.info("🔒 Checking microphone access...")
    try:
        commands = resolve(platform_id)
        availability = await check_availability(custom_path)
        if not availability.available:
            logger.warning("🔒 FFmpeg unavailable, cannot reach the microphone")
            return MicrophonePermission(state=DENIED, available=False)

        devices = await list_devices(commands, availability.path)
    except VoiceScribeError as e:
        logger.warning(f"🔒 Microphone access check failed: {e}")
        return MicrophonePermission(state=UNKNOWN, available=False)

    if not devices:
        logger.warning("🔒 No input devices visible, access may be blocked")
        return MicrophonePermission(state=DENIED, available=False)

    logger.info(f"🔒 Microphone access looks fine ({len(devices)} device(s))")
    return MicrophonePermission(state=GRANTED, available=True)
