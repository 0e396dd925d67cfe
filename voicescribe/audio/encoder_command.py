"""Output format tables and construction of the capture command line."""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import ffmpeg

from voicescribe.audio.platform_commands import PlatformCommandSet
from voicescribe.config.validators import (
    AudioFormat,
    AudioRecordingOptions,
    QualityTier,
)


@dataclass(frozen=True)
class FormatSpec:
    codec: str
    mime_type: str
    extension: str
    lossy: bool


@dataclass(frozen=True)
class QualityPreset:
    sample_rate: int
    bitrate: str


FORMATS: Dict[AudioFormat, FormatSpec] = {
    AudioFormat.WAV: FormatSpec("pcm_s16le", "audio/wav", "wav", lossy=False),
    AudioFormat.MP3: FormatSpec("libmp3lame", "audio/mpeg", "mp3", lossy=True),
    AudioFormat.OPUS: FormatSpec(
        "libopus", "audio/ogg; codecs=opus", "opus", lossy=True
    ),
    AudioFormat.WEBM: FormatSpec("libvorbis", "audio/webm", "webm", lossy=True),
}

QUALITY_PRESETS: Dict[QualityTier, QualityPreset] = {
    QualityTier.STANDARD: QualityPreset(sample_rate=16000, bitrate="64k"),
    QualityTier.HIGH: QualityPreset(sample_rate=44100, bitrate="128k"),
    QualityTier.ULTRA: QualityPreset(sample_rate=48000, bitrate="256k"),
}

GLOBAL_ARGS = ("-nostdin", "-loglevel", "info")


def mime_type_for(audio_format: AudioFormat) -> str:
    return FORMATS[AudioFormat(audio_format)].mime_type


def file_extension_for(audio_format: AudioFormat) -> str:
    return FORMATS[AudioFormat(audio_format)].extension


def supported_mime_types() -> List[str]:
    """Mime types of every output format, in table order."""
    return [fmt.mime_type for fmt in FORMATS.values()]


def build_capture_command(
    binary: str,
    commands: PlatformCommandSet,
    device: str,
    output_path: Path,
    options: AudioRecordingOptions,
    duration_limit: Optional[float] = None,
) -> List[str]:
    """Build the FFmpeg argv for a capture session.

    Args:
        binary: Path to the FFmpeg executable.
        commands: Platform command set for the input format.
        device: Resolved device address.
        output_path: File the encoder writes to.
        options: Recording options.
        duration_limit: Optional ``-t`` limit in seconds. Regular recordings
            leave this unset and rely on the duration guard.

    Returns:
        Full argument vector, binary first.
    """
    fmt = FORMATS[options.audio_format]
    preset = QUALITY_PRESETS[options.quality]

    output_kwargs = {
        "ac": options.channels,
        "acodec": options.codec or fmt.codec,
        "ar": options.sample_rate or preset.sample_rate,
    }
    if fmt.lossy:
        output_kwargs["audio_bitrate"] = preset.bitrate
    if duration_limit is not None:
        output_kwargs["t"] = duration_limit

    stream = ffmpeg.input(device, f=commands.input_format)
    stream = ffmpeg.output(stream, str(output_path), **output_kwargs)
    stream = ffmpeg.overwrite_output(stream.global_args(*GLOBAL_ARGS))
    return ffmpeg.compile(stream, cmd=binary)
