"""Configuration validation schemas using Pydantic."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from voicescribe.utils.exceptions import ConfigurationError


class AudioFormat(str, Enum):
    """Output container written by the encoder."""

    WAV = "wav"
    MP3 = "mp3"
    OPUS = "opus"
    WEBM = "webm"


class QualityTier(str, Enum):
    """Quality preset selecting default sample rate and bitrate."""

    STANDARD = "standard"
    HIGH = "high"
    ULTRA = "ultra"


class AudioRecordingOptions(BaseModel):
    """Caller-supplied options for one recording session.

    Instances are frozen so the options cannot change while a session runs.
    """

    sample_rate: Optional[int] = Field(
        default=None, description="Sample rate in Hz (None uses the quality tier)"
    )
    channels: int = Field(default=1, description="Number of audio channels")
    audio_format: AudioFormat = Field(
        default=AudioFormat.WAV, description="Output container"
    )
    codec: Optional[str] = Field(
        default=None, description="Encoder codec override (-acodec)"
    )
    quality: QualityTier = Field(
        default=QualityTier.STANDARD, description="Quality tier"
    )
    input_device: Optional[str] = Field(
        default=None, description="Platform-native device id, or None for auto"
    )
    binary_path: Optional[str] = Field(
        default=None, description="Custom path to the FFmpeg executable"
    )
    silence_detection: bool = Field(
        default=False, description="Stop automatically after a silent stretch"
    )
    silence_duration: float = Field(
        default=3.0, description="Seconds without activity before auto-stop"
    )
    silence_check_interval: float = Field(
        default=1.0, description="Seconds between silence checks"
    )
    max_duration: Optional[float] = Field(
        default=None, description="Hard cap on recording length in seconds"
    )
    output_directory: Optional[str] = Field(
        default=None, description="Directory for the temporary recording file"
    )

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @field_validator("sample_rate")
    @classmethod
    def validate_sample_rate(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            return v
        valid_rates = (8000, 16000, 22050, 24000, 32000, 44100, 48000)
        if v not in valid_rates:
            raise ValueError(f"Sample rate must be one of: {valid_rates}")
        return v

    @field_validator("channels")
    @classmethod
    def validate_channels(cls, v: int) -> int:
        if v not in (1, 2):
            raise ValueError("Channels must be 1 (mono) or 2 (stereo)")
        return v

    @field_validator("input_device", "binary_path", "codec", "output_directory")
    @classmethod
    def blank_as_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        if not v or v.lower() == "auto":
            return None
        return v

    @field_validator("silence_duration", "silence_check_interval")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Silence timings must be positive")
        return v

    @field_validator("max_duration")
    @classmethod
    def validate_max_duration(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return v
        if v <= 0:
            raise ValueError("Max recording duration must be positive")
        if v > 3600:  # 1 hour max
            raise ValueError("Max recording duration cannot exceed 1 hour")
        return v

    @model_validator(mode="before")
    @classmethod
    def handle_legacy_keys(cls, data: Any) -> Any:
        """Accept the camelCase keys used by older settings files."""
        if isinstance(data, dict):
            legacy = {
                "sampleRate": "sample_rate",
                "channelCount": "channels",
                "audioFormat": "audio_format",
                "inputDevice": "input_device",
                "ffmpegPath": "binary_path",
                "silenceDetection": "silence_detection",
                "silenceDuration": "silence_duration",
                "maxDuration": "max_duration",
                "outputPath": "output_directory",
            }
            data = dict(data)
            for old, new in legacy.items():
                if old in data:
                    value = data.pop(old)
                    data.setdefault(new, value)
        return data

    @property
    def effective_silence_check_interval(self) -> float:
        """Check interval, always strictly smaller than the silence threshold."""
        return min(self.silence_check_interval, self.silence_duration / 2)

    @classmethod
    def from_config(cls, **overrides: Any) -> "AudioRecordingOptions":
        """Build options from the ``recording`` config section.

        Args:
            **overrides: Field values that take precedence over the config.

        Returns:
            Validated options instance.

        Raises:
            ConfigurationError: If the merged values do not validate.
        """
        from voicescribe.config.config_loader import config

        section = config.get("recording", {}) or {}
        values = dict(section)
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid recording options: {e}") from e


class EncoderConfig(BaseModel):
    """Encoder process timing configuration."""

    stop_timeout: float = Field(
        default=5.0, description="Seconds to wait after terminate before kill"
    )
    probe_timeout: float = Field(
        default=10.0, description="Timeout for the -version probe"
    )
    listing_timeout: float = Field(
        default=5.0, description="Timeout for the device listing"
    )

    @field_validator("stop_timeout", "probe_timeout", "listing_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be positive")
        return v


class TempConfig(BaseModel):
    """Temporary recording file configuration."""

    directory: Optional[str] = Field(
        default=None, description="Temp directory (None uses the system default)"
    )
    retention_hours: float = Field(
        default=24.0, description="Age after which leftover recordings are swept"
    )

    @field_validator("retention_hours")
    @classmethod
    def validate_retention(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Retention cannot be negative")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration validation."""

    level: str = Field(default="INFO", description="Logging level")
    directory: str = Field(default="logs", description="Log directory")
    file_enabled: bool = Field(default=True, description="Write daily log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


class VoiceScribeConfig(BaseModel):
    """Main VoiceScribe configuration validation."""

    app: Dict[str, Any] = Field(default_factory=dict)
    recording: AudioRecordingOptions = Field(default_factory=AudioRecordingOptions)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    temp: TempConfig = Field(default_factory=TempConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {
        "extra": "allow",
        "validate_assignment": True,
    }


def validate_config(config_dict: Dict[str, Any]) -> VoiceScribeConfig:
    """Validate configuration dictionary using Pydantic schemas.

    Args:
        config_dict: Configuration dictionary to validate

    Returns:
        Validated VoiceScribeConfig instance

    Raises:
        ValueError: If configuration validation fails
    """
    try:
        return VoiceScribeConfig(**config_dict)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
