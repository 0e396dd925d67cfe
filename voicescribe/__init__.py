"""VoiceScribe: microphone capture through a supervised FFmpeg process."""

__version__ = "0.1.0"
