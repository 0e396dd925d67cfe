"""Audio capture modules.

This package drives FFmpeg as a child process:
- recorder: FFmpegAudioRecorder state machine and process supervisor
- platform_commands: Per-OS input format and device addressing
- availability: FFmpeg binary lookup and version probe
- device_manager: Device listing, parsing and selection
- output_classifier: Stderr line classification for activity and errors
- encoder_command: Output formats, quality presets and argv construction
- diagnostics: Reports, test recordings and troubleshooting
- permissions: Microphone access probe
"""

from voicescribe.audio.recorder import FFmpegAudioRecorder

__all__ = ["FFmpegAudioRecorder"]
