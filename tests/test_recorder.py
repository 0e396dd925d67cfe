"""Tests for the recording state machine and FFmpeg process supervision."""

import asyncio
import os
import time

import pytest
from conftest import SignalCollector, leftover_recordings, skip_on_windows

from voicescribe.audio.models import StopReason
from voicescribe.audio.recorder import FFmpegAudioRecorder, RecordingState
from voicescribe.config.validators import AudioRecordingOptions
from voicescribe.utils.exceptions import (
    AlreadyRecordingError,
    BinaryNotFoundError,
    DeviceNotFoundError,
    NoAudioCapturedError,
    PermissionDeniedError,
    ProcessExitedUnexpectedlyError,
    UnsupportedPlatformError,
)
from voicescribe.utils.file_manager import FileManager

pytestmark = skip_on_windows


@pytest.fixture
def make_recorder(recordings_dir):
    def factory(platform_id="linux", stop_timeout=2.0):
        recorder = FFmpegAudioRecorder(
            platform_id=platform_id,
            stop_timeout=stop_timeout,
            file_manager=FileManager(str(recordings_dir)),
        )
        return recorder, SignalCollector(recorder)

    return factory


def make_options(binary, recordings_dir, **overrides):
    return AudioRecordingOptions(
        binary_path=binary, output_directory=str(recordings_dir), **overrides
    )


def spy_on_stop(recorder, monkeypatch):
    calls = []
    original = recorder.stop_recording

    def spy(reason=StopReason.MANUAL):
        calls.append(reason)
        return original(reason)

    monkeypatch.setattr(recorder, "stop_recording", spy)
    return calls


@pytest.mark.asyncio
async def test_manual_stop_delivers_artifact(fake_ffmpeg, make_recorder, recordings_dir):
    recorder, signals = make_recorder()
    options = make_options(fake_ffmpeg(), recordings_dir)

    assert await recorder.start_recording(options) is True
    assert recorder.get_state() is RecordingState.RECORDING
    assert recorder.get_is_recording()
    assert signals.started == 1

    await asyncio.sleep(0.5)
    assert recorder.get_recording_duration() > 0
    await recorder.stop_recording()

    assert signals.errors == []
    assert len(signals.artifacts) == 1
    artifact = signals.artifacts[0]
    assert artifact.data.startswith(b"RIFF")
    assert artifact.size == 2048
    assert artifact.mime_type == "audio/wav"
    assert artifact.file_name == "recording.wav"
    assert artifact.stop_reason is StopReason.MANUAL
    assert artifact.duration > 0

    assert recorder.get_state() is RecordingState.IDLE
    assert not recorder.get_is_recording()
    assert recorder.get_recording_duration() == 0.0
    assert leftover_recordings(recordings_dir) == []


@pytest.mark.asyncio
async def test_start_while_recording_reports_already_recording(
    fake_ffmpeg, make_recorder, recordings_dir
):
    recorder, signals = make_recorder()
    options = make_options(fake_ffmpeg(), recordings_dir)
    await recorder.start_recording(options)

    assert await recorder.start_recording(options) is False
    assert recorder.get_state() is RecordingState.RECORDING
    assert len(signals.errors) == 1
    assert isinstance(signals.errors[0], AlreadyRecordingError)
    assert len(leftover_recordings(recordings_dir)) == 1

    await asyncio.sleep(0.5)
    await recorder.stop_recording()
    assert len(signals.artifacts) == 1


@pytest.mark.asyncio
async def test_stop_is_reentrant(fake_ffmpeg, make_recorder, recordings_dir):
    recorder, signals = make_recorder()
    await recorder.start_recording(make_options(fake_ffmpeg(), recordings_dir))

    first = recorder.stop_recording()
    second = recorder.stop_recording()
    assert first is second
    await first

    assert recorder.stop_recording() is None
    assert signals.outcomes == 1


@pytest.mark.asyncio
async def test_stop_when_idle_is_a_no_op(make_recorder):
    recorder, signals = make_recorder()
    assert recorder.stop_recording() is None
    await recorder.wait_until_idle()
    assert signals.outcomes == 0


@pytest.mark.asyncio
async def test_silence_stops_recording_once(
    fake_ffmpeg, make_recorder, recordings_dir, monkeypatch
):
    recorder, signals = make_recorder()
    calls = spy_on_stop(recorder, monkeypatch)
    options = make_options(
        fake_ffmpeg(mode="silent"),
        recordings_dir,
        silence_detection=True,
        silence_duration=0.4,
        silence_check_interval=0.1,
    )

    await recorder.start_recording(options)
    await signals.wait_for_outcomes()

    assert calls == [StopReason.SILENCE]
    assert len(signals.artifacts) == 1
    assert signals.artifacts[0].stop_reason is StopReason.SILENCE
    assert recorder.get_state() is RecordingState.IDLE


@pytest.mark.asyncio
async def test_ongoing_activity_prevents_silence_stop(
    fake_ffmpeg, make_recorder, recordings_dir
):
    recorder, signals = make_recorder()
    options = make_options(
        fake_ffmpeg(mode="record"),
        recordings_dir,
        silence_detection=True,
        silence_duration=0.4,
        silence_check_interval=0.1,
    )

    await recorder.start_recording(options)
    await asyncio.sleep(1.0)
    assert recorder.get_is_recording()

    await recorder.stop_recording()
    assert signals.artifacts[0].stop_reason is StopReason.MANUAL


@pytest.mark.asyncio
async def test_max_duration_stops_recording_once(
    fake_ffmpeg, make_recorder, recordings_dir, monkeypatch
):
    recorder, signals = make_recorder()
    calls = spy_on_stop(recorder, monkeypatch)
    options = make_options(fake_ffmpeg(), recordings_dir, max_duration=0.5)

    started = time.monotonic()
    await recorder.start_recording(options)
    await signals.wait_for_outcomes()

    assert calls == [StopReason.MAX_DURATION]
    assert signals.artifacts[0].stop_reason is StopReason.MAX_DURATION
    assert time.monotonic() - started >= 0.5


@pytest.mark.asyncio
async def test_three_cycles_leave_no_files(fake_ffmpeg, make_recorder, recordings_dir):
    recorder, signals = make_recorder()
    options = make_options(fake_ffmpeg(), recordings_dir)

    for _ in range(3):
        assert await recorder.start_recording(options)
        await asyncio.sleep(0.5)
        await recorder.stop_recording()
        assert recorder.get_state() is RecordingState.IDLE

    assert signals.started == 3
    assert len(signals.artifacts) == 3
    assert signals.errors == []
    assert leftover_recordings(recordings_dir) == []


@pytest.mark.asyncio
async def test_process_crash_reports_unexpected_exit(
    fake_ffmpeg, make_recorder, recordings_dir
):
    recorder, signals = make_recorder()
    await recorder.start_recording(make_options(fake_ffmpeg(mode="crash"), recordings_dir))
    await signals.wait_for_outcomes()

    assert signals.artifacts == []
    assert len(signals.errors) == 1
    error = signals.errors[0]
    assert isinstance(error, ProcessExitedUnexpectedlyError)
    assert error.exit_code == 3
    assert "Segmentation fault" in str(error)
    assert recorder.get_state() is RecordingState.IDLE
    assert leftover_recordings(recordings_dir) == []


@pytest.mark.asyncio
async def test_permission_error_line_stops_recording(
    fake_ffmpeg, make_recorder, recordings_dir
):
    recorder, signals = make_recorder()
    await recorder.start_recording(
        make_options(fake_ffmpeg(mode="permission"), recordings_dir)
    )
    await signals.wait_for_outcomes()
    await asyncio.sleep(0.1)

    assert signals.outcomes == 1
    assert isinstance(signals.errors[0], PermissionDeniedError)
    assert recorder.get_state() is RecordingState.IDLE
    assert leftover_recordings(recordings_dir) == []


@pytest.mark.asyncio
async def test_empty_output_reports_no_audio(fake_ffmpeg, make_recorder, recordings_dir):
    recorder, signals = make_recorder()
    await recorder.start_recording(make_options(fake_ffmpeg(mode="empty"), recordings_dir))
    await asyncio.sleep(0.2)
    await recorder.stop_recording()

    assert signals.artifacts == []
    assert len(signals.errors) == 1
    assert isinstance(signals.errors[0], NoAudioCapturedError)
    assert "too short" in str(signals.errors[0])
    assert leftover_recordings(recordings_dir) == []


@pytest.mark.asyncio
async def test_header_only_output_reports_no_audio(fake_ffmpeg, make_recorder, recordings_dir):
    recorder, signals = make_recorder()
    await recorder.start_recording(make_options(fake_ffmpeg(mode="header"), recordings_dir))
    await asyncio.sleep(0.7)
    await recorder.stop_recording()

    assert signals.artifacts == []
    assert len(signals.errors) == 1
    assert isinstance(signals.errors[0], NoAudioCapturedError)
    assert "too small" in str(signals.errors[0])
    assert recorder.get_state() is RecordingState.IDLE
    assert leftover_recordings(recordings_dir) == []


@pytest.mark.asyncio
async def test_stubborn_encoder_is_killed(fake_ffmpeg, make_recorder, recordings_dir):
    recorder, signals = make_recorder(stop_timeout=0.5)
    await recorder.start_recording(
        make_options(fake_ffmpeg(mode="stubborn"), recordings_dir)
    )
    await asyncio.sleep(0.5)

    started = time.monotonic()
    await recorder.stop_recording()

    assert time.monotonic() - started < 5
    assert len(signals.artifacts) == 1
    assert recorder.get_state() is RecordingState.IDLE
    assert leftover_recordings(recordings_dir) == []


@pytest.mark.asyncio
async def test_missing_binary_fails_start(make_recorder, recordings_dir, tmp_path):
    recorder, signals = make_recorder()
    options = make_options(str(tmp_path / "no-ffmpeg"), recordings_dir)

    assert await recorder.start_recording(options) is False
    assert isinstance(signals.errors[0], BinaryNotFoundError)
    assert signals.started == 0
    assert recorder.get_state() is RecordingState.IDLE


@pytest.mark.asyncio
async def test_unsupported_platform_fails_start(fake_ffmpeg, make_recorder, recordings_dir):
    recorder, signals = make_recorder(platform_id="amiga")

    assert await recorder.start_recording(make_options(fake_ffmpeg(), recordings_dir)) is False
    assert isinstance(signals.errors[0], UnsupportedPlatformError)
    assert recorder.get_state() is RecordingState.IDLE


@pytest.mark.asyncio
async def test_unknown_device_fails_start_without_temp_file(
    fake_ffmpeg, make_recorder, recordings_dir
):
    recorder, signals = make_recorder()
    options = make_options(fake_ffmpeg(), recordings_dir, input_device="Nonexistent Mic")

    assert await recorder.start_recording(options) is False
    assert isinstance(signals.errors[0], DeviceNotFoundError)
    assert leftover_recordings(recordings_dir) == []


@pytest.mark.asyncio
async def test_named_device_is_used(fake_ffmpeg, make_recorder, recordings_dir):
    recorder, signals = make_recorder()
    options = make_options(
        fake_ffmpeg(), recordings_dir, input_device="Yeti Stereo Microphone"
    )

    assert await recorder.start_recording(options)
    await asyncio.sleep(0.5)
    await recorder.stop_recording()
    assert len(signals.artifacts) == 1


@pytest.mark.asyncio
async def test_stop_during_start_fires_one_outcome(
    fake_ffmpeg, make_recorder, recordings_dir
):
    recorder, signals = make_recorder()
    start = asyncio.create_task(
        recorder.start_recording(make_options(fake_ffmpeg(), recordings_dir))
    )
    await asyncio.sleep(0)

    assert recorder.get_state() is RecordingState.STARTING
    assert recorder.get_is_recording()
    assert recorder.stop_recording() is None

    assert await start is True
    await recorder.wait_until_idle()

    assert signals.started == 1
    assert signals.outcomes == 1
    assert recorder.get_state() is RecordingState.IDLE
    assert leftover_recordings(recordings_dir) == []


def test_stale_recordings_swept_on_creation(recordings_dir):
    stale = recordings_dir / "voicescribe-recording-old.wav"
    stale.write_bytes(b"RIFF")
    old = time.time() - 7 * 24 * 3600
    os.utime(stale, (old, old))

    FFmpegAudioRecorder(platform_id="linux", file_manager=FileManager(str(recordings_dir)))

    assert not stale.exists()


def test_supported_mime_types(make_recorder):
    recorder, _ = make_recorder()
    assert "audio/wav" in recorder.get_supported_mime_types()
    assert "audio/ogg; codecs=opus" in recorder.get_supported_mime_types()
