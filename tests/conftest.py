"""Shared fixtures: a scriptable stand-in for the FFmpeg binary."""

import asyncio
import itertools
import stat
import sys
import textwrap
from pathlib import Path
from typing import List

import pytest

PULSE_LISTING = (
    "Auto-detected sources for pulse:\n"
    "* alsa_input.pci-0000_00_1f.3.analog-stereo [Built-in Audio Analog Stereo]\n"
    "  alsa_output.pci-0000_00_1f.3.analog-stereo.monitor "
    "[Monitor of Built-in Audio Analog Stereo]\n"
    "  alsa_input.usb-Blue_Yeti-00.analog-stereo [Yeti Stereo Microphone]\n"
)

FAKE_FFMPEG_SOURCE = textwrap.dedent(
    '''
    import os
    import signal
    import sys
    import time

    MODE = {mode!r}
    VERSION_EXIT = {version_exit!r}
    LISTING = {listing!r}
    LISTING_EXIT = {listing_exit!r}
    SILENT_AFTER = {silent_after!r}
    PAYLOAD = b"RIFF" + b"\\x00" * (74 if MODE == "header" else 2044)
    OUTPUT_SUFFIXES = (".wav", ".mp3", ".opus", ".webm")

    args = sys.argv[1:]


    def emit(line, end="\\n"):
        sys.stderr.write(line + end)
        sys.stderr.flush()


    if "-version" in args:
        print("ffmpeg version 6.1-fake Copyright (c) 2000-2023 the FFmpeg developers")
        sys.exit(VERSION_EXIT)

    if "-list_devices" in args or "-sources" in args:
        sys.stderr.write(LISTING)
        sys.stderr.flush()
        if LISTING_EXIT < 0:
            os.kill(os.getpid(), -LISTING_EXIT)
        sys.exit(LISTING_EXIT)

    output = next((a for a in reversed(args) if a.endswith(OUTPUT_SUFFIXES)), None)
    limit = float(args[args.index("-t") + 1]) if "-t" in args else None

    stopped = False


    def on_term(signum, frame):
        global stopped
        stopped = True


    if MODE == "stubborn":
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
    else:
        signal.signal(signal.SIGTERM, on_term)

    emit("ffmpeg version 6.1-fake Copyright (c) 2000-2023 the FFmpeg developers")
    emit("  built with fake-cc 1.0")
    emit("  libavutil      58. 29.100 / 58. 29.100")

    if MODE == "permission":
        emit("[avfoundation @ 0x7f8] Failed to open device: Permission denied")
        sys.exit(1)

    emit("Input #0, pulse, from 'default':")
    emit("  Stream #0:0: Audio: pcm_s16le, 16000 Hz, mono, s16, 256 kb/s")

    if MODE == "crash":
        emit("Segmentation fault")
        sys.exit(3)

    emit("Press [q] to stop, [?] for help")

    if MODE != "empty" and output:
        with open(output, "wb") as f:
            f.write(PAYLOAD)

    start = time.monotonic()
    size = 0
    while not stopped:
        elapsed = time.monotonic() - start
        if limit is not None and elapsed >= limit:
            break
        if MODE != "silent" or elapsed < SILENT_AFTER:
            size += 32
            emit(f"size={{size:8d}}kB time=00:00:00.00 bitrate= 256.0kbits/s", end="\\r")
        time.sleep(0.05)

    sys.exit(255 if stopped else 0)
    '''
)

_counter = itertools.count()

skip_on_windows = pytest.mark.skipif(
    sys.platform == "win32", reason="the fake encoder relies on /bin/sh and POSIX signals"
)


@pytest.fixture
def fake_ffmpeg(tmp_path):
    """Factory building an executable that behaves like a scripted FFmpeg.

    Modes: ``record`` (writes audio, progresses until SIGTERM), ``silent``
    (stops reporting progress after ``silent_after`` seconds), ``crash``,
    ``permission``, ``empty`` (never writes), ``header`` (writes only a
    container header) and ``stubborn`` (ignores SIGTERM).
    """

    def factory(
        mode: str = "record",
        version_exit: int = 0,
        listing: str = PULSE_LISTING,
        listing_exit: int = 1,
        silent_after: float = 0.0,
    ) -> str:
        bin_dir = tmp_path / f"bin-{next(_counter)}"
        bin_dir.mkdir()

        script = bin_dir / "fake_ffmpeg.py"
        script.write_text(
            FAKE_FFMPEG_SOURCE.format(
                mode=mode,
                version_exit=version_exit,
                listing=listing,
                listing_exit=listing_exit,
                silent_after=silent_after,
            )
        )

        wrapper = bin_dir / "ffmpeg"
        wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n')
        wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(wrapper)

    return factory


@pytest.fixture
def recordings_dir(tmp_path) -> Path:
    directory = tmp_path / "recordings"
    directory.mkdir()
    return directory


def leftover_recordings(directory: Path) -> List[str]:
    return sorted(p.name for p in directory.iterdir() if p.is_file())


class SignalCollector:
    """Counts the notifications a recorder emits."""

    def __init__(self, recorder) -> None:
        self.started = 0
        self.artifacts = []
        self.errors = []
        recorder.recording_started.connect(self._on_started)
        recorder.recording_stopped.connect(self._on_stopped)
        recorder.error_occurred.connect(self._on_error)

    def _on_started(self) -> None:
        self.started += 1

    def _on_stopped(self, artifact) -> None:
        self.artifacts.append(artifact)

    def _on_error(self, error) -> None:
        self.errors.append(error)

    @property
    def outcomes(self) -> int:
        return len(self.artifacts) + len(self.errors)

    async def wait_for_outcomes(self, count: int = 1, timeout: float = 10.0) -> None:
        async def poll() -> None:
            while self.outcomes < count:
                await asyncio.sleep(0.02)

        await asyncio.wait_for(poll(), timeout=timeout)


@pytest.fixture
def isolated_path(monkeypatch, tmp_path):
    """Empty PATH and no standard install locations."""
    empty = tmp_path / "empty-path"
    empty.mkdir()
    monkeypatch.setenv("PATH", str(empty))
    monkeypatch.setattr(
        "voicescribe.audio.availability.STANDARD_LOCATIONS", [], raising=True
    )
    return empty

