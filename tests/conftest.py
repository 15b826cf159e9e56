"""Shared test fixtures for scenecompose tests."""

import subprocess
import threading
from pathlib import Path

import imageio_ffmpeg
import pytest
from PIL import Image

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


@pytest.fixture
def source_video(tmp_path):
    """Create a 5-second test video (320x240, 10fps) with audio using ffmpeg."""
    out = tmp_path / "source.mp4"
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", "color=c=blue:s=320x240:d=5:r=10",
            "-f", "lavfi", "-i", "anullsrc=r=44100:cl=mono",
            "-shortest",
            "-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p",
            "-c:a", "aac", "-b:a", "32k",
            str(out),
        ],
        check=True,
        capture_output=True,
    )
    return out


@pytest.fixture
def silent_video(tmp_path):
    """A 2-second video without an audio stream."""
    out = tmp_path / "silent.mp4"
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", "color=c=green:s=160x120:d=2:r=10",
            "-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p",
            str(out),
        ],
        check=True,
        capture_output=True,
    )
    return out


@pytest.fixture
def tone_audio(tmp_path):
    """A 1-second sine tone."""
    out = tmp_path / "tone.m4a"
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=1",
            "-c:a", "aac", "-b:a", "64k",
            str(out),
        ],
        check=True,
        capture_output=True,
    )
    return out


@pytest.fixture
def image_file(tmp_path):
    """A 64x48 red PNG."""
    out = tmp_path / "red.png"
    Image.new("RGB", (64, 48), (255, 0, 0)).save(out)
    return out


@pytest.fixture
def gif_file(tmp_path):
    """A 3-frame animated GIF (32x32)."""
    out = tmp_path / "anim.gif"
    frames = [Image.new("RGB", (32, 32), c) for c in ((255, 0, 0), (0, 255, 0), (0, 0, 255))]
    frames[0].save(out, save_all=True, append_images=frames[1:], duration=100, loop=0)
    return out


class FakeRunner:
    """Stands in for EncoderRunner: writes a small file to the output path.

    Args:
        fail: Exceptions raised by successive calls, in order. Once
            exhausted, calls succeed.
        gate: When set, every call blocks until the event is set.
    """

    def __init__(self, fail=None, gate: threading.Event | None = None):
        self.fail = list(fail or [])
        self.gate = gate
        self.calls = []
        self.terminated = False
        self._lock = threading.Lock()

    def run(self, args, log_path, on_progress=None, label="ffmpeg"):
        with self._lock:
            self.calls.append((label, list(args)))
            error = self.fail.pop(0) if self.fail else None
        if self.gate is not None:
            self.gate.wait(5)
        if self.terminated:
            from scenecompose.errors import ExternalProcessError
            raise ExternalProcessError(f"{label}: terminated", returncode=-15, retryable=True)
        if error is not None:
            raise error
        if on_progress:
            on_progress(1.0)
        Path(args[-1]).write_bytes(b"artifact")

    def terminate_all(self, grace=5.0):
        self.terminated = True
        if self.gate is not None:
            self.gate.set()


@pytest.fixture
def fake_runner():
    return FakeRunner()
