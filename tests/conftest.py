"""
Shared fixtures: synthetic frames plus fake ffmpeg and frame-source
collaborators, so job tests never need a real ffmpeg binary or video file.
"""

import tempfile
import time
from pathlib import Path

import numpy as np
import pytest

from vhs_degrader.errors import EncodeError
from vhs_degrader.processors.ffmpeg_tool import VideoInfo


def make_gradient_frame(width=64, height=48):
    """RGBA frame with a unique value per column (not blank)."""
    frame = np.zeros((height, width, 4), dtype=np.uint8)
    frame[:, :, 0] = np.linspace(0, 255, width, dtype=np.uint8)  # R gradient
    frame[:, :, 1] = np.linspace(0, 255, height, dtype=np.uint8)[:, np.newaxis]  # G gradient
    frame[:, :, 2] = np.linspace(255, 0, width, dtype=np.uint8)  # B inverse
    frame[:, :, 3] = 255
    return frame


def make_solid_frame(color, width=8, height=8):
    frame = np.empty((height, width, 4), dtype=np.uint8)
    frame[:, :] = color
    return frame


@pytest.fixture
def gradient_frame():
    return make_gradient_frame()


@pytest.fixture
def random_frame():
    rng = np.random.default_rng(7)
    frame = rng.integers(0, 256, (40, 60, 4), dtype=np.uint8)
    frame[:, :, 3] = 255
    return frame


# ---------------------------------------------------------------------------
# Fake collaborators for job tests
# ---------------------------------------------------------------------------


class FakeEncoder:
    def __init__(self, output_path, width, height, fps, audio_source):
        self.output_path = Path(output_path)
        self.width = width
        self.height = height
        self.fps = fps
        self.audio_source = audio_source
        self.frames = []
        self.closed = False
        self.aborted = False

    def write(self, frame):
        self.frames.append(frame.copy())

    def close(self):
        self.output_path.write_bytes(b"encoded")
        self.closed = True
        return self.output_path

    def abort(self):
        self.aborted = True
        self.dir_existed_on_abort = self.output_path.parent.exists()


class FakeTool:
    """Stands in for FFmpegTool: records calls, writes placeholder outputs."""

    def __init__(self, duration=1.0, height=48, width=64, fps=30.0, has_audio=True, fail=False):
        self.info = VideoInfo(
            width=width,
            height=height,
            fps=fps,
            duration=duration,
            total_frames=int(duration * fps),
            has_audio=has_audio,
        )
        self.fail = fail
        self.encoders = []
        self.graphs = []

    def probe(self, input_path):
        return self.info

    def open_encoder(self, output_path, width, height, fps, audio_source=None):
        encoder = FakeEncoder(output_path, width, height, fps, audio_source)
        self.encoders.append(encoder)
        return encoder

    def run_filtergraph(self, graph, input_path, output_path, on_time=None, cancel=None):
        self.graphs.append(str(graph))
        if self.fail:
            raise EncodeError("ffmpeg exited with code 1", log="Invalid argument")
        for seconds in (self.info.duration / 2, self.info.duration):
            if on_time:
                on_time(seconds)
        Path(output_path).write_bytes(b"encoded")
        return Path(output_path)


class FakeSource:
    """Frame source whose frame content encodes the requested timestamp."""

    def __init__(self, duration=1.0, width=64, height=48, fail_at=None, delays=None):
        self.duration = duration
        self.width = width
        self.height = height
        self.fail_at = fail_at
        self.delays = list(delays or [])
        self.timestamps = []
        self.closed = False
        self.reading = False
        self.closed_during_read = False

    def read_at(self, timestamp):
        self.reading = True
        try:
            if self.delays:
                time.sleep(self.delays.pop(0))
            self.timestamps.append(timestamp)
            if self.fail_at is not None and len(self.timestamps) - 1 >= self.fail_at:
                return None
            value = int(timestamp * 100) % 256
            return make_solid_frame((value, value, value, 255), self.width, self.height)
        finally:
            self.reading = False

    def close(self):
        if self.reading:
            self.closed_during_read = True
        self.closed = True


class FakeSourceFactory:
    """Opens a new FakeSource per call, each with the next entry of delays_per_source."""

    def __init__(self, duration=1.0, delays_per_source=()):
        self.duration = duration
        self.delays_per_source = list(delays_per_source)
        self.opened = []

    def __call__(self, input_path):
        delays = self.delays_per_source.pop(0) if self.delays_per_source else None
        source = FakeSource(duration=self.duration, delays=delays)
        self.opened.append(source)
        return source


@pytest.fixture
def fake_tool():
    return FakeTool()


@pytest.fixture
def scratch_dir(tmp_path, monkeypatch):
    """Redirect job temp directories so tests can check they are cleaned up."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))
    return scratch


@pytest.fixture
def video_file(tmp_path):
    """Placeholder input; fakes never decode it."""
    path = tmp_path / "input.mp4"
    path.write_bytes(b"\x00" * 1024)
    return path
