"""Handle on the external ffmpeg tool, acquired per job."""

import logging
import shutil
import subprocess
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from threading import Event

import ffmpeg
import numpy as np
from numpy.typing import NDArray

from ..core import (
    AUDIO_BITRATE,
    AUDIO_CODEC,
    BITRATE_1080P,
    BITRATE_4K,
    BITRATE_720P,
    BITRATE_HIGHER,
    PIXEL_FORMAT,
    PIXELS_1080P,
    PIXELS_4K,
    PIXELS_720P,
    VIDEO_CODEC,
    VIDEO_CRF,
    VIDEO_PRESET,
)
from ..core.filtergraph import FilterGraph
from ..errors import EncodeError, JobCancelled, SourceReadError

logger = logging.getLogger(__name__)

_LOG_TAIL = 2000  # characters of ffmpeg stderr kept on failure


@dataclass(frozen=True)
class VideoInfo:
    """Stream metadata from ffprobe."""

    width: int
    height: int
    fps: float
    duration: float
    total_frames: int
    has_audio: bool


def calculate_bitrate(width: int, height: int) -> int:
    """Calculate optimal bitrate based on resolution."""
    pixels = width * height

    if pixels <= PIXELS_720P:
        return BITRATE_720P
    elif pixels <= PIXELS_1080P:
        return BITRATE_1080P
    elif pixels <= PIXELS_4K:
        return BITRATE_4K
    else:
        return BITRATE_HIGHER


def _parse_fps(fps_str: str) -> float:
    # Frame rate can be "30/1" or "29.97"
    if "/" in fps_str:
        num, den = map(int, fps_str.split("/"))
        return num / den if den != 0 else 30.0
    return float(fps_str)


class RawVideoEncoder:
    """
    Streams RGBA frames into an ffmpeg encoder over stdin.

    Audio, when given, is taken from the source file and re-encoded.
    """

    def __init__(
        self,
        binary: str,
        output_path: Path,
        width: int,
        height: int,
        fps: float,
        audio_source: Path | None = None,
    ):
        self.output_path = output_path
        self.width = width
        self.height = height
        self.frames_written = 0

        video_input = ffmpeg.input(
            "pipe:",
            format="rawvideo",
            pix_fmt="rgba",
            s=f"{width}x{height}",
            framerate=fps,
        )
        output_kwargs = dict(
            vcodec=VIDEO_CODEC,
            preset=VIDEO_PRESET,
            crf=VIDEO_CRF,
            video_bitrate=calculate_bitrate(width, height),
            pix_fmt=PIXEL_FORMAT,
            movflags="+faststart",
        )
        if audio_source is not None:
            audio_input = ffmpeg.input(str(audio_source)).audio
            stream = ffmpeg.output(
                video_input,
                audio_input,
                str(output_path),
                acodec=AUDIO_CODEC,
                audio_bitrate=AUDIO_BITRATE,
                shortest=None,
                **output_kwargs,
            )
        else:
            stream = ffmpeg.output(video_input, str(output_path), **output_kwargs)

        cmd = stream.global_args("-loglevel", "error").overwrite_output().compile(cmd=binary)
        logger.debug("Encoder command: %s", " ".join(cmd))

        self._stderr = tempfile.TemporaryFile()
        self._process = subprocess.Popen(
            cmd,
            stdin=subprocess.PIPE,
            stdout=subprocess.DEVNULL,
            stderr=self._stderr,
        )

    def _read_log(self) -> str:
        self._stderr.seek(0)
        return self._stderr.read().decode("utf-8", errors="replace")[-_LOG_TAIL:]

    def write(self, frame: NDArray[np.uint8]) -> None:
        """Append one (H, W, 4) frame."""
        if frame.shape != (self.height, self.width, 4):
            raise EncodeError(
                f"Frame shape {frame.shape} does not match encoder size {self.width}x{self.height}"
            )
        try:
            self._process.stdin.write(np.ascontiguousarray(frame).tobytes())
        except (BrokenPipeError, OSError) as e:
            self._process.wait()
            raise EncodeError(f"Encoder stopped accepting frames: {e}", log=self._read_log()) from e
        self.frames_written += 1

    def close(self) -> Path:
        """Finish encoding and return the output path."""
        try:
            self._process.stdin.close()
            returncode = self._process.wait()
            if returncode != 0:
                raise EncodeError(f"ffmpeg exited with code {returncode}", log=self._read_log())
            if not self.output_path.exists():
                raise EncodeError(f"Failed to create output video: {self.output_path}")
            return self.output_path
        finally:
            self._stderr.close()

    def abort(self) -> None:
        """Kill the encoder without finalizing its output."""
        if self._process.poll() is None:
            self._process.kill()
            self._process.wait()
        if not self._stderr.closed:
            self._stderr.close()


class FFmpegTool:
    """
    One job's handle on the ffmpeg binary.

    Obtain through ``FFmpegTool.acquire()`` so the handle's lifetime matches
    the job.
    """

    def __init__(self, binary: str):
        self.binary = binary
        self._encoders: list[RawVideoEncoder] = []

    @classmethod
    @contextmanager
    def acquire(cls, binary: str = "ffmpeg") -> Iterator["FFmpegTool"]:
        path = shutil.which(binary)
        if not path:
            raise EncodeError(f"{binary} not found on PATH", stage="setup")
        tool = cls(path)
        logger.debug("Acquired ffmpeg handle: %s", path)
        try:
            yield tool
        finally:
            tool.release()

    def release(self) -> None:
        """Abort any encoder the job left open."""
        for encoder in self._encoders:
            encoder.abort()
        self._encoders.clear()

    def probe(self, input_path: Path) -> VideoInfo:
        """Get video metadata using ffprobe."""
        try:
            probe = ffmpeg.probe(str(input_path))
        except ffmpeg.Error as e:
            stderr = (e.stderr or b"").decode("utf-8", errors="replace")
            raise SourceReadError(f"Cannot read {input_path}: {stderr.strip()[-500:]}", stage="probe") from e

        video_stream = next((s for s in probe["streams"] if s["codec_type"] == "video"), None)
        if video_stream is None:
            raise SourceReadError(f"No video stream found in {input_path}", stage="probe")

        # Check for audio stream
        audio_stream = next(
            (s for s in probe["streams"] if s["codec_type"] == "audio"),
            None,
        )

        fps = _parse_fps(video_stream.get("r_frame_rate", "30/1"))
        duration = float(probe["format"].get("duration", 0) or 0)
        total_frames = int(duration * fps) if duration > 0 else 0

        return VideoInfo(
            width=int(video_stream["width"]),
            height=int(video_stream["height"]),
            fps=fps,
            duration=duration,
            total_frames=total_frames,
            has_audio=audio_stream is not None,
        )

    def run_filtergraph(
        self,
        graph: FilterGraph | str,
        input_path: Path,
        output_path: Path,
        on_time: Callable[[float], None] | None = None,
        cancel: Event | None = None,
    ) -> Path:
        """
        Apply a filter-graph to a whole file.

        Args:
            graph: Compiled graph or its ``-vf`` string
            input_path: Source video
            output_path: Encoded result
            on_time: Called with seconds of output written so far
            cancel: Set to stop ffmpeg; raises JobCancelled

        Returns:
            Path to the encoded output
        """
        cmd = (
            ffmpeg.input(str(input_path))
            .output(
                str(output_path),
                vf=str(graph),
                vcodec=VIDEO_CODEC,
                preset=VIDEO_PRESET,
                crf=VIDEO_CRF,
                pix_fmt=PIXEL_FORMAT,
                movflags="+faststart",
                acodec=AUDIO_CODEC,
                audio_bitrate=AUDIO_BITRATE,
            )
            .global_args("-progress", "pipe:1", "-nostats", "-loglevel", "error")
            .overwrite_output()
            .compile(cmd=self.binary)
        )
        logger.debug("ffmpeg command: %s", " ".join(cmd))

        with tempfile.TemporaryFile() as stderr:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=stderr,
                text=True,
            )
            try:
                for line in process.stdout:
                    if cancel is not None and cancel.is_set():
                        raise JobCancelled("Cancelled while encoding", stage="encode")
                    key, _, value = line.strip().partition("=")
                    if key in ("out_time_us", "out_time_ms") and value.lstrip("-").isdigit() and on_time:
                        # Both keys report microseconds
                        on_time(max(0, int(value)) / 1_000_000)
                returncode = process.wait()
            finally:
                if process.poll() is None:
                    process.kill()
                    process.wait()
                process.stdout.close()

            if cancel is not None and cancel.is_set():
                raise JobCancelled("Cancelled while encoding", stage="encode")
            if returncode != 0:
                stderr.seek(0)
                log = stderr.read().decode("utf-8", errors="replace")[-_LOG_TAIL:]
                raise EncodeError(f"ffmpeg exited with code {returncode}", log=log)

        if not output_path.exists():
            raise EncodeError(f"Failed to create output video: {output_path}")
        return output_path

    def open_encoder(
        self,
        output_path: Path,
        width: int,
        height: int,
        fps: float,
        audio_source: Path | None = None,
    ) -> RawVideoEncoder:
        """Start an encoder that accepts RGBA frames."""
        encoder = RawVideoEncoder(self.binary, output_path, width, height, fps, audio_source)
        self._encoders.append(encoder)
        return encoder
