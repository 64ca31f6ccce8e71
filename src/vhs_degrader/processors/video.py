"""Video jobs: frame-loop and batch filter-graph strategies."""

import logging
import math
import os
import shutil
import signal
import tempfile
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from concurrent.futures import wait as futures_wait
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from threading import Event

import cv2
import numpy as np
from numpy.typing import NDArray
from PIL import Image

from ..core import (
    BATCH_END,
    BATCH_START,
    MAX_INPUT_MB,
    ONE_PASS_ENCODE_START,
    SEEK_END_EPSILON,
    SEEK_TIMEOUT_SECONDS,
    TWO_PASS_SPLIT,
)
from ..core.filtergraph import compile_filtergraph
from ..core.pipeline import FramePipeline
from ..core.settings import VHSSettings
from ..errors import (
    EncodeError,
    JobCancelled,
    SeekTimeoutError,
    SourceReadError,
    VHSDegraderError,
)
from .ffmpeg_tool import FFmpegTool

logger = logging.getLogger(__name__)

SUPPORTED_VIDEO_FORMATS = {".mp4", ".webm", ".mov", ".avi", ".mkv", ".m4v"}

ProgressCallback = Callable[[float, str], None]


def is_supported_video(path: Path) -> bool:
    """Check if file is a supported video format."""
    return path.suffix.lower() in SUPPORTED_VIDEO_FORMATS


def check_input(input_path: Path, max_mb: float = MAX_INPUT_MB) -> Path:
    """Reject missing, unsupported or oversized inputs before any work starts."""
    input_path = Path(input_path)
    if not input_path.is_file():
        raise SourceReadError(f"Input file not found: {input_path}", stage="preflight")
    if not is_supported_video(input_path):
        raise SourceReadError(
            f"File type '{input_path.suffix}' not supported. "
            f"Supported: {', '.join(sorted(SUPPORTED_VIDEO_FORMATS))}",
            stage="preflight",
        )
    size_mb = input_path.stat().st_size / (1024 * 1024)
    if size_mb > max_mb:
        raise SourceReadError(
            f"Input file is {size_mb:.0f}MB, exceeds {max_mb:.0f}MB limit",
            stage="preflight",
        )
    return input_path


class JobStatus(Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    PROCESSING = "processing"
    ENCODING = "encoding"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class JobResult:
    """Outcome of a job; output_path is set only on success."""

    status: JobStatus
    output_path: Path | None = None
    frames_processed: int = 0
    error: VHSDegraderError | None = None

    @property
    def ok(self) -> bool:
        return self.status is JobStatus.DONE


class CancelToken:
    """Cooperative cancellation flag shared between a job and its caller."""

    def __init__(self):
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def event(self) -> Event:
        return self._event

    def raise_if_cancelled(self, stage: str) -> None:
        if self._event.is_set():
            raise JobCancelled("Job cancelled", stage=stage)

    def cancel_on_interrupt(self):
        """Install a SIGINT handler that cancels instead of raising; returns the old handler."""

        def _handler(signum, frame):
            logger.warning("Interrupt received, cancelling job")
            self.cancel()

        return signal.signal(signal.SIGINT, _handler)


class ProgressReporter:
    """Forwards (percentage, message) pairs, never letting percentage go backwards."""

    def __init__(self, callback: ProgressCallback | None = None):
        self.callback = callback
        self.percentage = 0.0

    def report(self, percentage: float, message: str = "") -> None:
        percentage = max(self.percentage, min(100.0, max(0.0, float(percentage))))
        self.percentage = percentage
        logger.debug("Progress %.1f%% %s", percentage, message)
        if self.callback:
            self.callback(percentage, message)


class CaptureFrameSource:
    """Seekable frame reader backed by OpenCV."""

    def __init__(self, input_path: Path):
        self.input_path = Path(input_path)
        try:
            self._capture = cv2.VideoCapture(str(self.input_path))
        except cv2.error as e:
            raise SourceReadError(f"Cannot open video file {self.input_path}: {e}", stage="open") from e
        if not self._capture.isOpened():
            raise SourceReadError(f"Cannot open video file: {self.input_path}", stage="open")

        fps = self._capture.get(cv2.CAP_PROP_FPS)
        frame_count = self._capture.get(cv2.CAP_PROP_FRAME_COUNT)
        self.duration = frame_count / fps if fps > 0 and frame_count > 0 else 0.0

    def read_at(self, timestamp: float) -> NDArray[np.uint8] | None:
        """Seek to timestamp (seconds) and return an RGBA frame, or None."""
        try:
            self._capture.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000.0)
            ok, frame = self._capture.read()
            if not ok or frame is None:
                return None
            return cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
        except cv2.error as e:
            raise SourceReadError(f"Decoding failed at {timestamp:.3f}s: {e}", stage="capture") from e

    def close(self) -> None:
        self._capture.release()


class SeekingReader:
    """
    Reads frames from a source on a worker thread so each read can be
    bounded by a timeout.

    A source is only closed once no read is running on it. A stalled read
    is abandoned together with its source: ``reopen()`` starts a fresh
    source and the stalled one is closed when its read finally returns.
    """

    def __init__(self, source_factory: Callable[[Path], CaptureFrameSource], input_path: Path):
        self.source_factory = source_factory
        self.input_path = input_path
        self.sources_opened = 0
        self._open()

    def _open(self) -> None:
        self.source = self.source_factory(self.input_path)
        self.sources_opened += 1
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vhs-seek")
        self._pending: Future | None = None

    @property
    def duration(self) -> float:
        return self.source.duration

    def read_at(self, timestamp: float, timeout: float) -> NDArray[np.uint8] | None:
        """Read one frame; raises FutureTimeoutError if it takes longer than timeout."""
        self._pending = self._executor.submit(self.source.read_at, timestamp)
        frame = self._pending.result(timeout=timeout)
        self._pending = None
        return frame

    def reopen(self) -> None:
        """Abandon the current source (and any stalled read) and open a new one."""
        self._retire(grace=0.0)
        self._open()

    def close(self, grace: float) -> None:
        """Close the source, waiting up to grace seconds for a stalled read."""
        self._retire(grace)

    def _retire(self, grace: float) -> None:
        source, pending = self.source, self._pending
        self._executor.shutdown(wait=False)
        self._pending = None

        if pending is not None and not pending.done() and grace > 0:
            futures_wait([pending], timeout=grace)
        if pending is None or pending.done():
            source.close()
            return

        logger.warning("A frame read is still running; its source will close when it returns")
        pending.add_done_callback(lambda _: source.close())


class _Job:
    """State machine and cleanup shared by both strategies."""

    strategy = ""
    options: tuple[str, ...] = ()  # extra keyword arguments the constructor accepts

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        settings: VHSSettings,
        tool: FFmpegTool,
        progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ):
        self.input_path = Path(input_path)
        self.output_path = Path(output_path)
        self.settings = settings.clamped()
        self.tool = tool
        self.progress = ProgressReporter(progress)
        self.cancel = cancel if cancel is not None else CancelToken()
        self.state = JobStatus.IDLE
        self.frames_processed = 0

    def _enter(self, state: JobStatus) -> None:
        logger.debug("%s job: %s -> %s", self.strategy, self.state.value, state.value)
        self.state = state

    def run(self) -> JobResult:
        """Run the job to completion; fatal errors are reported, not raised."""
        if self.state is not JobStatus.IDLE:
            raise RuntimeError("A job can only be run once")

        logger.info("Starting %s job: %s -> %s", self.strategy, self.input_path, self.output_path)
        try:
            with tempfile.TemporaryDirectory(prefix="vhs_") as temp_dir:
                try:
                    output = self._execute(Path(temp_dir))
                    if output is not None:
                        self._place_output(output)
                except VHSDegraderError:
                    # Stop writers before their directory goes away
                    self._abort()
                    raise
        except JobCancelled:
            self._enter(JobStatus.CANCELLED)
            logger.warning("%s job cancelled after %d frames", self.strategy, self.frames_processed)
            return JobResult(JobStatus.CANCELLED, frames_processed=self.frames_processed)
        except VHSDegraderError as e:
            self._enter(JobStatus.FAILED)
            logger.error("%s job failed: %s", self.strategy, e)
            return JobResult(JobStatus.FAILED, frames_processed=self.frames_processed, error=e)

        self._enter(JobStatus.DONE)
        self.progress.report(100.0, "Complete")
        logger.info("%s job done: %d frames", self.strategy, self.frames_processed)
        return JobResult(
            JobStatus.DONE,
            output_path=self.output_path if output is not None else None,
            frames_processed=self.frames_processed,
        )

    def _place_output(self, output: Path) -> None:
        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(output), str(self.output_path))
        except OSError as e:
            raise EncodeError(f"Cannot write {self.output_path}: {e}", stage="output") from e

    def _execute(self, temp_dir: Path) -> Path | None:
        raise NotImplementedError

    def _abort(self) -> None:
        """Release anything _execute left open."""


class FrameLoopJob(_Job):
    """
    Sample the clip at the target frame rate, run each frame through a
    FramePipeline and stream the result into an encoder at the same rate.
    """

    strategy = "frames"
    options = ("source_factory", "two_pass", "seed", "seek_timeout")

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        settings: VHSSettings,
        tool: FFmpegTool,
        progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
        source_factory: Callable[[Path], CaptureFrameSource] = CaptureFrameSource,
        two_pass: bool = False,
        seed: int | None = None,
        seek_timeout: float = SEEK_TIMEOUT_SECONDS,
    ):
        super().__init__(input_path, output_path, settings, tool, progress, cancel)
        self.source_factory = source_factory
        self.two_pass = two_pass
        self.seek_timeout = seek_timeout
        self.pipeline = FramePipeline(self.settings, seed=seed)
        self._encoder = None

    def _execute(self, temp_dir: Path) -> Path | None:
        fps = self.settings.target_fps
        self._enter(JobStatus.EXTRACTING)
        self.progress.report(0.0, "Opening source")

        info = self.tool.probe(self.input_path)
        audio_source = self.input_path if info.has_audio else None

        reader = SeekingReader(self.source_factory, self.input_path)
        try:
            duration = reader.duration or info.duration
            total = int(math.floor(duration * fps)) if duration > 0 else 0
            logger.info("Processing %.2fs at %g FPS = %d frames", duration, fps, total)

            if total == 0:
                logger.warning("Clip has no frames at %g FPS; nothing to encode", fps)
                return None

            self.pipeline.reset()
            output = temp_dir / "output.mp4"
            frames_dir = temp_dir / "frames"

            def read(index: int) -> NDArray[np.uint8]:
                if self.two_pass:
                    return _load_png(frames_dir / f"frame_{index:06d}.png")
                return self._read_frame(reader, index, fps, duration)

            if self.two_pass:
                frames_dir.mkdir()
                self._extract_all(reader, total, fps, duration, frames_dir)
                start, span = TWO_PASS_SPLIT, 100.0 - TWO_PASS_SPLIT
            else:
                start, span = 0.0, ONE_PASS_ENCODE_START

            self._enter(JobStatus.PROCESSING)
            for index in range(total):
                self.cancel.raise_if_cancelled("process")
                processed = self.pipeline.process_frame(read(index))

                if self._encoder is None:
                    height, width = processed.shape[:2]
                    self._encoder = self.tool.open_encoder(output, width, height, fps, audio_source)
                self._encoder.write(processed)

                self.frames_processed = index + 1
                self.progress.report(
                    start + span * (index + 1) / total,
                    f"Frame {index + 1}/{total}",
                )

            self._enter(JobStatus.ENCODING)
            self.progress.report(max(self.progress.percentage, ONE_PASS_ENCODE_START), "Finalizing output")
            encoder, self._encoder = self._encoder, None
            return encoder.close()
        finally:
            reader.close(grace=self.seek_timeout)

    def _extract_all(
        self,
        reader: SeekingReader,
        total: int,
        fps: float,
        duration: float,
        frames_dir: Path,
    ) -> None:
        """First pass of two-pass mode: write every sampled frame as PNG."""
        for index in range(total):
            self.cancel.raise_if_cancelled("extract")
            frame = self._read_frame(reader, index, fps, duration)
            path = frames_dir / f"frame_{index:06d}.png"
            try:
                Image.fromarray(frame).save(path)
            except OSError as e:
                raise SourceReadError(f"Cannot write extracted frame {path}: {e}", stage="extract") from e
            self.progress.report(
                TWO_PASS_SPLIT * (index + 1) / total,
                f"Extracted {index + 1}/{total}",
            )

    def _read_frame(
        self,
        reader: SeekingReader,
        index: int,
        fps: float,
        duration: float,
    ) -> NDArray[np.uint8]:
        """Seek and capture one frame; a timed-out seek is retried once on a fresh source."""
        timestamp = min(index / fps, max(0.0, duration - SEEK_END_EPSILON))

        for attempt in (1, 2):
            try:
                frame = reader.read_at(timestamp, self.seek_timeout)
            except FutureTimeoutError:
                logger.warning(
                    "Seek to %.3fs timed out after %.1fs (attempt %d)",
                    timestamp, self.seek_timeout, attempt,
                )
                if attempt == 1:
                    reader.reopen()
                continue
            if frame is None:
                raise SourceReadError(f"Could not capture frame {index} at {timestamp:.3f}s", stage="capture")
            return frame

        raise SeekTimeoutError(
            f"Frame {index} at {timestamp:.3f}s did not settle within {self.seek_timeout:.1f}s",
            stage="seek",
        )

    def _abort(self) -> None:
        if self._encoder is not None:
            self._encoder.abort()
            self._encoder = None


def _load_png(path: Path) -> NDArray[np.uint8]:
    try:
        with Image.open(path) as img:
            return np.array(img.convert("RGBA"), dtype=np.uint8)
    except OSError as e:
        raise SourceReadError(f"Cannot read extracted frame {path}: {e}", stage="process") from e


class BatchJob(_Job):
    """Compile the settings into a filter-graph and let ffmpeg process the whole clip."""

    strategy = "batch"

    def _execute(self, temp_dir: Path) -> Path:
        self._enter(JobStatus.EXTRACTING)
        self.progress.report(0.0, "Reading source")
        info = self.tool.probe(self.input_path)

        self._enter(JobStatus.PROCESSING)
        graph = compile_filtergraph(self.settings, frame_height=info.height)
        logger.info("Filter chain: %s", graph)
        if self.settings.ghosting or self.settings.tracking_error:
            logger.info("Ghosting and tracking error are not available in batch mode")

        self.cancel.raise_if_cancelled("compile")
        self._enter(JobStatus.ENCODING)
        self.progress.report(BATCH_START, "Processing video")

        def on_time(seconds: float) -> None:
            if info.duration > 0:
                fraction = min(1.0, seconds / info.duration)
                self.progress.report(BATCH_START + (BATCH_END - BATCH_START) * fraction, "Processing video")

        output = self.tool.run_filtergraph(
            graph,
            self.input_path,
            temp_dir / "output.mp4",
            on_time=on_time,
            cancel=self.cancel.event,
        )
        self.frames_processed = info.total_frames
        self.progress.report(BATCH_END, "Finalizing output")
        return output


STRATEGIES = {"frames": FrameLoopJob, "batch": BatchJob}


def process_video(
    input_path: Path,
    output_path: Path | None = None,
    settings: VHSSettings | None = None,
    strategy: str = "frames",
    suffix: str = "_vhs",
    progress: ProgressCallback | None = None,
    cancel: CancelToken | None = None,
    **job_options,
) -> JobResult:
    """
    Apply VHS degradation to a video file.

    Args:
        input_path: Path to input video
        output_path: Optional explicit output path (always MP4)
        settings: Degradation settings (neutral when omitted)
        strategy: "frames" (in-process pipeline) or "batch" (ffmpeg filter-graph)
        suffix: Suffix for auto-generated output filename
        progress: Optional callback(percentage, message)
        cancel: Optional token to stop the job cooperatively
        **job_options: Extra FrameLoopJob options (two_pass, seed, seek_timeout);
            other strategies reject them with ValueError

    Returns:
        JobResult with the final status
    """
    input_path = Path(input_path)
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy '{strategy}' (choose from {', '.join(STRATEGIES)})")
    job_cls = STRATEGIES[strategy]
    unsupported = sorted(set(job_options) - set(job_cls.options))
    if unsupported:
        raise ValueError(f"The {strategy} strategy does not accept: {', '.join(unsupported)}")

    # Determine output path (always MP4)
    if output_path is None:
        output_path = input_path.parent / f"{input_path.stem}{suffix}.mp4"
    output_path = Path(output_path)
    if output_path.suffix.lower() != ".mp4":
        output_path = output_path.with_suffix(".mp4")

    try:
        check_input(input_path)
    except SourceReadError as e:
        logger.error("Rejected input: %s", e)
        return JobResult(JobStatus.FAILED, error=e)

    if os.path.abspath(input_path) == os.path.abspath(output_path):
        return JobResult(
            JobStatus.FAILED,
            error=SourceReadError("Output path must differ from the input", stage="preflight"),
        )

    try:
        with FFmpegTool.acquire() as tool:
            job = job_cls(
                input_path,
                output_path,
                settings or VHSSettings(),
                tool,
                progress=progress,
                cancel=cancel,
                **job_options,
            )
            return job.run()
    except VHSDegraderError as e:
        logger.error("Could not start job: %s", e)
        return JobResult(JobStatus.FAILED, error=e)
