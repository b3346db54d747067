"""Output sinks: still-image writer and streaming FFmpeg encoder.

A sink is used in two places. Worker threads call ``encode_frame`` in parallel
to turn pixels into a payload; the pipeline then calls ``write`` from a single
thread in strictly ascending frame order.
"""

import logging
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import Protocol, runtime_checkable

import ffmpeg
import numpy as np

from lapsify.codec import STILL_FORMATS, ImageCodec, PillowCodec
from lapsify.config import VideoSettings
from lapsify.errors import ConfigurationError, EncodeError
from lapsify.models import EncodedFrame, FrameResult

logger = logging.getLogger(__name__)

# Relative aspect ratio difference tolerated before warning about distortion
ASPECT_TOLERANCE = 0.05


@runtime_checkable
class OutputSink(Protocol):
    """Protocol for pipeline output sinks."""

    def encode_frame(self, pixels: np.ndarray) -> EncodedFrame:
        """Encode one transformed frame. Called concurrently from workers."""
        ...

    def open(self) -> None:
        """Prepare the destination. Called once before the first write."""
        ...

    def write(self, result: FrameResult) -> None:
        """Deliver one frame. Called in ascending frame order from one thread."""
        ...

    def close(self) -> None:
        """Finish a successful run.

        Raises:
            EncodeError: If the output could not be finalised
        """
        ...

    def abort(self) -> None:
        """Discard partial output after a failure or cancellation."""
        ...


def _make_dir(directory: Path) -> None:
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise EncodeError(f"Cannot create output directory {directory}: {e}") from e


def _even(value: int) -> int:
    return value + 1 if value % 2 else value


def resolve_output_resolution(frame_size: tuple[int, int], target: tuple[int, int] | None) -> tuple[int, int] | None:
    """Fit frames into a requested video resolution, keeping their aspect ratio.

    The frame is fitted to the target height when it is wider than the target
    and to the target width otherwise. Both sides are rounded up to even
    numbers for H.264.

    Args:
        frame_size: (width, height) of the frames reaching the encoder
        target: Requested (width, height), or None to keep the frame size

    Returns:
        (width, height) for the scale filter, or None when no scaling is needed
    """
    if target is None:
        return None

    frame_width, frame_height = frame_size
    target_width, target_height = target
    frame_ratio = frame_width / frame_height
    target_ratio = target_width / target_height

    if frame_ratio > target_ratio:
        width, height = int(target_height * frame_ratio), target_height
    else:
        width, height = target_width, int(target_width / frame_ratio)
    width, height = _even(width), _even(height)

    if abs(frame_ratio - target_ratio) > ASPECT_TOLERANCE:
        logger.warning(
            "Frame aspect ratio (%.2f:1) differs from target (%.2f:1); output resolution %dx%d",
            frame_ratio,
            target_ratio,
            width,
            height,
        )
    else:
        logger.info("Frames %dx%d -> output resolution %dx%d", frame_width, frame_height, width, height)
    return width, height


class ImageDirectorySink:
    """Writes each frame as ``<source stem>_processed.<format>`` in a directory.

    Args:
        output_dir: Destination directory (created if missing)
        output_format: jpg, jpeg, png, tif or tiff
        codec: Image codec used for encoding (default: PillowCodec)
    """

    def __init__(self, output_dir: Path, output_format: str = "jpg", codec: ImageCodec | None = None):
        output_format = output_format.lower()
        if output_format not in STILL_FORMATS:
            raise ConfigurationError(f"Unsupported image output format: {output_format}")
        self.output_dir = Path(output_dir)
        self.output_format = output_format
        self.codec = codec or PillowCodec()
        self.written: list[Path] = []

    def output_path_for(self, source_path: Path) -> Path:
        return self.output_dir / f"{Path(source_path).stem}_processed.{self.output_format}"

    def encode_frame(self, pixels: np.ndarray) -> EncodedFrame:
        height, width = pixels.shape[:2]
        return EncodedFrame(self.codec.encode(pixels, self.output_format), width, height)

    def open(self) -> None:
        _make_dir(self.output_dir)
        self.written = []

    def write(self, result: FrameResult) -> None:
        path = self.output_path_for(result.source_path)
        try:
            path.write_bytes(result.frame.data)
        except OSError as e:
            raise EncodeError(f"Failed to save image {path}: {e}") from e
        self.written.append(path)

    def close(self) -> None:
        logger.info("Wrote %d images to %s", len(self.written), self.output_dir)

    def abort(self) -> None:
        for path in self.written:
            path.unlink(missing_ok=True)
        logger.info("Removed %d partial images from %s", len(self.written), self.output_dir)
        self.written = []


class FFmpegVideoSink:
    """Streams raw RGB frames into an FFmpeg H.264 encoder process.

    The process is started on the first write, once the frame size is known.
    Frames are piped to stdin, so the encoder consumes them in exactly the
    order they are written.

    Args:
        output_path: Video file to create (container taken from its suffix)
        video: Encoder settings (fps, CRF, optional resolution)
        ffmpeg_binary: FFmpeg executable name or path
    """

    def __init__(self, output_path: Path, video: VideoSettings | None = None, ffmpeg_binary: str = "ffmpeg"):
        self.output_path = Path(output_path)
        self.video = video or VideoSettings()
        self.ffmpeg_binary = ffmpeg_binary
        self.frame_size: tuple[int, int] | None = None
        self.frames_written = 0
        self._process: subprocess.Popen | None = None
        self._stderr_tail: deque[str] = deque(maxlen=40)
        self._stderr_thread: threading.Thread | None = None

    def build_command(self, width: int, height: int) -> list[str]:
        """FFmpeg argument list for frames of the given size."""
        return self._stream_spec(width, height).compile(cmd=self.ffmpeg_binary)

    def _stream_spec(self, width: int, height: int):
        # -f rawvideo -pix_fmt rgb24: frames arrive as packed RGB24 on stdin
        # -pix_fmt yuv420p: Pixel format for player compatibility
        stream = ffmpeg.input(
            "pipe:",
            format="rawvideo",
            pix_fmt="rgb24",
            s=f"{width}x{height}",
            framerate=self.video.fps,
        )

        scale = resolve_output_resolution((width, height), self.video.target_resolution)
        if scale is None and (width % 2 or height % 2):
            # libx264 with yuv420p rejects odd dimensions
            scale = (_even(width), _even(height))
        if scale is not None:
            stream = stream.filter("scale", scale[0], scale[1])

        return (
            stream.output(
                str(self.output_path),
                vcodec="libx264",
                crf=self.video.quality,
                pix_fmt="yuv420p",
            )
            .global_args("-hide_banner", "-loglevel", "error")
            .overwrite_output()
        )

    def encode_frame(self, pixels: np.ndarray) -> EncodedFrame:
        height, width = pixels.shape[:2]
        return EncodedFrame(np.ascontiguousarray(pixels, dtype=np.uint8).tobytes(), width, height)

    def open(self) -> None:
        _make_dir(self.output_path.parent)
        self.frames_written = 0

    def _start(self, width: int, height: int) -> None:
        logger.info(
            "Starting FFmpeg: %dx%d at %d fps (CRF %d) -> %s",
            width,
            height,
            self.video.fps,
            self.video.quality,
            self.output_path,
        )
        try:
            self._process = self._stream_spec(width, height).run_async(
                cmd=self.ffmpeg_binary, pipe_stdin=True, pipe_stderr=True
            )
        except FileNotFoundError as e:
            raise EncodeError(
                f"FFmpeg not found ({self.ffmpeg_binary}). Please install FFmpeg: https://ffmpeg.org/download.html"
            ) from e

        self.frame_size = (width, height)
        self._stderr_thread = threading.Thread(target=self._drain_stderr, name="ffmpeg-stderr", daemon=True)
        self._stderr_thread.start()

    def _drain_stderr(self) -> None:
        # Keeps the stderr pipe from filling up and stalling the encoder
        for line in iter(self._process.stderr.readline, b""):
            self._stderr_tail.append(line.decode(errors="replace").rstrip())

    def _stderr_text(self) -> str:
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=5)
        return "\n".join(self._stderr_tail)

    def write(self, result: FrameResult) -> None:
        frame = result.frame
        if self._process is None:
            self._start(frame.width, frame.height)
        elif (frame.width, frame.height) != self.frame_size:
            raise EncodeError(
                f"Frame {result.index} is {frame.width}x{frame.height} but the video is "
                f"{self.frame_size[0]}x{self.frame_size[1]}; all frames must have the same size"
            )

        try:
            self._process.stdin.write(frame.data)
        except (BrokenPipeError, OSError) as e:
            self._process.wait()
            raise EncodeError(f"FFmpeg stopped accepting frames at frame {result.index}: {self._stderr_text()}") from e
        self.frames_written += 1

    def close(self) -> None:
        if self._process is None:
            raise EncodeError("No frames were written; video not created")

        try:
            self._process.stdin.close()
        except OSError:
            logger.debug("FFmpeg stdin already closed")
        returncode = self._process.wait()
        stderr = self._stderr_text()
        self._process = None

        if returncode != 0:
            self.output_path.unlink(missing_ok=True)
            raise EncodeError(f"FFmpeg failed with return code {returncode}: {stderr[-1000:]}")

        duration = self.frames_written / self.video.fps
        logger.info("Video created: %s (%d frames, %.2fs)", self.output_path, self.frames_written, duration)

    def abort(self) -> None:
        if self._process is not None:
            self._process.kill()
            self._process.wait()
            self._process = None
        self.output_path.unlink(missing_ok=True)
        logger.info("Discarded partial video %s", self.output_path)
