"""Data models for the frame pipeline."""

from dataclasses import dataclass
from pathlib import Path

from lapsify.geometry import ResolvedRect
from lapsify.transform import FrameAdjustments


@dataclass(frozen=True)
class FrameJob:
    """Self-contained unit of work for one output frame.

    Attributes:
        index: Global frame index (position in the full source sequence)
        source_path: Path to the source image
        rect: Bounds-checked source rectangle
        exposure: Exposure in EV stops
        brightness: Brightness offset, -100 to 100
        contrast: Contrast multiplier
        saturation: Saturation multiplier
        image_size: (width, height) the rectangle was validated against
    """

    index: int
    source_path: Path
    rect: ResolvedRect
    exposure: float = 0.0
    brightness: float = 0.0
    contrast: float = 1.0
    saturation: float = 1.0
    image_size: tuple[int, int] | None = None

    @property
    def adjustments(self) -> FrameAdjustments:
        return FrameAdjustments(self.exposure, self.brightness, self.contrast, self.saturation)


@dataclass(frozen=True)
class EncodedFrame:
    """Frame payload ready for an output sink.

    Attributes:
        data: Encoded bytes (an image file, or raw RGB24 for video sinks)
        width: Frame width in pixels
        height: Frame height in pixels
    """

    data: bytes
    width: int
    height: int


@dataclass
class FrameResult:
    """Outcome of one FrameJob. Exactly one of ``frame`` and ``error`` is set.

    Attributes:
        index: Frame index of the job
        source_path: Source image of the job
        frame: Encoded output on success
        error: Exception raised by decode/transform/encode on failure
    """

    index: int
    source_path: Path
    frame: EncodedFrame | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class PipelineSummary:
    """Statistics for a completed run.

    Attributes:
        frames_written: Number of frames delivered to the sink
        worker_count: Number of worker threads used
        elapsed_seconds: Wall-clock time of the run
    """

    frames_written: int
    worker_count: int
    elapsed_seconds: float

    @property
    def frames_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.frames_written / self.elapsed_seconds
