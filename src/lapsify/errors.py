"""Exception hierarchy for lapsify.

Every failure is fatal to the run. Configuration problems (ParseError,
ConfigurationError, BoundaryError) are raised before any image is decoded;
per-frame problems (DecodeError, EncodeError) surface wrapped in a
PipelineError carrying the frame index.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lapsify.geometry import ResolvedRect


class LapsifyError(Exception):
    """Base exception for lapsify errors."""

    pass


class ParseError(LapsifyError):
    """Raised when a crop, resolution or keyframe string is malformed."""

    pass


class ConfigurationError(LapsifyError):
    """Raised when a configured value is outside its domain or inconsistent."""

    pass


class BoundaryError(LapsifyError):
    """Raised when a resolved crop rectangle leaves the source image.

    Attributes:
        frame_index: Index of the first offending frame
        requested_rect: The rectangle that was requested for that frame
        image_size: (width, height) of that frame's source image
    """

    def __init__(self, frame_index: int, requested_rect: ResolvedRect, image_size: tuple[int, int]):
        self.frame_index = frame_index
        self.requested_rect = requested_rect
        self.image_size = image_size
        width, height = image_size
        super().__init__(
            f"Crop rectangle for frame {frame_index} is outside the image: "
            f"requested x={requested_rect.x}, y={requested_rect.y}, w={requested_rect.w}, h={requested_rect.h} "
            f"but image is {width}x{height} "
            f"(x must be in [0, {width - requested_rect.w}], y must be in [0, {height - requested_rect.h}])"
        )


class DecodeError(LapsifyError):
    """Raised when a source image cannot be read or decoded."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(f"{message}: {path}" if path is not None else message)


class EncodeError(LapsifyError):
    """Raised when a frame cannot be encoded or the video encoder fails."""

    pass


class PipelineError(LapsifyError):
    """Raised when the frame pipeline aborts.

    Attributes:
        frame_index: Index of the frame that failed, or None when the failure
            is not tied to one frame (e.g. the encoder failing on shutdown)
        cause: The underlying exception
    """

    def __init__(self, frame_index: int | None, cause: BaseException | None):
        self.frame_index = frame_index
        self.cause = cause
        where = f"frame {frame_index}" if frame_index is not None else "output"
        super().__init__(f"Pipeline failed at {where}: {cause}")


class PipelineCancelled(PipelineError):
    """Raised when a run is cancelled through its CancellationToken."""

    def __init__(self, frame_index: int | None = None):
        super().__init__(frame_index, None)
        self.args = ("Pipeline cancelled" if frame_index is None else f"Pipeline cancelled at frame {frame_index}",)
