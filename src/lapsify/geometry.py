"""Crop window parsing and per-frame rectangle resolution.

Crop strings use the FFmpeg-style ``width:height:x:y`` form. Each token is a
pixel count or a percentage of the matching source dimension (width for
width/x, height for height/y). A negative x or y anchors the window to the
right or bottom edge instead of the left or top.

Coordinate system:
- Absolute pixel coordinates relative to the full source image
- Top-left origin (0,0 = top-left corner)
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from lapsify.errors import BoundaryError, ConfigurationError, ParseError

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"^(-?)(\d+)(%?)$")


@dataclass(frozen=True)
class ResolvedRect:
    """Absolute pixel rectangle for one frame.

    Attributes:
        x: Left edge in pixels
        y: Top edge in pixels
        w: Width in pixels
        h: Height in pixels
    """

    x: int
    y: int
    w: int
    h: int

    @property
    def right(self) -> int:
        """Right edge (exclusive) in pixels."""
        return self.x + self.w

    @property
    def bottom(self) -> int:
        """Bottom edge (exclusive) in pixels."""
        return self.y + self.h

    def fits(self, width: int, height: int) -> bool:
        """Check if the rectangle lies completely inside a width x height image."""
        return self.x >= 0 and self.y >= 0 and self.right <= width and self.bottom <= height

    def translated(self, dx: int, dy: int) -> "ResolvedRect":
        return ResolvedRect(self.x + dx, self.y + dy, self.w, self.h)


@dataclass(frozen=True)
class CropValue:
    """One crop token.

    Attributes:
        amount: Magnitude of the token (pixels, or percent when ``percent``)
        percent: True if the token ended with ``%``
        negative: True if the token carried a leading ``-``
    """

    amount: int
    percent: bool = False
    negative: bool = False

    def to_pixels(self, dimension: int) -> int:
        """Magnitude in pixels against a source dimension (sign not applied)."""
        if self.percent:
            return self.amount * dimension // 100
        return self.amount

    def __str__(self) -> str:
        return f"{'-' if self.negative else ''}{self.amount}{'%' if self.percent else ''}"


@dataclass(frozen=True)
class CropSpec:
    """Parsed crop window, resolved against each image's dimensions."""

    width: CropValue
    height: CropValue
    x: CropValue
    y: CropValue

    def base_rect(self, image_width: int, image_height: int) -> ResolvedRect:
        """Resolve to an absolute rectangle, before per-frame offsets.

        Args:
            image_width: Source image width in pixels
            image_height: Source image height in pixels

        Returns:
            ResolvedRect; not bounds-checked
        """
        w = self.width.to_pixels(image_width)
        h = self.height.to_pixels(image_height)

        x = self.x.to_pixels(image_width)
        if self.x.negative:
            x = image_width - x - w

        y = self.y.to_pixels(image_height)
        if self.y.negative:
            y = image_height - y - h

        return ResolvedRect(x=x, y=y, w=w, h=h)

    def __str__(self) -> str:
        return f"{self.width}:{self.height}:{self.x}:{self.y}"


def _parse_token(token: str, name: str, allow_negative: bool) -> CropValue:
    match = _TOKEN.match(token.strip())
    if match is None:
        raise ParseError(f"Invalid crop {name} '{token}': expected an integer or percentage like '600' or '50%'")

    sign, digits, percent = match.groups()
    value = CropValue(amount=int(digits), percent=bool(percent), negative=bool(sign))

    if value.negative and not allow_negative:
        raise ParseError(f"Crop {name} cannot be negative: '{token}'")
    if value.percent and value.amount > 100:
        raise ParseError(f"Crop {name} percentage must be between 0 and 100: '{token}'")
    return value


def parse_crop(spec: str) -> CropSpec:
    """Parse a ``width:height:x:y`` crop string.

    Args:
        spec: Crop string, e.g. "600:400:100:50" or "50%:50%:10%:-10%"

    Returns:
        CropSpec

    Raises:
        ParseError: If the string does not have four valid tokens, or the
            width/height is negative or zero
    """
    parts = spec.split(":")
    if len(parts) != 4:
        raise ParseError(f"Crop string must have 4 parts (width:height:x:y), got {len(parts)} parts: '{spec}'")

    width = _parse_token(parts[0], "width", allow_negative=False)
    height = _parse_token(parts[1], "height", allow_negative=False)
    x = _parse_token(parts[2], "x", allow_negative=True)
    y = _parse_token(parts[3], "y", allow_negative=True)

    if width.amount == 0 or height.amount == 0:
        raise ParseError(f"Crop width and height must be greater than zero: '{spec}'")

    return CropSpec(width=width, height=height, x=x, y=y)


def resolve_rects(
    crop: CropSpec | None,
    offset_x: Sequence[float] | None,
    offset_y: Sequence[float] | None,
    image_sizes: Sequence[tuple[int, int]],
    first_index: int = 0,
) -> list[ResolvedRect]:
    """Compute a bounds-checked source rectangle for every frame.

    All frames are resolved before anything is returned, so an out-of-bounds
    window anywhere in the sequence is reported before any pixel work starts.

    Args:
        crop: Parsed crop window, or None to use the full image
        offset_x: Per-frame horizontal offset in pixels, or None
        offset_y: Per-frame vertical offset in pixels, or None
        image_sizes: (width, height) of each frame's source image
        first_index: Frame index of image_sizes[0], used in error reports

    Returns:
        One ResolvedRect per frame

    Raises:
        ConfigurationError: If offsets are given without a crop, or a schedule
            length does not match the number of frames
        BoundaryError: For the first frame whose rectangle leaves its image
    """
    frame_count = len(image_sizes)

    if crop is None:
        if offset_x is not None or offset_y is not None:
            raise ConfigurationError("Offsets require a crop window; set a crop or remove offset-x/offset-y")
        return [ResolvedRect(0, 0, width, height) for width, height in image_sizes]

    for name, schedule in (("offset-x", offset_x), ("offset-y", offset_y)):
        if schedule is not None and len(schedule) != frame_count:
            raise ConfigurationError(f"{name} schedule has {len(schedule)} values for {frame_count} frames")

    rects = []
    cached_size = None
    cached_base = None
    for i, (width, height) in enumerate(image_sizes):
        # Images are normally uniform; only recompute when the size changes
        if (width, height) != cached_size:
            cached_size = (width, height)
            cached_base = crop.base_rect(width, height)

        dx = round(offset_x[i]) if offset_x is not None else 0
        dy = round(offset_y[i]) if offset_y is not None else 0
        rect = cached_base.translated(dx, dy)

        if not rect.fits(width, height):
            raise BoundaryError(first_index + i, rect, (width, height))
        rects.append(rect)

    logger.debug("Resolved %d crop rectangles for crop %s", len(rects), crop)
    return rects
