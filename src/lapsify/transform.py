"""Photographic adjustments applied to one decoded frame.

Operations run in a fixed order so results are reproducible:

1. Crop to the frame's resolved rectangle
2. Exposure: multiply by 2**EV
3. Brightness: add brightness/100, clamp to [0, 1]
4. Contrast: scale around 0.5, clamp
5. Saturation: scale chroma around Rec.601 luma, clamp

Pixel values are processed as float32 in [0, 1] and rounded back to uint8.
"""

from dataclasses import dataclass

import numpy as np

from lapsify.geometry import ResolvedRect

# Rec.601 luma weights (R, G, B)
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


@dataclass(frozen=True)
class FrameAdjustments:
    """Interpolated adjustment values for one frame.

    Attributes:
        exposure: EV stops, -3.0 to 3.0 (0.0 = identity)
        brightness: -100 to 100 (0.0 = identity)
        contrast: multiplier, (0.0, 3.0] (1.0 = identity)
        saturation: multiplier, 0.0 to 2.0 (1.0 = identity)
    """

    exposure: float = 0.0
    brightness: float = 0.0
    contrast: float = 1.0
    saturation: float = 1.0

    @property
    def is_identity(self) -> bool:
        return self.exposure == 0.0 and self.brightness == 0.0 and self.contrast == 1.0 and self.saturation == 1.0


def crop(image: np.ndarray, rect: ResolvedRect) -> np.ndarray:
    """Extract ``rect`` from an (H, W, C) array. Returns a view."""
    return image[rect.y : rect.bottom, rect.x : rect.right]


def transform(
    image: np.ndarray,
    rect: ResolvedRect,
    exposure: float = 0.0,
    brightness: float = 0.0,
    contrast: float = 1.0,
    saturation: float = 1.0,
) -> np.ndarray:
    """Crop and adjust one frame.

    Values are assumed to be validated already; nothing is range-checked here.

    Args:
        image: Decoded frame as (H, W, 3) uint8 RGB array
        rect: Source rectangle, already bounds-checked
        exposure: Exposure in EV stops
        brightness: Additive brightness, -100 to 100
        contrast: Contrast multiplier around mid-grey
        saturation: Chroma multiplier

    Returns:
        New (rect.h, rect.w, 3) uint8 array; the input is not modified
    """
    region = crop(image, rect)
    adjustments = FrameAdjustments(exposure, brightness, contrast, saturation)
    if adjustments.is_identity:
        return region.copy()

    pixels = region.astype(np.float32) / 255.0

    if exposure != 0.0:
        pixels *= np.float32(2.0**exposure)

    if brightness != 0.0:
        pixels += np.float32(brightness / 100.0)
        np.clip(pixels, 0.0, 1.0, out=pixels)

    if contrast != 1.0:
        pixels -= np.float32(0.5)
        pixels *= np.float32(contrast)
        pixels += np.float32(0.5)
        np.clip(pixels, 0.0, 1.0, out=pixels)

    if saturation != 1.0:
        luma = (pixels @ LUMA_WEIGHTS)[..., np.newaxis]
        pixels = luma + (pixels - luma) * np.float32(saturation)
        np.clip(pixels, 0.0, 1.0, out=pixels)

    # Exposure alone is never clamped before this point
    np.clip(pixels, 0.0, 1.0, out=pixels)
    return np.rint(pixels * 255.0).astype(np.uint8)


def apply_adjustments(image: np.ndarray, rect: ResolvedRect, adjustments: FrameAdjustments) -> np.ndarray:
    """Same as transform(), taking a FrameAdjustments."""
    return transform(
        image,
        rect,
        exposure=adjustments.exposure,
        brightness=adjustments.brightness,
        contrast=adjustments.contrast,
        saturation=adjustments.saturation,
    )
