"""Image decode/encode using Pillow."""

import io
from pathlib import Path
from typing import Protocol, runtime_checkable

import numpy as np
from PIL import Image, UnidentifiedImageError

from lapsify.errors import DecodeError, EncodeError

SOURCE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".tif", ".tiff", ".bmp", ".webp"})

# Output format name -> Pillow format name
STILL_FORMATS: dict[str, str] = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "tif": "TIFF",
    "tiff": "TIFF",
}


# 16-bit greyscale (and 32-bit integer, which Pillow uses for some 16-bit PNGs)
WIDE_GREY_MODES = frozenset({"I", "I;16", "I;16L", "I;16B", "I;16N"})


def _wide_grey_to_rgb8(values: np.ndarray) -> np.ndarray:
    """Scale 16-bit grey samples to 8 bits and expand to (H, W, 3) RGB."""
    grey = (np.clip(values.astype(np.int64), 0, 65535) >> 8).astype(np.uint8)
    return np.repeat(grey[..., np.newaxis], 3, axis=2)


def is_image_file(path: Path) -> bool:
    """Check whether a path has a supported source image extension."""
    return path.suffix.lower() in SOURCE_EXTENSIONS


@runtime_checkable
class ImageCodec(Protocol):
    """Protocol for image codecs.

    Implementations must be safe to call from several worker threads at once.
    """

    def probe(self, path: Path) -> tuple[int, int]:
        """Read (width, height) without decoding pixel data.

        Raises:
            DecodeError: If the file cannot be read
        """
        ...

    def decode(self, path: Path) -> np.ndarray:
        """Decode to an (H, W, 3) uint8 RGB array.

        Raises:
            DecodeError: If the file cannot be read or decoded
        """
        ...

    def encode(self, pixels: np.ndarray, output_format: str) -> bytes:
        """Encode an (H, W, 3) uint8 RGB array.

        Raises:
            EncodeError: If the format is unsupported or encoding fails
        """
        ...


class PillowCodec:
    """ImageCodec backed by Pillow.

    Args:
        jpeg_quality: Quality for JPEG output (1-95)
    """

    def __init__(self, jpeg_quality: int = 95):
        self.jpeg_quality = jpeg_quality

    def probe(self, path: Path) -> tuple[int, int]:
        try:
            with Image.open(path) as img:
                return img.size
        except FileNotFoundError as e:
            raise DecodeError("Image not found", path) from e
        except (UnidentifiedImageError, OSError) as e:
            raise DecodeError(f"Failed to read image header ({e})", path) from e

    def decode(self, path: Path) -> np.ndarray:
        try:
            with Image.open(path) as img:
                img.load()
                if img.mode in WIDE_GREY_MODES:
                    return _wide_grey_to_rgb8(np.asarray(img))
                if img.mode != "RGB":
                    img = img.convert("RGB")
                return np.asarray(img, dtype=np.uint8)
        except FileNotFoundError as e:
            raise DecodeError("Image not found", path) from e
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise DecodeError(f"Failed to open image ({e})", path) from e

    def encode(self, pixels: np.ndarray, output_format: str) -> bytes:
        pil_format = STILL_FORMATS.get(output_format.lower())
        if pil_format is None:
            raise EncodeError(f"Unsupported output format: {output_format}")

        options = {"quality": self.jpeg_quality} if pil_format == "JPEG" else {}
        buffer = io.BytesIO()
        try:
            Image.fromarray(np.ascontiguousarray(pixels)).save(buffer, format=pil_format, **options)
        except (OSError, ValueError) as e:
            raise EncodeError(f"Failed to encode {output_format} image: {e}") from e
        return buffer.getvalue()
