"""Run configuration and environment settings."""

import math
import os
from dataclasses import dataclass, field
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from lapsify.codec import STILL_FORMATS
from lapsify.errors import ConfigurationError, ParseError

VIDEO_FORMATS = ("mp4", "mov", "avi")

RESOLUTION_PRESETS: dict[str, tuple[int, int]] = {
    "4k": (3840, 2160),
    "hd": (1920, 1080),
    "1080p": (1920, 1080),
    "720p": (1280, 720),
}


class Settings(BaseSettings):
    """Process-wide defaults loaded from LAPSIFY_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LAPSIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # 0 = one worker per CPU
    workers: int = 0
    ffmpeg_binary: str = "ffmpeg"
    log_level: str = "INFO"
    video_name: str = "timelapse"
    jpeg_quality: int = 95

    def default_worker_count(self) -> int:
        """Worker count to use when the caller does not pass one."""
        if self.workers > 0:
            return self.workers
        return os.cpu_count() or 1


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def parse_value_array(text: str, name: str = "value") -> list[float]:
    """Parse a comma-separated keyframe list such as "0.0,1.5,-0.5".

    Raises:
        ParseError: If any element is not a number
    """
    values = []
    for part in text.split(","):
        part = part.strip()
        try:
            value = float(part)
        except ValueError:
            raise ParseError(f"Failed to parse {name} array '{text}': '{part}' is not a number") from None
        if not math.isfinite(value):
            raise ParseError(f"Failed to parse {name} array '{text}': '{part}' is not finite")
        values.append(value)
    return values


def parse_resolution(text: str) -> tuple[int, int]:
    """Parse "WIDTHxHEIGHT" or a named preset (4k, hd, 1080p, 720p).

    Raises:
        ParseError: If the string is not a preset or a valid WIDTHxHEIGHT
    """
    key = text.strip().lower()
    if key in RESOLUTION_PRESETS:
        return RESOLUTION_PRESETS[key]

    parts = key.split("x")
    if len(parts) != 2:
        raise ParseError(f"Invalid resolution format: {text}")
    try:
        width, height = int(parts[0]), int(parts[1])
    except ValueError:
        raise ParseError(f"Invalid resolution format: {text}") from None
    if width <= 0 or height <= 0:
        raise ParseError(f"Resolution must be positive: {text}")
    return width, height


@dataclass
class VideoSettings:
    """Encoder settings for video output.

    Attributes:
        fps: Frame rate, 1 to 120
        quality: CRF, 0 to 51 (lower = better quality, larger file)
        resolution: Optional target "WIDTHxHEIGHT" or preset name
        container: mp4, mov or avi
    """

    fps: int = 24
    quality: int = 20
    resolution: str | None = None
    container: str = "mp4"

    def validate(self) -> None:
        if not 1 <= self.fps <= 120:
            raise ConfigurationError(f"FPS must be between 1 and 120, got {self.fps}")
        if not 0 <= self.quality <= 51:
            raise ConfigurationError(f"Quality (CRF) must be between 0 and 51, got {self.quality}")
        if self.container not in VIDEO_FORMATS:
            raise ConfigurationError(f"Unsupported video format: {self.container}")
        if self.resolution is not None:
            try:
                parse_resolution(self.resolution)
            except ParseError as e:
                raise ConfigurationError(str(e)) from e

    @property
    def target_resolution(self) -> tuple[int, int] | None:
        return parse_resolution(self.resolution) if self.resolution else None


@dataclass
class RenderConfig:
    """Everything one run needs, as collected by a CLI or GUI.

    Attributes:
        exposure: Exposure keyframes in EV stops
        brightness: Brightness keyframes, -100 to 100
        contrast: Contrast keyframes, (0, 3]
        saturation: Saturation keyframes, 0 to 2
        crop: Crop string "width:height:x:y", or None for full frames
        offset_x: Horizontal crop offset keyframes in pixels, or None
        offset_y: Vertical crop offset keyframes in pixels, or None
        workers: Worker thread count, or None for the Settings default
        output_format: jpg, png, tiff (stills) or mp4, mov, avi (video)
        video: Encoder settings, used when output_format is a video format
        start_frame: First frame to render (0-based, inclusive), or None
        end_frame: Last frame to render (0-based, inclusive), or None
    """

    exposure: list[float] = field(default_factory=lambda: [0.0])
    brightness: list[float] = field(default_factory=lambda: [0.0])
    contrast: list[float] = field(default_factory=lambda: [1.0])
    saturation: list[float] = field(default_factory=lambda: [1.0])
    crop: str | None = None
    offset_x: list[float] | None = None
    offset_y: list[float] | None = None
    workers: int | None = None
    output_format: str = "mp4"
    video: VideoSettings = field(default_factory=VideoSettings)
    start_frame: int | None = None
    end_frame: int | None = None

    def __post_init__(self):
        self.output_format = self.output_format.lower()
        if self.output_format in VIDEO_FORMATS:
            self.video.container = self.output_format

    @property
    def is_video(self) -> bool:
        return self.output_format in VIDEO_FORMATS

    def keyframes(self) -> dict[str, list[float] | None]:
        """Keyframe arrays keyed by parameter name."""
        return {
            "exposure": self.exposure,
            "brightness": self.brightness,
            "contrast": self.contrast,
            "saturation": self.saturation,
            "offset_x": self.offset_x,
            "offset_y": self.offset_y,
        }

    def validate(self) -> None:
        """Check settings that do not depend on the source images.

        Raises:
            ConfigurationError: On an unknown output format, bad video settings,
                an inverted frame range or a worker count below 1
        """
        if self.output_format not in STILL_FORMATS and not self.is_video:
            raise ConfigurationError(
                f"Unsupported output format: {self.output_format} "
                f"(expected one of {', '.join([*STILL_FORMATS, *VIDEO_FORMATS])})"
            )
        if self.is_video:
            self.video.validate()
        if self.workers is not None and self.workers < 1:
            raise ConfigurationError(f"Worker count must be at least 1, got {self.workers}")
        for name, value in (("start frame", self.start_frame), ("end frame", self.end_frame)):
            if value is not None and value < 0:
                raise ConfigurationError(f"{name.capitalize()} must not be negative, got {value}")
        if self.start_frame is not None and self.end_frame is not None and self.start_frame > self.end_frame:
            raise ConfigurationError("Start frame must be less than or equal to end frame")
        if (self.offset_x is not None or self.offset_y is not None) and self.crop is None:
            raise ConfigurationError("Offsets require a crop window; set a crop or remove offset-x/offset-y")
