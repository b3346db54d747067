"""lapsify - Adjust, crop and encode time-lapse image sequences."""

from lapsify.codec import ImageCodec, PillowCodec, is_image_file
from lapsify.config import RenderConfig, Settings, VideoSettings, get_settings, parse_resolution, parse_value_array
from lapsify.errors import (
    BoundaryError,
    ConfigurationError,
    DecodeError,
    EncodeError,
    LapsifyError,
    ParseError,
    PipelineCancelled,
    PipelineError,
)
from lapsify.geometry import CropSpec, CropValue, ResolvedRect, parse_crop, resolve_rects
from lapsify.keyframes import PARAMETER_DOMAINS, ParameterSchedule, build_schedule
from lapsify.models import EncodedFrame, FrameJob, FrameResult, PipelineSummary
from lapsify.ordering import CancellationToken, OrderingBuffer, ProgressCounter
from lapsify.pipeline import Pipeline
from lapsify.planner import plan_jobs, render
from lapsify.sinks import FFmpegVideoSink, ImageDirectorySink, OutputSink, resolve_output_resolution
from lapsify.transform import FrameAdjustments, transform

# Version is managed by hatch-vcs and set during build
try:
    from lapsify._version import __version__
except ImportError:
    # Fallback for development installs without build
    __version__ = "0.0.0.dev0+unknown"

__all__ = [
    "__version__",
    # Errors
    "LapsifyError",
    "ParseError",
    "ConfigurationError",
    "BoundaryError",
    "DecodeError",
    "EncodeError",
    "PipelineError",
    "PipelineCancelled",
    # Keyframes
    "PARAMETER_DOMAINS",
    "ParameterSchedule",
    "build_schedule",
    # Geometry
    "CropSpec",
    "CropValue",
    "ResolvedRect",
    "parse_crop",
    "resolve_rects",
    # Transform
    "FrameAdjustments",
    "transform",
    # Codec
    "ImageCodec",
    "PillowCodec",
    "is_image_file",
    # Pipeline
    "FrameJob",
    "FrameResult",
    "EncodedFrame",
    "PipelineSummary",
    "Pipeline",
    "OrderingBuffer",
    "ProgressCounter",
    "CancellationToken",
    "plan_jobs",
    "render",
    # Sinks
    "OutputSink",
    "ImageDirectorySink",
    "FFmpegVideoSink",
    "resolve_output_resolution",
    # Configuration
    "RenderConfig",
    "VideoSettings",
    "Settings",
    "get_settings",
    "parse_value_array",
    "parse_resolution",
]
