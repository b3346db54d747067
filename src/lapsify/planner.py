"""Turns a RenderConfig and a source list into validated FrameJobs.

Everything that can be checked without decoding pixels is checked here, so a
bad crop, an out-of-range keyframe or an out-of-bounds offset fails the run
before any frame is transformed:

1. Parse the crop string and validate the configuration
2. Select the frame range (interpolation still spans every source frame)
3. Build one ParameterSchedule per adjustable parameter
4. Read every selected image's dimensions (header only)
5. Resolve and bounds-check the crop rectangle of every selected frame
"""

import logging
from collections.abc import Sequence
from pathlib import Path

from lapsify.codec import ImageCodec, PillowCodec
from lapsify.config import RenderConfig
from lapsify.errors import ConfigurationError
from lapsify.geometry import parse_crop, resolve_rects
from lapsify.keyframes import ParameterSchedule, build_schedule
from lapsify.models import FrameJob, PipelineSummary
from lapsify.ordering import CancellationToken
from lapsify.pipeline import Pipeline, ProgressCallback
from lapsify.sinks import OutputSink

logger = logging.getLogger(__name__)


def select_frame_range(frame_count: int, start_frame: int | None, end_frame: int | None) -> range:
    """Indices selected by an inclusive [start_frame, end_frame] range.

    Raises:
        ConfigurationError: If the range is empty or outside 0..frame_count-1
    """
    if frame_count == 0:
        raise ConfigurationError("No image files found in input")

    last = frame_count - 1
    start = 0 if start_frame is None else start_frame
    end = last if end_frame is None else end_frame

    if start > last or start < 0:
        raise ConfigurationError(f"Start frame {start} is out of range (0-{last})")
    if end > last or end < 0:
        raise ConfigurationError(f"End frame {end} is out of range (0-{last})")
    if start > end:
        raise ConfigurationError("Start frame must be less than or equal to end frame")
    return range(start, end + 1)


def build_schedules(config: RenderConfig, frame_count: int) -> dict[str, ParameterSchedule | None]:
    """Build per-frame schedules for every configured parameter.

    Offsets that are not configured map to None.
    """
    schedules: dict[str, ParameterSchedule | None] = {}
    for parameter, values in config.keyframes().items():
        schedules[parameter] = None if values is None else build_schedule(values, frame_count, parameter)
    return schedules


def plan_jobs(sources: Sequence[Path], config: RenderConfig, codec: ImageCodec | None = None) -> list[FrameJob]:
    """Validate a run and build one FrameJob per selected frame.

    Args:
        sources: Source images in sequence order
        config: Run configuration
        codec: Codec used to read image dimensions (default: PillowCodec)

    Returns:
        FrameJobs with consecutive ascending indices

    Raises:
        ParseError: On a malformed crop string
        ConfigurationError: On invalid settings or keyframes
        BoundaryError: If any selected frame's crop window leaves its image
        DecodeError: If an image header cannot be read
    """
    codec = codec or PillowCodec()
    sources = [Path(p) for p in sources]

    crop = parse_crop(config.crop) if config.crop is not None else None
    config.validate()

    selected = select_frame_range(len(sources), config.start_frame, config.end_frame)
    if len(selected) < len(sources):
        logger.info("Processing %d of %d frames (%d to %d)", len(selected), len(sources), selected[0], selected[-1])

    # Interpolate over the whole sequence so a sub-range renders exactly as it
    # would inside a full run
    schedules = build_schedules(config, len(sources))

    image_sizes = [codec.probe(sources[i]) for i in selected]

    def window(schedule: ParameterSchedule | None) -> list[float] | None:
        return None if schedule is None else [schedule[i] for i in selected]

    rects = resolve_rects(
        crop,
        window(schedules["offset_x"]),
        window(schedules["offset_y"]),
        image_sizes,
        first_index=selected[0],
    )

    jobs = [
        FrameJob(
            index=i,
            source_path=sources[i],
            rect=rect,
            exposure=schedules["exposure"][i],
            brightness=schedules["brightness"][i],
            contrast=schedules["contrast"][i],
            saturation=schedules["saturation"][i],
            image_size=size,
        )
        for i, rect, size in zip(selected, rects, image_sizes)
    ]
    logger.debug("Planned %d frame jobs", len(jobs))
    return jobs


def render(
    sources: Sequence[Path],
    config: RenderConfig,
    sink: OutputSink,
    codec: ImageCodec | None = None,
    cancel_token: CancellationToken | None = None,
    progress_callback: ProgressCallback | None = None,
) -> PipelineSummary:
    """Plan and run a complete job: validate everything, then process.

    Args:
        sources: Source images in sequence order
        config: Run configuration
        sink: Output destination
        codec: Image codec (default: PillowCodec)
        cancel_token: Optional cancellation token
        progress_callback: Optional callback(frames_written, total_frames)

    Returns:
        PipelineSummary
    """
    codec = codec or PillowCodec()
    jobs = plan_jobs(sources, config, codec)
    pipeline = Pipeline(worker_count=config.workers, codec=codec)
    return pipeline.run(jobs, sink, cancel_token=cancel_token, progress_callback=progress_callback)
