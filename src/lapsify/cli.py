"""Command-line interface for lapsify."""

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from lapsify import __version__
from lapsify.codec import PillowCodec, is_image_file
from lapsify.config import RenderConfig, VideoSettings, get_settings, parse_value_array
from lapsify.errors import LapsifyError, PipelineCancelled
from lapsify.ordering import CancellationToken
from lapsify.planner import plan_jobs
from lapsify.pipeline import Pipeline
from lapsify.sinks import FFmpegVideoSink, ImageDirectorySink

app = typer.Typer(
    name="lapsify",
    help="Adjust, crop and encode time-lapse image sequences",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
)

console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit if --version flag is provided."""
    if value:
        typer.echo(f"lapsify version {__version__}")
        raise typer.Exit()


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else get_settings().log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def list_images(input_dir: Path) -> list[Path]:
    """Return sorted image files in a directory."""
    return sorted(p for p in input_dir.iterdir() if p.is_file() and is_image_file(p))


def build_config(
    exposure: str,
    brightness: str,
    contrast: str,
    saturation: str,
    crop: str | None,
    offset_x: str | None,
    offset_y: str | None,
    output_format: str,
    fps: int,
    quality: int,
    resolution: str | None,
    threads: int,
    start_frame: int | None,
    end_frame: int | None,
) -> RenderConfig:
    """Build a RenderConfig from raw option strings.

    Raises:
        ParseError: If a keyframe list is malformed
    """
    return RenderConfig(
        exposure=parse_value_array(exposure, "exposure"),
        brightness=parse_value_array(brightness, "brightness"),
        contrast=parse_value_array(contrast, "contrast"),
        saturation=parse_value_array(saturation, "saturation"),
        crop=crop,
        offset_x=parse_value_array(offset_x, "offset-x") if offset_x is not None else None,
        offset_y=parse_value_array(offset_y, "offset-y") if offset_y is not None else None,
        workers=threads if threads > 0 else get_settings().default_worker_count(),
        output_format=output_format,
        video=VideoSettings(fps=fps, quality=quality, resolution=resolution),
        start_frame=start_frame,
        end_frame=end_frame,
    )


def print_settings(config: RenderConfig, threads: int) -> None:
    console.print("[bold cyan]Processing images with settings:[/bold cyan]")
    for name, values, unit in (
        ("Exposure", config.exposure, "EV"),
        ("Brightness", config.brightness, ""),
        ("Contrast", config.contrast, "x"),
        ("Saturation", config.saturation, "x"),
    ):
        console.print(f"  [green]{name}:[/green] {', '.join(f'{v:g}{unit}' for v in values)}")
    if config.crop:
        console.print(f"  [green]Crop:[/green] {config.crop}")
    if config.offset_x is not None or config.offset_y is not None:
        console.print(f"  [green]Offsets:[/green] x={config.offset_x or [0]}, y={config.offset_y or [0]}")
    console.print(f"  [green]Threads:[/green] {config.workers}{' (manual)' if threads > 0 else ' (auto-detect)'}")
    if config.is_video:
        console.print(
            f"  [yellow]Output:[/yellow] {config.output_format} video at {config.video.fps} fps "
            f"(CRF {config.video.quality})"
        )
        if config.video.resolution:
            console.print(f"  [yellow]Resolution:[/yellow] {config.video.resolution}")
    else:
        console.print(f"  [yellow]Output format:[/yellow] {config.output_format} images")
    console.print()


# Shared option definitions
EXPOSURE = typer.Option("0.0", "--exposure", "-e", help="Exposure in EV stops (-3 to 3), e.g. '0.0,1.5,-0.5'")
BRIGHTNESS = typer.Option("0.0", "--brightness", "-b", help="Brightness (-100 to 100), e.g. '0,20,-10'")
CONTRAST = typer.Option("1.0", "--contrast", "-c", help="Contrast multiplier (0 to 3, exclusive of 0)")
SATURATION = typer.Option("1.0", "--saturation", "-s", help="Saturation multiplier (0 to 2)")
CROP = typer.Option(None, "--crop", help="Crop as 'width:height:x:y', e.g. '1000:800:100:50' or '50%:50%:10%:-10%'")
OFFSET_X = typer.Option(None, "--offset-x", help="Horizontal crop offset keyframes in pixels, e.g. '0,200'")
OFFSET_Y = typer.Option(None, "--offset-y", help="Vertical crop offset keyframes in pixels, e.g. '0,-50'")
START_FRAME = typer.Option(None, "--start-frame", help="Start frame index (0-based, inclusive)")
END_FRAME = typer.Option(None, "--end-frame", help="End frame index (0-based, inclusive)")


@app.command()
def process(
    input_dir: Path = typer.Argument(
        ...,
        help="Directory containing the source images",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
    output_dir: Path = typer.Argument(
        ...,
        help="Output directory for processed images or the video",
    ),
    exposure: str = EXPOSURE,
    brightness: str = BRIGHTNESS,
    contrast: str = CONTRAST,
    saturation: str = SATURATION,
    crop: str | None = CROP,
    offset_x: str | None = OFFSET_X,
    offset_y: str | None = OFFSET_Y,
    output_format: str = typer.Option(
        "mp4",
        "--format",
        "-f",
        help="Output format: jpg, png, tiff for images; mp4, mov, avi for video",
    ),
    fps: int = typer.Option(24, "--fps", "-r", help="Frame rate for video output"),
    quality: int = typer.Option(20, "--quality", "-q", help="Video quality (CRF 0-51, lower = better)"),
    resolution: str | None = typer.Option(
        None,
        "--resolution",
        help="Output video resolution (e.g. 1920x1080, 4K, HD, 720p). Default: frame size",
    ),
    threads: int = typer.Option(0, "--threads", "-t", help="Worker threads (0 = auto-detect)"),
    start_frame: int | None = START_FRAME,
    end_frame: int | None = END_FRAME,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool | None = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Process a time-lapse sequence into adjusted images or a video.

    Adjustment options take a single value or comma-separated keyframes that
    are interpolated across the whole sequence.

    \b
    Example (video with an exposure ramp):
        lapsify process ./raw ./out --exposure "0,1.5" --fps 30

    \b
    Example (panning crop written as PNG stills):
        lapsify process ./raw ./out -f png --crop "1920:1080:0:0" --offset-x "0,800"
    """
    setup_logging(verbose)
    settings = get_settings()
    token = CancellationToken()

    try:
        config = build_config(
            exposure,
            brightness,
            contrast,
            saturation,
            crop,
            offset_x,
            offset_y,
            output_format,
            fps,
            quality,
            resolution,
            threads,
            start_frame,
            end_frame,
        )
        print_settings(config, threads)

        sources = list_images(input_dir)
        console.print(f"[bold blue]Found[/bold blue] {len(sources)} image files")

        codec = PillowCodec(jpeg_quality=settings.jpeg_quality)
        jobs = plan_jobs(sources, config, codec)

        if config.is_video:
            output_path = output_dir / f"{settings.video_name}.{config.output_format}"
            sink = FFmpegVideoSink(output_path, config.video, ffmpeg_binary=settings.ffmpeg_binary)
        else:
            sink = ImageDirectorySink(output_dir, config.output_format, codec)

        pipeline = Pipeline(worker_count=config.workers, codec=codec)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Processing frames...", total=len(jobs))

            def update_progress(current: int, total: int) -> None:
                progress.update(task, completed=current, total=total)

            summary = pipeline.run(jobs, sink, cancel_token=token, progress_callback=update_progress)

    except KeyboardInterrupt:
        token.cancel()
        console.print("[yellow]Processing interrupted by user[/yellow]")
        raise typer.Exit(130) from None
    except PipelineCancelled as e:
        console.print(f"[yellow]Cancelled:[/yellow] {e}")
        raise typer.Exit(1) from None
    except LapsifyError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    if config.is_video:
        console.print(f"[bold green]Video created successfully:[/bold green] {sink.output_path}")
        console.print(f"[blue]Video duration:[/blue] {summary.frames_written / config.video.fps:.2f}s at {fps} fps")
    else:
        console.print(f"[bold green]Image processing complete![/bold green] {summary.frames_written} images")
    console.print(
        f"[blue]Processing time:[/blue] {summary.elapsed_seconds:.2f}s ({summary.frames_per_second:.1f} frames/s)"
    )


@app.command()
def plan(
    input_dir: Path = typer.Argument(
        ...,
        help="Directory containing the source images",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
    exposure: str = EXPOSURE,
    brightness: str = BRIGHTNESS,
    contrast: str = CONTRAST,
    saturation: str = SATURATION,
    crop: str | None = CROP,
    offset_x: str | None = OFFSET_X,
    offset_y: str | None = OFFSET_Y,
    start_frame: int | None = START_FRAME,
    end_frame: int | None = END_FRAME,
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of frames to list (0 = all)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool | None = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Validate settings and show the per-frame schedule without rendering.

    Reads only image headers. Fails exactly as `process` would if a crop
    window leaves the image on any frame.

    \b
    Example:
        lapsify plan ./raw --crop "50%:50%:0:0" --offset-x "0,500"
    """
    setup_logging(verbose)

    try:
        config = build_config(
            exposure,
            brightness,
            contrast,
            saturation,
            crop,
            offset_x,
            offset_y,
            "jpg",
            24,
            20,
            None,
            1,
            start_frame,
            end_frame,
        )
        jobs = plan_jobs(list_images(input_dir), config, PillowCodec())
    except LapsifyError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    table = Table(title=f"{len(jobs)} frames")
    for column in ("Frame", "Source", "Crop (x, y, w, h)", "Exposure", "Brightness", "Contrast", "Saturation"):
        table.add_column(column, justify="left" if column == "Source" else "right")

    shown = jobs if limit <= 0 else jobs[:limit]
    for job in shown:
        rect = job.rect
        table.add_row(
            str(job.index),
            job.source_path.name,
            f"{rect.x}, {rect.y}, {rect.w}, {rect.h}",
            f"{job.exposure:.3f}",
            f"{job.brightness:.2f}",
            f"{job.contrast:.3f}",
            f"{job.saturation:.3f}",
        )

    Console().print(table)
    if len(shown) < len(jobs):
        console.print(f"... {len(jobs) - len(shown)} more frames")
    console.print("[green]✓[/green] All crop windows are inside their images")


if __name__ == "__main__":
    app()
