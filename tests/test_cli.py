"""Tests for CLI interface."""

import os
import re

import pytest
from typer.testing import CliRunner

from lapsify.cli import app, list_images

# Ensure consistent terminal width for Rich formatting across all environments
os.environ.setdefault("COLUMNS", "120")

runner = CliRunner()

# Environment variables for consistent test output across all platforms
TEST_ENV = {
    "COLUMNS": "120",  # Consistent terminal width for Rich formatting
    "NO_COLOR": "1",  # Disable ANSI color codes for reliable string matching
}

# ANSI escape code pattern
ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text."""
    return ANSI_ESCAPE.sub("", text)


@pytest.mark.unit
def test_cli_help():
    """Test --help output."""
    result = runner.invoke(app, ["--help"], env=TEST_ENV)
    assert result.exit_code == 0
    output = strip_ansi(result.stdout.lower())
    assert "time-lapse" in output


@pytest.mark.unit
def test_cli_commands_exist():
    """Test that expected commands exist."""
    result = runner.invoke(app, ["--help"], env=TEST_ENV)
    assert result.exit_code == 0
    output = strip_ansi(result.stdout.lower())
    assert "process" in output
    assert "plan" in output


@pytest.mark.unit
def test_process_help():
    """Test process --help output."""
    result = runner.invoke(app, ["process", "--help"], env=TEST_ENV)
    assert result.exit_code == 0
    output = strip_ansi(result.stdout.lower())
    assert "--exposure" in output
    assert "--crop" in output
    assert "--offset-x" in output


@pytest.mark.unit
def test_version():
    """Test --version output."""
    result = runner.invoke(app, ["process", "--version"], env=TEST_ENV)
    assert result.exit_code == 0
    assert "lapsify version" in result.stdout


@pytest.mark.unit
def test_list_images(image_dir):
    """Non-image files are skipped and images are sorted by name."""
    names = [p.name for p in list_images(image_dir)]
    assert names == [f"IMG_{i:04d}.jpg" for i in range(5)]


@pytest.mark.unit
def test_process_writes_images(image_dir, tmp_path):
    """Full run to PNG stills."""
    output_dir = tmp_path / "out"
    result = runner.invoke(
        app,
        [
            "process",
            str(image_dir),
            str(output_dir),
            "--format",
            "png",
            "--exposure",
            "0,1",
            "--crop",
            "50%:50%:0:0",
            "--offset-x",
            "0,20",
            "--threads",
            "2",
        ],
        env=TEST_ENV,
    )
    assert result.exit_code == 0, strip_ansi(result.output)

    written = sorted(p.name for p in output_dir.iterdir())
    assert written == [f"IMG_{i:04d}_processed.png" for i in range(5)]
    assert "complete" in strip_ansi(result.output).lower()


@pytest.mark.unit
def test_process_frame_range(image_dir, tmp_path):
    output_dir = tmp_path / "out"
    result = runner.invoke(
        app,
        ["process", str(image_dir), str(output_dir), "-f", "jpg", "--start-frame", "1", "--end-frame", "2"],
        env=TEST_ENV,
    )
    assert result.exit_code == 0, strip_ansi(result.output)
    assert sorted(p.name for p in output_dir.iterdir()) == ["IMG_0001_processed.jpg", "IMG_0002_processed.jpg"]


@pytest.mark.unit
def test_process_invalid_crop(image_dir, tmp_path):
    """Malformed crop strings fail with exit code 1 and no output."""
    output_dir = tmp_path / "out"
    result = runner.invoke(
        app,
        ["process", str(image_dir), str(output_dir), "-f", "png", "--crop", "100:100:0"],
        env=TEST_ENV,
    )
    assert result.exit_code == 1
    assert "4 parts" in strip_ansi(result.output)
    assert not output_dir.exists()


@pytest.mark.unit
def test_process_invalid_keyframes(image_dir, tmp_path):
    result = runner.invoke(
        app,
        ["process", str(image_dir), str(tmp_path / "out"), "--saturation", "1,abc"],
        env=TEST_ENV,
    )
    assert result.exit_code == 1
    assert "not a number" in strip_ansi(result.output)


@pytest.mark.unit
def test_process_crop_out_of_bounds(image_dir, tmp_path):
    """A crop that leaves the image on any frame aborts before rendering."""
    output_dir = tmp_path / "out"
    result = runner.invoke(
        app,
        ["process", str(image_dir), str(output_dir), "-f", "png", "--crop", "40:30:0:0", "--offset-x", "0,10"],
        env=TEST_ENV,
    )
    assert result.exit_code == 1
    output = strip_ansi(result.output)
    assert "frame 1" in output
    assert not output_dir.exists()


@pytest.mark.unit
def test_process_output_dir_is_a_file(image_dir, tmp_path):
    """An unusable output directory is reported as an error, not a traceback."""
    blocker = tmp_path / "out"
    blocker.write_text("file")
    result = runner.invoke(app, ["process", str(image_dir), str(blocker), "-f", "png"], env=TEST_ENV)
    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert "Cannot create output directory" in strip_ansi(result.output)


@pytest.mark.unit
def test_process_missing_input(tmp_path):
    result = runner.invoke(app, ["process", str(tmp_path / "nope"), str(tmp_path / "out")], env=TEST_ENV)
    assert result.exit_code != 0


@pytest.mark.unit
def test_plan_lists_frames(image_dir):
    result = runner.invoke(
        app,
        ["plan", str(image_dir), "--exposure", "0,2", "--crop", "20:10:0:0", "--offset-y", "0,20"],
        env=TEST_ENV,
    )
    assert result.exit_code == 0, strip_ansi(result.output)
    output = strip_ansi(result.output)
    assert "IMG_0000.jpg" in output
    assert "IMG_0004.jpg" in output
    assert "2.000" in output
    assert "inside their images" in output


@pytest.mark.unit
def test_plan_reports_boundary_error(image_dir):
    result = runner.invoke(
        app,
        ["plan", str(image_dir), "--crop", "20:10:0:0", "--offset-y", "0,25"],
        env=TEST_ENV,
    )
    assert result.exit_code == 1
    assert "outside the image" in strip_ansi(result.output)
