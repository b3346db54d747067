"""Pytest configuration and fixtures for lapsify tests."""

import random
import threading
import time
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from lapsify.errors import DecodeError, EncodeError
from lapsify.models import EncodedFrame, FrameResult


class FakeCodec:
    """In-memory codec: each path decodes to a small image tagged with its number.

    Paths look like ``frame_0007.jpg``; pixel (0, 0) of the decoded image holds
    the number so tests can check which source ended up in which output slot.
    """

    def __init__(self, size=(8, 6), delay=None, fail_on=None):
        self.size = size
        self.delay = delay
        self.fail_on = set(fail_on or ())
        self.decode_calls = 0
        self.probe_calls = 0
        self._lock = threading.Lock()

    @staticmethod
    def number(path: Path) -> int:
        return int(Path(path).stem.split("_")[-1])

    def probe(self, path):
        with self._lock:
            self.probe_calls += 1
        return self.size

    def decode(self, path):
        with self._lock:
            self.decode_calls += 1
        number = self.number(path)
        if self.delay is not None:
            time.sleep(self.delay(number))
        if number in self.fail_on:
            raise DecodeError("Failed to open image (corrupt)", path)

        width, height = self.size
        image = np.zeros((height, width, 3), dtype=np.uint8)
        image[0, 0] = (number % 256, number // 256, 0)
        return image

    def encode(self, pixels, output_format):
        return pixels.tobytes()


class RecordingSink:
    """OutputSink that keeps written frames in memory."""

    def __init__(self, fail_on_write=None):
        self.fail_on_write = fail_on_write
        self.opened = False
        self.closed = False
        self.aborted = False
        self.indices: list[int] = []
        self.sources: list[Path] = []
        self.payloads: list[bytes] = []

    def encode_frame(self, pixels):
        height, width = pixels.shape[:2]
        return EncodedFrame(np.ascontiguousarray(pixels).tobytes(), width, height)

    def open(self):
        self.opened = True

    def write(self, result: FrameResult):
        if result.index == self.fail_on_write:
            raise EncodeError(f"Disk full at frame {result.index}")
        self.indices.append(result.index)
        self.sources.append(result.source_path)
        self.payloads.append(result.frame.data)

    def close(self):
        self.closed = True

    def abort(self):
        self.aborted = True


def frame_paths(count: int, directory: Path = Path("/frames")) -> list[Path]:
    return [directory / f"frame_{i:04d}.jpg" for i in range(count)]


def random_delay(seed: int = 1234, maximum: float = 0.004):
    rng = random.Random(seed)
    delays: dict[int, float] = {}
    lock = threading.Lock()

    def delay(number: int) -> float:
        with lock:
            if number not in delays:
                delays[number] = rng.uniform(0, maximum)
            return delays[number]

    return delay


@pytest.fixture
def fake_codec():
    return FakeCodec()


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def image_dir(tmp_path):
    """Directory with five 40x30 gradient JPEGs plus a non-image file."""
    directory = tmp_path / "input"
    directory.mkdir()
    for i in range(5):
        pixels = np.zeros((30, 40, 3), dtype=np.uint8)
        pixels[..., 0] = np.linspace(0, 255, 40, dtype=np.uint8)[np.newaxis, :]
        pixels[..., 1] = i * 40
        Image.fromarray(pixels).save(directory / f"IMG_{i:04d}.jpg", quality=95)
    (directory / "notes.txt").write_text("not an image")
    return directory
