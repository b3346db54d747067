"""Tests for the Pillow image codec."""

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from lapsify.codec import ImageCodec, PillowCodec, is_image_file
from lapsify.errors import DecodeError, EncodeError


@pytest.fixture
def codec():
    return PillowCodec()


@pytest.fixture
def pixels():
    rng = np.random.default_rng(3)
    return rng.integers(0, 256, size=(12, 16, 3), dtype=np.uint8)


@pytest.mark.unit
def test_is_image_file():
    assert is_image_file(Path("a/IMG_0001.JPG"))
    assert is_image_file(Path("frame.tiff"))
    assert is_image_file(Path("frame.webp"))
    assert not is_image_file(Path("notes.txt"))
    assert not is_image_file(Path("clip.mp4"))


@pytest.mark.unit
def test_pillow_codec_satisfies_protocol(codec):
    assert isinstance(codec, ImageCodec)


@pytest.mark.unit
class TestDecode:
    """Tests for probe() and decode()."""

    def test_size_read_from_header(self, codec, tmp_path, pixels):
        path = tmp_path / "frame.png"
        Image.fromarray(pixels).save(path)
        assert codec.probe(path) == (16, 12)

    def test_decode_png_exact(self, codec, tmp_path, pixels):
        path = tmp_path / "frame.png"
        Image.fromarray(pixels).save(path)

        decoded = codec.decode(path)
        assert decoded.shape == (12, 16, 3)
        assert decoded.dtype == np.uint8
        np.testing.assert_array_equal(decoded, pixels)

    def test_decode_converts_to_rgb(self, codec, tmp_path):
        path = tmp_path / "grey.png"
        Image.new("L", (5, 4), color=77).save(path)

        decoded = codec.decode(path)
        assert decoded.shape == (4, 5, 3)
        assert (decoded == 77).all()

    def test_decode_16bit_grey_scaled_to_8bit(self, codec, tmp_path):
        """16-bit samples are scaled down, not clipped to white."""
        path = tmp_path / "deep.png"
        values = np.full((4, 5), 32768, dtype=np.uint16)
        values[0, 0] = 0
        values[0, 1] = 200 * 256 + 50
        values[0, 2] = 65535
        Image.fromarray(values).save(path)

        decoded = codec.decode(path)
        assert decoded.shape == (4, 5, 3)
        assert decoded.dtype == np.uint8
        assert tuple(decoded[1, 1]) == (128, 128, 128)
        assert [int(v) for v in decoded[0, :3, 0]] == [0, 200, 255]

    def test_decode_16bit_tiff(self, codec, tmp_path):
        path = tmp_path / "deep.tif"
        Image.fromarray(np.full((3, 3), 16384, dtype=np.uint16)).save(path)
        assert tuple(codec.decode(path)[2, 2]) == (64, 64, 64)

    def test_decode_rgba(self, codec, tmp_path):
        path = tmp_path / "alpha.png"
        Image.new("RGBA", (3, 3), color=(10, 20, 30, 128)).save(path)
        assert tuple(codec.decode(path)[0, 0]) == (10, 20, 30)

    def test_missing_file(self, codec, tmp_path):
        with pytest.raises(DecodeError, match="Image not found") as exc_info:
            codec.decode(tmp_path / "missing.jpg")
        assert exc_info.value.path == tmp_path / "missing.jpg"

        with pytest.raises(DecodeError):
            codec.probe(tmp_path / "missing.jpg")

    def test_not_an_image(self, codec, tmp_path):
        path = tmp_path / "broken.jpg"
        path.write_bytes(b"definitely not a jpeg")

        with pytest.raises(DecodeError, match="broken.jpg"):
            codec.decode(path)
        with pytest.raises(DecodeError):
            codec.probe(path)


@pytest.mark.unit
class TestEncode:
    """Tests for encode()."""

    @pytest.mark.parametrize("output_format,pil_format", [("png", "PNG"), ("tiff", "TIFF"), ("jpg", "JPEG")])
    def test_formats(self, codec, pixels, output_format, pil_format):
        data = codec.encode(pixels, output_format)
        with Image.open(io.BytesIO(data)) as img:
            assert img.format == pil_format
            assert img.size == (16, 12)

    def test_png_lossless(self, codec, pixels):
        data = codec.encode(pixels, "png")
        with Image.open(io.BytesIO(data)) as img:
            np.testing.assert_array_equal(np.asarray(img.convert("RGB")), pixels)

    def test_non_contiguous_input(self, codec, pixels):
        view = pixels[2:10, 3:11]
        data = codec.encode(view, "png")
        with Image.open(io.BytesIO(data)) as img:
            np.testing.assert_array_equal(np.asarray(img), view)

    def test_unsupported_format(self, codec, pixels):
        with pytest.raises(EncodeError, match="Unsupported output format"):
            codec.encode(pixels, "gif")
