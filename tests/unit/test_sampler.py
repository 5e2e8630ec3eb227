import numpy as np
import pytest
from PIL import Image

from depthrelief.core.sampler import DecodeError, Heightfield, sample_heightfield

from conftest import png_bytes


def test_uniform_white_image_samples_to_ones(white_png) -> None:
    hf = sample_heightfield(white_png, 8)
    assert hf.values.shape == (8, 8)
    assert hf.values.dtype == np.float32
    np.testing.assert_array_equal(hf.values, np.ones((8, 8), dtype=np.float32))


def test_luminance_uses_rec709_weights() -> None:
    red = np.zeros((4, 4, 3), dtype=np.uint8)
    red[..., 0] = 255
    green = np.zeros((4, 4, 3), dtype=np.uint8)
    green[..., 1] = 255
    assert sample_heightfield(png_bytes(red), 4).values[0, 0] == pytest.approx(0.2126, abs=1e-6)
    assert sample_heightfield(png_bytes(green), 4).values[0, 0] == pytest.approx(0.7152, abs=1e-6)


def test_rows_follow_image_rows() -> None:
    img = np.zeros((4, 4), dtype=np.uint8)
    img[:2] = 255
    hf = sample_heightfield(Image.fromarray(img), 4)
    assert hf.values[0].min() > 0.9
    assert hf.values[-1].max() < 0.1


def test_transparent_pixels_read_as_black() -> None:
    rgba = np.full((4, 4, 4), 255, dtype=np.uint8)
    rgba[..., 3] = 0
    hf = sample_heightfield(png_bytes(rgba), 4)
    np.testing.assert_array_equal(hf.values, np.zeros((4, 4), dtype=np.float32))


def test_sixteen_bit_grayscale_is_quantized(tmp_path) -> None:
    arr = np.full((4, 4), 65535, dtype=np.uint16)
    path = tmp_path / "deep.png"
    Image.fromarray(arr).save(path)
    hf = sample_heightfield(path, 4)
    np.testing.assert_allclose(hf.values, 1.0, atol=1e-6)


def test_undecodable_bytes_raise_decode_error() -> None:
    with pytest.raises(DecodeError):
        sample_heightfield(b"definitely not an image", 4)


def test_missing_file_raises_decode_error(tmp_path) -> None:
    with pytest.raises(DecodeError):
        sample_heightfield(tmp_path / "missing.png", 4)


def test_heightfield_must_be_square() -> None:
    with pytest.raises(ValueError):
        Heightfield(np.zeros((2, 3)))


def test_dark_sixteen_bit_image_stays_dark(tmp_path) -> None:
    arr = np.full((4, 4), 255, dtype=np.uint16)
    path = tmp_path / "dark.png"
    Image.fromarray(arr).save(path)
    hf = sample_heightfield(path, 4)
    assert hf.values.max() < 0.01
