from __future__ import annotations
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from .utils import get_logger

_log = get_logger()

# Rec. 709 luma weights
LUMA_WEIGHTS = (0.2126, 0.7152, 0.0722)

ImageSource = Union[str, Path, bytes, bytearray, "Image.Image"]


class DecodeError(ValueError):
    """The uploaded image could not be decoded."""


@dataclass
class Heightfield:
    """Square luminance samples in [0, 1], row-major, row 0 = top of image."""
    values: np.ndarray    # (N, N) float32

    def __post_init__(self) -> None:
        self.values = np.asarray(self.values, dtype=np.float32)
        if self.values.ndim != 2 or self.values.shape[0] != self.values.shape[1]:
            raise ValueError(f"Heightfield must be square, got shape {self.values.shape}")

    @property
    def resolution(self) -> int:
        return int(self.values.shape[0])

    @classmethod
    def constant(cls, resolution: int, value: float) -> "Heightfield":
        return cls(np.full((resolution, resolution), value, dtype=np.float32))


def _open_image(source: ImageSource) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    try:
        if isinstance(source, (bytes, bytearray)):
            img = Image.open(io.BytesIO(bytes(source)))
        else:
            img = Image.open(Path(source))
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc
    return img


def _to_rgba(img: Image.Image) -> Image.Image:
    # 16-bit and float rasters are quantized to 8 bits like a browser canvas would.
    if img.mode.startswith("I") or img.mode == "F":
        arr = np.asarray(img, dtype=np.float64)
        if img.mode.startswith("I"):
            # Pillow loads 16-bit grayscale PNG/TIFF as "I;16*" or "I".
            peak = 65535.0
        elif arr.max(initial=0.0) <= 1.0:
            peak = 1.0
        else:
            peak = 255.0
        gray = np.clip(arr / peak * 255.0 + 0.5, 0, 255).astype(np.uint8)
        return Image.fromarray(gray).convert("RGBA")
    return img.convert("RGBA")


def sample_heightfield(source: ImageSource, resolution: int) -> Heightfield:
    """Scale ``source`` into an N×N raster and convert it to luminance heights.

    The raster is drawn onto a transparent canvas, so fully transparent pixels
    read back as black (height 0).
    """
    if resolution < 1:
        raise ValueError("resolution must be >= 1")
    img = _open_image(source)
    try:
        with _to_rgba(img) as rgba, rgba.resize((resolution, resolution), Image.Resampling.BILINEAR) as raster:
            pixels = np.asarray(raster, dtype=np.float64)
    except (OSError, ValueError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc
    finally:
        if img is not source:
            img.close()

    rgb = pixels[..., :3]
    rgb[pixels[..., 3] == 0] = 0.0
    wr, wg, wb = LUMA_WEIGHTS
    lum = (wr * rgb[..., 0] + wg * rgb[..., 1] + wb * rgb[..., 2]) / 255.0
    _log.debug("Sampled %dx%d heightfield (min=%.3f max=%.3f)", resolution, resolution, lum.min(), lum.max())
    return Heightfield(lum.astype(np.float32))
