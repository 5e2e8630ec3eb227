from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image


def _unit_grid(size: int) -> tuple[np.ndarray, np.ndarray]:
    lin = np.linspace(-1.0, 1.0, size, dtype=np.float64)
    xv, yv = np.meshgrid(lin, lin, indexing="xy")
    return xv, yv


def _dome(size: int) -> np.ndarray:
    xv, yv = _unit_grid(size)
    r2 = xv ** 2 + yv ** 2
    return np.sqrt(np.clip(1.0 - r2, 0.0, None))


def _ramp(size: int) -> np.ndarray:
    xv, _ = _unit_grid(size)
    return (xv + 1.0) / 2.0


def _ripple(size: int) -> np.ndarray:
    xv, yv = _unit_grid(size)
    r = np.sqrt(xv ** 2 + yv ** 2)
    return 0.5 + 0.5 * np.cos(r * 6.0 * np.pi) * np.exp(-2.0 * r)


_PRESETS = {"dome": _dome, "ramp": _ramp, "ripple": _ripple}


def synthetic_depthmap(preset: str, size: int = 256) -> Image.Image:
    preset = preset.lower()
    if preset not in _PRESETS:
        raise ValueError(f"Unknown synthetic depthmap preset '{preset}'.")
    if size < 2:
        raise ValueError("size must be >= 2")
    heights = np.clip(_PRESETS[preset](size), 0.0, 1.0)
    return Image.fromarray((heights * 255.0 + 0.5).astype(np.uint8))


def generate_depthmap(preset: str, size: int, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    synthetic_depthmap(preset, size).save(path, format="PNG")
