from __future__ import annotations

import io
import math
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pytest
from PIL import Image


class FakeRenderer:
    """Records draws instead of touching a GPU."""

    def __init__(self, width: int = 1, height: int = 1) -> None:
        self._size = (width, height)
        self._ratio = 1.0
        self.renders: List[Dict[str, Any]] = []
        self.size_history: List[tuple[int, int]] = []
        self.dispose_calls = 0
        self.fail_next: Optional[Exception] = None

    @property
    def pixel_ratio(self) -> float:
        return self._ratio

    def set_pixel_ratio(self, ratio: float) -> None:
        self._ratio = float(ratio)

    def set_size(self, width: int, height: int) -> None:
        self._size = (int(width), int(height))
        self.size_history.append(self._size)

    def get_size(self) -> tuple[int, int]:
        return self._size

    def render(self, scene, camera) -> np.ndarray:
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        w = max(1, int(math.floor(self._size[0] * self._ratio)))
        h = max(1, int(math.floor(self._size[1] * self._ratio)))
        self.renders.append({
            "size": (w, h),
            "lights": [light.spec.name for light in scene.lights],
            "meshes": len(scene.meshes),
            "aspect": camera.aspect,
        })
        return np.full((h, w, 3), 51, dtype=np.uint8)

    def dispose(self) -> None:
        self.dispose_calls += 1


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


def png_bytes(array: np.ndarray) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(array).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def white_png() -> bytes:
    return png_bytes(np.full((2, 2, 3), 255, dtype=np.uint8))


@pytest.fixture
def gradient_png_path(tmp_path: Path) -> Path:
    ramp = np.tile(np.linspace(0, 255, 16).astype(np.uint8), (16, 1))
    path = tmp_path / "gradient.png"
    Image.fromarray(ramp).save(path)
    return path
