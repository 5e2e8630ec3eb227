from __future__ import annotations
import io
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from ..core.utils import get_logger, js_round

if TYPE_CHECKING:  # pragma: no cover
    from .loop import RenderLoop

_log = get_logger()

SCREENSHOT_WIDTH = 2048
SCREENSHOT_FILENAME = "screenshot-2k.png"


def screenshot_size(viewport_width: int, viewport_height: int, width: int = SCREENSHOT_WIDTH) -> tuple[int, int]:
    aspect = viewport_width / viewport_height
    return (width, max(1, js_round(width / aspect)))


def capture_screenshot(loop: "RenderLoop", width: int = SCREENSHOT_WIDTH) -> Image.Image:
    """Render one frame at ``width`` pixels wide and return it as an image.

    The renderer's size and pixel ratio are restored on every exit path.
    """
    renderer = loop.renderer
    target_w, target_h = screenshot_size(loop.viewport.width, loop.viewport.height, width)
    prev_size = renderer.get_size()
    prev_ratio = renderer.pixel_ratio
    try:
        renderer.set_pixel_ratio(1.0)
        renderer.set_size(target_w, target_h)
        frame = loop.composite()
    finally:
        renderer.set_pixel_ratio(prev_ratio)
        renderer.set_size(*prev_size)
    _log.info("Captured %dx%d screenshot", target_w, target_h)
    return Image.fromarray(np.asarray(frame, dtype=np.uint8))


def encode_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()
