from __future__ import annotations
import numpy as np
import math
import logging

def get_logger(name: str = "depthrelief") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(levelname)s] %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger

def normalize_or_zero(v: np.ndarray) -> np.ndarray:
    """Normalize rows of ``v``; zero-length rows stay zero."""
    lens = np.linalg.norm(v, axis=-1, keepdims=True)
    return np.divide(v, lens, out=np.zeros_like(v), where=lens > 0)

def js_round(x: float) -> int:
    # Half-up rounding (Python's round() is half-even).
    return int(math.floor(x + 0.5))

def hex_to_rgb(value: int | str) -> tuple[float, float, float]:
    if isinstance(value, str):
        value = int(value.lstrip("#"), 16)
    r = (value >> 16) & 0xFF
    g = (value >> 8) & 0xFF
    b = value & 0xFF
    return (r / 255.0, g / 255.0, b / 255.0)

def srgb_to_linear(rgb: tuple[float, float, float]) -> tuple[float, float, float]:
    out = []
    for c in rgb:
        if c < 0.04045:
            out.append(c * 0.0773993808)
        else:
            out.append(math.pow(c * 0.9478672986 + 0.0521327014, 2.4))
    return (out[0], out[1], out[2])
