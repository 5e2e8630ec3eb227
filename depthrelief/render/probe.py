"""Procedural reflection probe.

A tiny offscreen scene (six flat-colored spheres on a tilted ring) is rendered
from the origin into an equirectangular radiance map, then prefiltered with a
Gaussian blur. Only the resulting :class:`EnvironmentTexture` outlives
:meth:`EnvironmentProbe.generate`; the probe scene's geometry and materials
are released before returning. The map is always rendered from the origin,
so the scene carries no camera.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..core.resources import GpuResource, ResourceLedger
from ..core.utils import get_logger, hex_to_rgb, srgb_to_linear

_log = get_logger()

PROBE_COLORS: Tuple[str, ...] = ("#6ee7ff", "#a78bfa", "#22d3ee", "#fde68a", "#60a5fa", "#f472b6")
PROBE_SPHERE_RADIUS = 0.5
PROBE_RING = (1.2, 0.8, 0.6)     # x radius, y radius, alternating z offset
PROBE_BLUR_SIGMA = 0.5           # radians


class EnvironmentTexture(GpuResource):
    """Prefiltered equirectangular radiance map, linear RGB float32 (H, W, 3)."""
    kind = "texture"

    def __init__(self, pixels: np.ndarray, ledger: Optional[ResourceLedger] = None) -> None:
        super().__init__(ledger)
        self._pixels: Optional[np.ndarray] = np.asarray(pixels, dtype=np.float32)
        self._pixels.setflags(write=False)

    @property
    def pixels(self) -> np.ndarray:
        self.ensure_alive()
        assert self._pixels is not None
        return self._pixels

    @property
    def shape(self) -> tuple[int, int]:
        h, w = self.pixels.shape[:2]
        return (h, w)

    def mean_radiance(self) -> np.ndarray:
        """Solid-angle weighted mean color, i.e. the map's diffuse irradiance / pi."""
        px = self.pixels
        h = px.shape[0]
        lat = (0.5 - (np.arange(h) + 0.5) / h) * np.pi
        w = np.cos(lat)[:, None, None]
        return (px * w).sum(axis=(0, 1)) / (w.sum() * px.shape[1])

    def to_uint8(self) -> np.ndarray:
        px = np.clip(self.pixels, 0.0, 1.0)
        srgb = np.where(px <= 0.0031308, px * 12.92, 1.055 * np.power(px, 1.0 / 2.4) - 0.055)
        return np.clip(srgb * 255.0 + 0.5, 0, 255).astype(np.uint8)

    def _release(self) -> None:
        self._pixels = None


class SphereGeometry(GpuResource):
    kind = "geometry"

    def __init__(self, radius: float, ledger: Optional[ResourceLedger] = None) -> None:
        super().__init__(ledger)
        self.radius = float(radius)


class BasicMaterial(GpuResource):
    """Unlit flat color."""
    kind = "material"

    def __init__(self, color: str, ledger: Optional[ResourceLedger] = None) -> None:
        super().__init__(ledger)
        self.color = np.asarray(srgb_to_linear(hex_to_rgb(color)), dtype=np.float64)


@dataclass
class ProbeScene:
    geometry: SphereGeometry
    centers: np.ndarray                               # (6, 3)
    materials: List[BasicMaterial] = field(default_factory=list)

    def dispose(self) -> None:
        self.geometry.dispose()
        for mat in self.materials:
            mat.dispose()


def ring_layout(count: int = 6, ring: Sequence[float] = PROBE_RING) -> np.ndarray:
    rx, ry, rz = ring
    theta = np.arange(count) / count * 2.0 * np.pi
    z = np.where(np.arange(count) % 2 == 0, rz, -rz)
    return np.column_stack([np.cos(theta) * rx, np.sin(theta) * ry, z])


def equirect_directions(width: int, height: int) -> np.ndarray:
    """Unit view directions for each texel, (H, W, 3); +Y up, u=0.5 looks down -Z."""
    u = (np.arange(width) + 0.5) / width
    v = (np.arange(height) + 0.5) / height
    phi = (u - 0.5) * 2.0 * np.pi
    lat = (0.5 - v) * np.pi
    phi, lat = np.meshgrid(phi, lat, indexing="xy")
    return np.stack([np.cos(lat) * np.sin(phi), np.sin(lat), -np.cos(lat) * np.cos(phi)], axis=-1)


def _gaussian_kernel(sigma_px: float) -> np.ndarray:
    radius = max(1, int(np.ceil(3.0 * sigma_px)))
    x = np.arange(-radius, radius + 1, dtype=np.float64)
    k = np.exp(-0.5 * (x / max(sigma_px, 1e-6)) ** 2)
    return k / k.sum()


def _blur_axis(img: np.ndarray, kernel: np.ndarray, axis: int, mode: str) -> np.ndarray:
    r = len(kernel) // 2
    pad = [(0, 0)] * img.ndim
    pad[axis] = (r, r)
    padded = np.pad(img, pad, mode=mode)
    out = np.zeros_like(img)
    n = img.shape[axis]
    for i, w in enumerate(kernel):
        out += w * np.take(padded, np.arange(i, i + n), axis=axis)
    return out


def prefilter(radiance: np.ndarray, sigma: float = PROBE_BLUR_SIGMA) -> np.ndarray:
    """Separable Gaussian blur; longitude wraps, latitude clamps."""
    h, w = radiance.shape[:2]
    if sigma <= 0:
        return radiance.copy()
    sigma_u = sigma / (2.0 * np.pi / w)
    sigma_v = sigma / (np.pi / h)
    # Wrap padding cannot exceed the image width.
    sigma_u = min(sigma_u, w / 6.0)
    out = _blur_axis(radiance, _gaussian_kernel(sigma_u), axis=1, mode="wrap")
    out = _blur_axis(out, _gaussian_kernel(sigma_v), axis=0, mode="edge")
    return out


class EnvironmentProbe:
    """Generates the shared reflection map for one rendering context."""

    def __init__(
        self,
        ledger: Optional[ResourceLedger] = None,
        width: int = 128,
        height: int = 64,
        sigma: float = PROBE_BLUR_SIGMA,
        near: float = 0.1,
        far: float = 100.0,
    ) -> None:
        self.ledger = ledger
        self.width = int(width)
        self.height = int(height)
        self.sigma = float(sigma)
        self.near = float(near)
        self.far = float(far)

    def build_scene(self) -> ProbeScene:
        geometry = SphereGeometry(PROBE_SPHERE_RADIUS, self.ledger)
        materials = [BasicMaterial(PROBE_COLORS[i % len(PROBE_COLORS)], self.ledger) for i in range(6)]
        return ProbeScene(geometry=geometry, centers=ring_layout(6), materials=materials)

    def render_radiance(self, scene: ProbeScene) -> np.ndarray:
        """Ray-cast the probe scene from the origin into an equirect map."""
        dirs = equirect_directions(self.width, self.height).reshape(-1, 3)
        r = scene.geometry.radius
        best_t = np.full(dirs.shape[0], np.inf)
        color = np.zeros((dirs.shape[0], 3), dtype=np.float64)
        for center, mat in zip(scene.centers, scene.materials):
            b = dirs @ center
            c = float(center @ center) - r * r
            disc = b * b - c
            hit = disc >= 0.0
            t = np.where(hit, b - np.sqrt(np.where(hit, disc, 0.0)), np.inf)
            t = np.where((t > self.near) & (t < self.far), t, np.inf)
            closer = t < best_t
            best_t = np.where(closer, t, best_t)
            color[closer] = mat.color
        return color.reshape(self.height, self.width, 3)

    def generate(self) -> EnvironmentTexture:
        scene = self.build_scene()
        try:
            radiance = self.render_radiance(scene)
            filtered = prefilter(radiance, self.sigma)
        finally:
            scene.dispose()
        texture = EnvironmentTexture(filtered, self.ledger)
        _log.info("Generated %dx%d environment probe", self.width, self.height)
        return texture
