from __future__ import annotations
from dataclasses import dataclass, field
from typing import Tuple

import math
import numpy as np

from ..core.transform import look_at

_EPS = 1e-6


@dataclass
class PerspectiveCamera:
    fov_deg: float = 45.0
    aspect: float = 1.0
    near: float = 0.1
    far: float = 100.0
    position: np.ndarray = field(default_factory=lambda: np.array([0.8, 0.8, 1.2]))
    target: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=float).reshape(3)
        self.target = np.asarray(self.target, dtype=float).reshape(3)
        self._projection = self._build_projection()

    def _build_projection(self) -> np.ndarray:
        f = 1.0 / math.tan(math.radians(self.fov_deg) / 2.0)
        n, fa = self.near, self.far
        P = np.zeros((4, 4))
        P[0, 0] = f / self.aspect
        P[1, 1] = f
        P[2, 2] = (fa + n) / (n - fa)
        P[2, 3] = 2.0 * fa * n / (n - fa)
        P[3, 2] = -1.0
        return P

    def update_projection_matrix(self) -> None:
        self._projection = self._build_projection()

    @property
    def projection_matrix(self) -> np.ndarray:
        return self._projection

    @property
    def yfov(self) -> float:
        return math.radians(self.fov_deg)

    def matrix_world(self) -> np.ndarray:
        return look_at(self.position, self.target)


@dataclass
class Spherical:
    """Polar angle ``phi`` from +Y, azimuth ``theta`` around +Y from +Z."""
    radius: float = 1.0
    phi: float = 0.0
    theta: float = 0.0

    @staticmethod
    def from_vector(v: np.ndarray) -> "Spherical":
        x, y, z = (float(c) for c in v)
        r = math.sqrt(x * x + y * y + z * z)
        if r == 0.0:
            return Spherical(0.0, 0.0, 0.0)
        return Spherical(r, math.acos(max(-1.0, min(1.0, y / r))), math.atan2(x, z))

    def to_vector(self) -> np.ndarray:
        s = math.sin(self.phi) * self.radius
        return np.array([s * math.sin(self.theta), math.cos(self.phi) * self.radius, s * math.cos(self.theta)])


class OrbitControls:
    """Orbit/zoom around a fixed target with damped (inertial) response.

    Input accumulates into a pending spherical delta; each :meth:`update`
    applies ``damping_factor`` of it to the camera and decays the rest, so
    the view keeps drifting for a few frames after the pointer stops.
    """

    def __init__(
        self,
        camera: PerspectiveCamera,
        viewport_height: int = 1,
        damping_factor: float = 0.05,
        rotate_speed: float = 1.0,
        zoom_speed: float = 1.0,
        min_distance: float = 0.0,
        max_distance: float = math.inf,
        min_polar_angle: float = 0.0,
        max_polar_angle: float = math.pi,
    ) -> None:
        self.camera = camera
        self.target = camera.target.copy()
        self.viewport_height = max(1, int(viewport_height))
        self.enable_damping = True
        self.damping_factor = float(damping_factor)
        self.rotate_speed = float(rotate_speed)
        self.zoom_speed = float(zoom_speed)
        self.min_distance = float(min_distance)
        self.max_distance = float(max_distance)
        self.min_polar_angle = float(min_polar_angle)
        self.max_polar_angle = float(max_polar_angle)
        self._delta = Spherical(0.0, 0.0, 0.0)
        self._scale = 1.0
        self.disposed = False

    # -- input --
    def rotate_left(self, angle: float) -> None:
        self._delta.theta -= angle

    def rotate_up(self, angle: float) -> None:
        self._delta.phi -= angle

    def rotate(self, dx_px: float, dy_px: float) -> None:
        """Pointer drag by (dx, dy) pixels; a full viewport height is one turn."""
        self.rotate_left(2.0 * math.pi * dx_px * self.rotate_speed / self.viewport_height)
        self.rotate_up(2.0 * math.pi * dy_px * self.rotate_speed / self.viewport_height)

    def zoom_scale(self) -> float:
        return math.pow(0.95, self.zoom_speed)

    def dolly(self, scale: float) -> None:
        """Scale the orbit distance on the next update; < 1 moves closer."""
        if scale <= 0:
            raise ValueError("dolly scale must be positive")
        self._scale *= scale

    def dolly_in(self, scale: float | None = None) -> None:
        self._scale *= scale if scale is not None else self.zoom_scale()

    def dolly_out(self, scale: float | None = None) -> None:
        self._scale /= scale if scale is not None else self.zoom_scale()

    # -- per frame --
    def update(self) -> bool:
        """Advance one frame. Returns True when the camera moved."""
        offset = self.camera.position - self.target
        sph = Spherical.from_vector(offset)

        if self.enable_damping:
            sph.theta += self._delta.theta * self.damping_factor
            sph.phi += self._delta.phi * self.damping_factor
        else:
            sph.theta += self._delta.theta
            sph.phi += self._delta.phi

        sph.phi = max(self.min_polar_angle, min(self.max_polar_angle, sph.phi))
        sph.phi = max(_EPS, min(math.pi - _EPS, sph.phi))
        sph.radius = max(self.min_distance, min(self.max_distance, sph.radius * self._scale))

        new_position = self.target + sph.to_vector()
        moved = float(np.sum((new_position - self.camera.position) ** 2)) > _EPS * _EPS
        self.camera.position = new_position
        self.camera.target = self.target.copy()

        if self.enable_damping:
            self._delta.theta *= 1.0 - self.damping_factor
            self._delta.phi *= 1.0 - self.damping_factor
        else:
            self._delta = Spherical(0.0, 0.0, 0.0)
        self._scale = 1.0
        return moved

    def dispose(self) -> None:
        self.disposed = True
