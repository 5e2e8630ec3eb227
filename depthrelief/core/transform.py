from __future__ import annotations
from dataclasses import dataclass, field
import numpy as np


def euler_xyz_matrix(rx: float, ry: float, rz: float) -> np.ndarray:
    """Rotation for intrinsic X→Y→Z Euler angles (R = Rx @ Ry @ Rz)."""
    cx, sx = np.cos(rx), np.sin(rx)
    cy, sy = np.cos(ry), np.sin(ry)
    cz, sz = np.cos(rz), np.sin(rz)
    Rx = np.array([[1,0,0],[0,cx,-sx],[0,sx,cx]])
    Ry = np.array([[cy,0,sy],[0,1,0],[-sy,0,cy]])
    Rz = np.array([[cz,-sz,0],[sz,cz,0],[0,0,1]])
    return (Rx @ Ry @ Rz).astype(float)


@dataclass
class Transform:
    """Translation / Euler rotation (radians, XYZ order) / scale of a scene object."""
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=float).reshape(3)
        self.rotation = np.asarray(self.rotation, dtype=float).reshape(3)
        self.scale = np.asarray(self.scale, dtype=float).reshape(3)

    def matrix(self) -> np.ndarray:
        M = np.eye(4, dtype=float)
        M[:3, :3] = euler_xyz_matrix(*self.rotation) * self.scale[np.newaxis, :]
        M[:3, 3] = self.position
        return M


def apply_matrix(M: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a 4x4 affine matrix to (..., 3) points in float64."""
    pts = np.asarray(points, dtype=np.float64)
    return pts @ M[:3, :3].T + M[:3, 3]


def look_at(eye, target, up=(0.0, 1.0, 0.0)) -> np.ndarray:
    """Pose matrix of an object at ``eye`` whose -Z axis points at ``target``."""
    eye = np.asarray(eye, dtype=float)
    f = np.asarray(target, dtype=float) - eye
    f /= (np.linalg.norm(f) + 1e-12)
    u = np.asarray(up, dtype=float)
    u = u / (np.linalg.norm(u) + 1e-12)
    s = np.cross(f, u)
    if np.linalg.norm(s) < 1e-9:
        # Looking along the up axis; pick a sideways axis.
        u = np.array([0.0, 0.0, 1.0]) if abs(u[2]) < 0.9 else np.array([1.0, 0.0, 0.0])
        s = np.cross(f, u)
    s /= (np.linalg.norm(s) + 1e-12)
    u = np.cross(s, f)
    M = np.eye(4, dtype=float)
    M[:3, 0] = s
    M[:3, 1] = u
    M[:3, 2] = -f
    M[:3, 3] = eye
    return M
