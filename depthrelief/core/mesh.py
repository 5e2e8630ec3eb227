"""Heightfield → relief mesh.

The grid follows the usual plane layout: ``(segments+1)²`` vertices, rows
running from +y (top of the image) to -y, columns from -x to +x, and two
triangles per cell wound counter-clockwise when seen from +z.
"""
from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from .sampler import Heightfield
from .utils import get_logger, normalize_or_zero

_log = get_logger()

MIN_DETAIL = 2
MAX_DETAIL = 2048


def segments_for_detail(detail: int) -> int:
    """Grid segments per side for a requested detail (vertices per side)."""
    return max(MIN_DETAIL, min(MAX_DETAIL, int(detail))) - 1


@dataclass
class ReliefMesh:
    vertices: np.ndarray    # (V, 3) float32
    faces: np.ndarray       # (F, 3) int64
    normals: np.ndarray     # (V, 3) float32
    segments: int
    size: float
    thickness: float

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def triangle_count(self) -> int:
        return int(self.faces.shape[0])

    @property
    def grid(self) -> int:
        return self.segments + 1


def plane_grid(size: float, segments: int) -> tuple[np.ndarray, np.ndarray]:
    grid = segments + 1
    step = size / segments
    xs = np.arange(grid, dtype=np.float64) * step - size / 2.0
    ys = size / 2.0 - np.arange(grid, dtype=np.float64) * step
    xv, yv = np.meshgrid(xs, ys, indexing="xy")
    vertices = np.column_stack([xv.ravel(), yv.ravel(), np.zeros(grid * grid)]).astype(np.float32)

    ix, iy = np.meshgrid(np.arange(segments), np.arange(segments), indexing="xy")
    a = (ix + grid * iy).ravel()
    b = (ix + grid * (iy + 1)).ravel()
    c = (ix + 1 + grid * (iy + 1)).ravel()
    d = (ix + 1 + grid * iy).ravel()
    faces = np.empty((segments * segments * 2, 3), dtype=np.int64)
    faces[0::2] = np.column_stack([a, b, d])
    faces[1::2] = np.column_stack([b, c, d])
    return vertices, faces


def face_normals(vertices: np.ndarray, faces: np.ndarray, normalize: bool = True) -> np.ndarray:
    """(C - B) x (A - B) for each triangle (A, B, C)."""
    tris = vertices[faces].astype(np.float64, copy=False)
    n = np.cross(tris[:, 2] - tris[:, 1], tris[:, 0] - tris[:, 1])
    return normalize_or_zero(n) if normalize else n


def compute_vertex_normals(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    # Area-weighted: unnormalized face normals summed per vertex.
    fn = face_normals(vertices, faces, normalize=False)
    n_vertices = vertices.shape[0]
    normals = np.zeros((n_vertices, 3), dtype=np.float64)
    for corner in range(3):
        idx = faces[:, corner]
        for axis in range(3):
            normals[:, axis] += np.bincount(idx, weights=fn[:, axis], minlength=n_vertices)
    return normalize_or_zero(normals).astype(np.float32)


def build_relief_mesh(heightfield: Heightfield, segments: int, size: float, thickness: float) -> ReliefMesh:
    grid = segments + 1
    if segments < 1:
        raise ValueError("segments must be >= 1")
    if heightfield.resolution != grid:
        raise ValueError(f"Heightfield is {heightfield.resolution}x{heightfield.resolution}, expected {grid}x{grid}")

    vertices, faces = plane_grid(size, segments)
    heights = heightfield.values.astype(np.float64).ravel()
    # Relief spans [-thickness*size, +thickness*size] around the plane.
    vertices[:, 2] = (heights * thickness * size * 2.0 - thickness * size).astype(np.float32)
    normals = compute_vertex_normals(vertices, faces)

    _log.info("Built relief mesh: %d vertices, %d triangles (size=%.3f thickness=%.3f)",
              len(vertices), len(faces), size, thickness)
    return ReliefMesh(
        vertices=vertices,
        faces=faces,
        normals=normals,
        segments=segments,
        size=float(size),
        thickness=float(thickness),
    )
