"""Binary STL encoding.

Layout (all little-endian):

    bytes 0-79    header, zero-filled
    bytes 80-83   uint32 triangle count T
    then T records of 50 bytes:
        float32[3] face normal
        float32[3] vertex A, float32[3] vertex B, float32[3] vertex C
        uint16     attribute byte count (0)
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import pathlib

import numpy as np

from .mesh import ReliefMesh
from .transform import apply_matrix
from .utils import get_logger, normalize_or_zero

_log = get_logger()

STL_HEADER_BYTES = 80
STL_RECORD_DTYPE = np.dtype([
    ("normal", "<f4", (3,)),
    ("a", "<f4", (3,)),
    ("b", "<f4", (3,)),
    ("c", "<f4", (3,)),
    ("attr", "<u2"),
])
assert STL_RECORD_DTYPE.itemsize == 50


def stl_size(triangle_count: int) -> int:
    return STL_HEADER_BYTES + 4 + 50 * triangle_count


def to_triangle_soup(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Expand an indexed mesh so every triangle owns its three corners: (T, 3, 3)."""
    return vertices[faces]


def encode_binary_stl(mesh: ReliefMesh, matrix_world: Optional[np.ndarray] = None) -> bytes:
    """Serialize ``mesh`` in world space as binary STL."""
    M = np.eye(4) if matrix_world is None else np.asarray(matrix_world, dtype=np.float64)
    if M.shape != (4, 4):
        raise ValueError(f"matrix_world must be 4x4, got {M.shape}")

    soup = to_triangle_soup(mesh.vertices, mesh.faces)
    world = apply_matrix(M, soup)                      # (T, 3, 3)
    A, B, C = world[:, 0], world[:, 1], world[:, 2]
    # Face normals come from the transformed corners, not from the mesh.
    normals = normalize_or_zero(np.cross(C - B, A - B))

    count = world.shape[0]
    records = np.zeros(count, dtype=STL_RECORD_DTYPE)
    records["normal"] = normals
    records["a"] = A
    records["b"] = B
    records["c"] = C

    out = bytes(STL_HEADER_BYTES) + np.array([count], dtype="<u4").tobytes() + records.tobytes()
    assert len(out) == stl_size(count)
    return out


@dataclass
class StlWriter:
    """Writes a mesh to ``<directory>/<name>.stl``."""
    directory: str
    name: str = "depthmap-model"

    @property
    def path(self) -> pathlib.Path:
        return pathlib.Path(self.directory) / stl_filename(self.name)

    def write(self, mesh: ReliefMesh, matrix_world: Optional[np.ndarray] = None) -> pathlib.Path:
        data = encode_binary_stl(mesh, matrix_world)
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        _log.info("Wrote %s (%d triangles, %d bytes)", path.name, mesh.triangle_count, len(data))
        return path


def stl_filename(name: str) -> str:
    return name if name.lower().endswith(".stl") else f"{name}.stl"
