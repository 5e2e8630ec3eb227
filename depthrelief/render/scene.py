from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

import math
import numpy as np

from ..core.mesh import ReliefMesh
from ..core.resources import GpuResource, ResourceLedger
from ..core.transform import Transform
from ..core.utils import get_logger
from .lights import Light
from .materials import StandardMaterial

_log = get_logger()

# Lay the XY relief flat in the XZ plane so orbiting feels natural with +Y up.
LAY_FLAT_ROTATION_X = -math.pi / 2


class Geometry(GpuResource):
    """Device-side copy of a relief mesh."""
    kind = "geometry"

    def __init__(self, mesh: ReliefMesh, ledger: Optional[ResourceLedger] = None) -> None:
        super().__init__(ledger)
        self._mesh: Optional[ReliefMesh] = mesh

    @property
    def mesh(self) -> ReliefMesh:
        self.ensure_alive()
        assert self._mesh is not None
        return self._mesh

    def _release(self) -> None:
        self._mesh = None


@dataclass(eq=False)
class MeshNode:
    geometry: Geometry
    material: StandardMaterial
    transform: Transform = field(default_factory=lambda: Transform(rotation=(LAY_FLAT_ROTATION_X, 0.0, 0.0)))

    def matrix_world(self) -> np.ndarray:
        return self.transform.matrix()

    def swap_material(self, material: StandardMaterial) -> StandardMaterial:
        """Install ``material`` and return the previous one (still alive)."""
        old = self.material
        self.material = material
        return old

    def dispose(self) -> None:
        self.geometry.dispose()
        self.material.dispose()


SceneObject = Union[MeshNode, Light]


class Scene:
    def __init__(self, background: int = 0x333333) -> None:
        self.background = background
        self._children: List[SceneObject] = []
        self.light_revision = 0

    def _contains(self, obj: SceneObject) -> bool:
        return any(c is obj for c in self._children)

    def add(self, obj: SceneObject) -> None:
        if self._contains(obj):
            return
        self._children.append(obj)
        if isinstance(obj, Light):
            self.light_revision += 1

    def remove(self, obj: SceneObject) -> None:
        if self._contains(obj):
            self._children = [c for c in self._children if c is not obj]
            if isinstance(obj, Light):
                self.light_revision += 1

    @property
    def lights(self) -> List[Light]:
        return [c for c in self._children if isinstance(c, Light)]

    @property
    def meshes(self) -> List[MeshNode]:
        return [c for c in self._children if isinstance(c, MeshNode)]

    def replace_lights(self, lights: Iterable[Light]) -> int:
        stale = self.lights
        for light in stale:
            self.remove(light)
        for light in lights:
            self.add(light)
        return len(stale)
