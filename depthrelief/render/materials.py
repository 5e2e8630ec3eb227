from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

import numpy as np

from ..core.resources import GpuResource, ResourceLedger
from ..core.utils import get_logger, hex_to_rgb, srgb_to_linear
from .probe import EnvironmentTexture

_log = get_logger()


class MaterialPreset(str, Enum):
    STANDARD = "standard"
    METAL = "metal"
    WOOD = "wood"
    PLASTIC = "plastic"
    ANTIQUE = "antique"


@dataclass(frozen=True)
class MaterialSpec:
    color: str                  # sRGB hex
    metalness: float
    roughness: float
    env_intensity: float = 1.0

    @property
    def base_color_linear(self) -> tuple[float, float, float]:
        return srgb_to_linear(hex_to_rgb(self.color))


MATERIAL_PRESETS: Dict[MaterialPreset, MaterialSpec] = {
    MaterialPreset.STANDARD: MaterialSpec("#f3f4f6", metalness=0.2, roughness=0.5),
    MaterialPreset.METAL: MaterialSpec("#cfd8e3", metalness=1.0, roughness=0.2),
    MaterialPreset.WOOD: MaterialSpec("#8b5a2b", metalness=0.0, roughness=0.85, env_intensity=0.2),
    MaterialPreset.PLASTIC: MaterialSpec("#ffffff", metalness=0.0, roughness=0.3),
    MaterialPreset.ANTIQUE: MaterialSpec("#b08d57", metalness=1.0, roughness=0.35),
}


def coerce_material(preset: Union[MaterialPreset, str]) -> MaterialPreset:
    try:
        return MaterialPreset(preset)
    except ValueError as exc:
        names = ", ".join(p.value for p in MaterialPreset)
        raise ValueError(f"Unknown material preset '{preset}' (expected one of: {names})") from exc


class StandardMaterial(GpuResource):
    """Metallic-roughness material bound to the shared environment texture.

    The environment texture is borrowed, not owned: disposing the material
    never releases it.
    """
    kind = "material"

    def __init__(
        self,
        preset: MaterialPreset,
        spec: MaterialSpec,
        env_map: Optional[EnvironmentTexture],
        ledger: Optional[ResourceLedger] = None,
    ) -> None:
        super().__init__(ledger)
        self.preset = preset
        self.spec = spec
        self.env_map = env_map

    @property
    def metalness(self) -> float:
        return self.spec.metalness

    @property
    def roughness(self) -> float:
        return self.spec.roughness

    @property
    def env_intensity(self) -> float:
        return self.spec.env_intensity

    @property
    def base_color(self) -> np.ndarray:
        return np.asarray(self.spec.base_color_linear, dtype=np.float64)

    def environment_radiance(self) -> np.ndarray:
        """Mean environment radiance scaled by this material's reflection intensity."""
        if self.env_map is None or self.env_map.disposed:
            return np.zeros(3)
        return self.env_map.mean_radiance() * self.env_intensity

    def _release(self) -> None:
        self.env_map = None


def build_material(
    preset: Union[MaterialPreset, str],
    env_map: Optional[EnvironmentTexture],
    ledger: Optional[ResourceLedger] = None,
) -> StandardMaterial:
    preset = coerce_material(preset)
    spec = MATERIAL_PRESETS[preset]
    _log.debug("Material %s: metalness=%.2f roughness=%.2f env=%.2f",
               preset.value, spec.metalness, spec.roughness, spec.env_intensity)
    return StandardMaterial(preset, spec, env_map, ledger)
