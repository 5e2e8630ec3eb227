"""Lighting presets.

Each preset is a fixed, ordered tuple of :class:`LightSpec`. Applying a preset
removes every light currently in the scene and then adds the preset's lights,
both inside a single call, so no frame can observe a partial rig.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union, TYPE_CHECKING

import math

from ..core.utils import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from .scene import Scene

_log = get_logger()


class LightKind(str, Enum):
    AMBIENT = "ambient"
    HEMISPHERE = "hemisphere"
    DIRECTIONAL = "directional"
    SPOT = "spot"


class LightingPreset(str, Enum):
    STUDIO = "studio"
    OUTDOOR = "outdoor"
    DRAMATIC = "dramatic"
    NONE = "none"


@dataclass(frozen=True)
class LightSpec:
    kind: LightKind
    color: int
    intensity: float
    position: Optional[Tuple[float, float, float]] = None
    ground_color: Optional[int] = None        # hemisphere only
    angle: Optional[float] = None             # spot cone half-angle, radians
    penumbra: float = 0.0
    decay: float = 2.0
    distance: float = 0.0                     # 0 = unlimited range
    name: str = ""


@dataclass(eq=False)
class Light:
    """A light instance placed in a scene; targets the origin."""
    spec: LightSpec

    @property
    def kind(self) -> LightKind:
        return self.spec.kind


LIGHTING_PRESETS: Dict[LightingPreset, Tuple[LightSpec, ...]] = {
    LightingPreset.STUDIO: (
        LightSpec(LightKind.HEMISPHERE, 0xFFFFFF, 0.6, ground_color=0x222233, name="fill"),
        LightSpec(LightKind.DIRECTIONAL, 0xFFFFFF, 1.0, position=(2.0, 2.0, 3.0), name="key"),
        LightSpec(LightKind.DIRECTIONAL, 0x99AAFF, 0.5, position=(-3.0, 1.0, -2.0), name="fill-tint"),
    ),
    LightingPreset.OUTDOOR: (
        LightSpec(LightKind.HEMISPHERE, 0xDDF1FF, 1.0, ground_color=0x223344, name="sky"),
        LightSpec(LightKind.DIRECTIONAL, 0xFFFFFF, 1.2, position=(5.0, 10.0, 5.0), name="sun"),
    ),
    LightingPreset.DRAMATIC: (
        LightSpec(LightKind.SPOT, 0xFFFFFF, 2.0, position=(3.0, 5.0, 2.0),
                  angle=math.pi / 6, penumbra=0.25, decay=1.0, name="key"),
        LightSpec(LightKind.DIRECTIONAL, 0x88AAFF, 0.6, position=(-2.0, 1.0, -3.0), name="rim"),
    ),
    LightingPreset.NONE: (
        LightSpec(LightKind.AMBIENT, 0xFFFFFF, 0.3, name="ambient"),
    ),
}


def coerce_lighting(preset: Union[LightingPreset, str]) -> LightingPreset:
    try:
        return LightingPreset(preset)
    except ValueError as exc:
        names = ", ".join(p.value for p in LightingPreset)
        raise ValueError(f"Unknown lighting preset '{preset}' (expected one of: {names})") from exc


def apply_lighting(scene: "Scene", preset: Union[LightingPreset, str]) -> List[Light]:
    preset = coerce_lighting(preset)
    new_lights = [Light(spec) for spec in LIGHTING_PRESETS[preset]]
    removed = scene.replace_lights(new_lights)
    _log.debug("Lighting %s: removed %d, added %d", preset.value, removed, len(new_lights))
    return new_lights
