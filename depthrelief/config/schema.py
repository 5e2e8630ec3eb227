from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, model_validator

from ..render.lights import LightingPreset
from ..render.materials import MaterialPreset


class ReliefConfig(BaseModel):
    size: float = Field(1.0, ge=1.0, le=3.0)
    thickness: float = Field(0.04, ge=0.02, le=0.06)
    # Clamped to [2, 2048] by the mesh builder.
    detail: int = Field(1536, ge=1)


class AppearanceConfig(BaseModel):
    material: MaterialPreset = MaterialPreset.METAL
    lighting: LightingPreset = LightingPreset.OUTDOOR
    auto_rotate: bool = True


class ViewportConfig(BaseModel):
    width: int = Field(1280, gt=0)
    height: int = Field(720, gt=0)
    device_pixel_ratio: float = Field(1.0, gt=0.0)


class OutputConfig(BaseModel):
    directory: Path = Path(".")
    name: str = "depthmap-model"
    stl: bool = True
    screenshot: bool = False

    @model_validator(mode="after")
    def _validate_outputs(self) -> "OutputConfig":
        if not self.stl and not self.screenshot:
            raise ValueError("At least one of output.stl / output.screenshot must be enabled")
        if not self.name or "/" in self.name or "\\" in self.name:
            raise ValueError("output.name must be a bare file stem")
        return self


class ViewerConfig(BaseModel):
    image: Path
    relief: ReliefConfig = ReliefConfig()
    appearance: AppearanceConfig = AppearanceConfig()
    viewport: ViewportConfig = ViewportConfig()
    output: OutputConfig = OutputConfig()


def load_config(path: str | Path) -> ViewerConfig:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping.")
    cfg = ViewerConfig.model_validate(data)
    if not cfg.image.is_absolute():
        cfg.image = (path.parent / cfg.image).resolve()
    if not cfg.output.directory.is_absolute():
        cfg.output.directory = (path.parent / cfg.output.directory).resolve()
    return cfg
