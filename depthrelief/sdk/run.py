from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..config import ViewerConfig, load_config
from ..core.exporter import StlWriter
from ..core.mesh import build_relief_mesh, segments_for_detail
from ..core.sampler import sample_heightfield
from ..core.transform import Transform
from ..core.utils import get_logger
from ..render.backend import Renderer
from ..render.loop import ManualFrameScheduler, Viewport
from ..render.scene import LAY_FLAT_ROTATION_X
from .viewer import ReliefParams, ReliefViewer

_log = get_logger()


@dataclass(frozen=True)
class ExportResult:
    """Summary of a headless export run."""

    stl_path: Optional[Path]
    screenshot_path: Optional[Path]
    triangles: int
    config: ViewerConfig


def _export_stl_only(cfg: ViewerConfig, out_dir: Path) -> ExportResult:
    segments = segments_for_detail(cfg.relief.detail)
    heightfield = sample_heightfield(cfg.image, segments + 1)
    mesh = build_relief_mesh(heightfield, segments, cfg.relief.size, cfg.relief.thickness)
    lay_flat = Transform(rotation=(LAY_FLAT_ROTATION_X, 0.0, 0.0))
    path = StlWriter(str(out_dir), cfg.output.name).write(mesh, lay_flat.matrix())
    return ExportResult(stl_path=path, screenshot_path=None, triangles=mesh.triangle_count, config=cfg)


async def _export_with_viewer(cfg: ViewerConfig, out_dir: Path, renderer: Renderer) -> ExportResult:
    vp = cfg.viewport
    viewer = ReliefViewer(
        renderer,
        Viewport(vp.width, vp.height, vp.device_pixel_ratio),
        ManualFrameScheduler(),
        params=ReliefParams(cfg.relief.size, cfg.relief.thickness, cfg.relief.detail),
        material=cfg.appearance.material,
        lighting=cfg.appearance.lighting,
        auto_rotate=cfg.appearance.auto_rotate,
        stl_name=cfg.output.name,
    )
    with viewer:
        await viewer.load_image(cfg.image)
        assert viewer.mesh is not None
        triangles = viewer.mesh.geometry.mesh.triangle_count
        stl_path = None
        if cfg.output.stl:
            stl = viewer.download_stl()
            assert stl is not None
            stl_path = stl.save(out_dir)
        shot = viewer.screenshot()
        assert shot is not None
        shot_path = shot.save(out_dir)
    _log.info("Exported %s", ", ".join(str(p) for p in (stl_path, shot_path) if p is not None))
    return ExportResult(stl_path=stl_path, screenshot_path=shot_path, triangles=triangles, config=cfg)


def export_from_config(
    config: Union[str, Path, ViewerConfig],
    *,
    output_dir: Optional[Path] = None,
    renderer: Optional[Renderer] = None,
) -> ExportResult:
    """Run a headless export described by a configuration file or object.

    Parameters
    ----------
    config:
        Path to a YAML file or a pre-loaded :class:`~depthrelief.config.schema.ViewerConfig`.
    output_dir:
        Optional override for the directory receiving the exported files.
    renderer:
        Renderer used when a screenshot is requested. Defaults to a
        :class:`~depthrelief.render.backend.PyrenderRenderer` sized to the
        configured viewport.

    Returns
    -------
    ExportResult
        Paths of the written files, the triangle count and the resolved
        configuration.
    """

    cfg = load_config(config) if not isinstance(config, ViewerConfig) else config.model_copy(deep=True)
    out_dir = Path(output_dir).resolve() if output_dir is not None else Path(cfg.output.directory).resolve()
    out_dir.mkdir(parents=True, exist_ok=True)

    if not cfg.output.screenshot:
        return _export_stl_only(cfg, out_dir)

    if renderer is None:
        from ..render.backend import PyrenderRenderer
        renderer = PyrenderRenderer(cfg.viewport.width, cfg.viewport.height)
    return asyncio.run(_export_with_viewer(cfg, out_dir, renderer))
