"""Interactive viewer session.

:class:`ReliefViewer` ties one :class:`~depthrelief.render.loop.RenderLoop`
to the relief parameters and appearance presets. Image decode is the only
suspension point: :meth:`ReliefViewer.load_image` decodes in a worker thread
and installs the resulting mesh only if no newer build started meanwhile.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Optional, Union

from ..core.exporter import encode_binary_stl, stl_filename
from ..core.mesh import build_relief_mesh, segments_for_detail
from ..core.resources import ResourceLedger
from ..core.sampler import ImageSource, sample_heightfield
from ..core.utils import get_logger
from ..render.backend import Renderer
from ..render.lights import LightingPreset, coerce_lighting
from ..render.loop import FrameScheduler, LoopState, RenderLoop, Viewport
from ..render.materials import MaterialPreset, coerce_material
from ..render.probe import EnvironmentProbe
from ..render.scene import Geometry, MeshNode
from ..render.screenshot import SCREENSHOT_FILENAME, capture_screenshot, encode_png

_log = get_logger()


@dataclass(frozen=True)
class ReliefParams:
    size: float = 1.0
    thickness: float = 0.04
    detail: int = 1536

    @property
    def segments(self) -> int:
        return segments_for_detail(self.detail)

    @property
    def grid(self) -> int:
        return self.segments + 1


@dataclass(frozen=True)
class ExportArtifact:
    filename: str
    data: bytes
    media_type: str

    def save(self, directory: Union[str, Path]) -> Path:
        path = Path(directory) / self.filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        return path


@dataclass(frozen=True)
class ViewerActions:
    screenshot: Callable[[], Optional[ExportArtifact]]
    download_stl: Callable[[], Optional[ExportArtifact]]


ActionsCallback = Callable[[Optional[ViewerActions]], None]


class ReliefViewer:
    def __init__(
        self,
        renderer: Renderer,
        viewport: Viewport,
        scheduler: FrameScheduler,
        *,
        params: ReliefParams = ReliefParams(),
        material: Union[MaterialPreset, str] = MaterialPreset.METAL,
        lighting: Union[LightingPreset, str] = LightingPreset.OUTDOOR,
        auto_rotate: bool = True,
        stl_name: str = "depthmap-model",
        on_actions_ready: Optional[ActionsCallback] = None,
        ledger: Optional[ResourceLedger] = None,
        probe: Optional[EnvironmentProbe] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.loop = RenderLoop(renderer, viewport, scheduler, ledger=ledger, clock=clock, probe=probe)
        self.params = params
        self.material = coerce_material(material)
        self.lighting = coerce_lighting(lighting)
        self.loop.auto_rotate = bool(auto_rotate)
        self.stl_name = stl_name
        self.on_actions_ready = on_actions_ready
        self._source: Optional[ImageSource] = None
        self._generation = 0

    @property
    def ledger(self) -> ResourceLedger:
        return self.loop.ledger

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def mesh(self) -> Optional[MeshNode]:
        return self.loop.mesh

    # -- lifecycle --
    def start(self) -> "ReliefViewer":
        self.loop.start()
        self.loop.apply_lighting(self.lighting)
        return self

    def close(self) -> None:
        had_mesh = self.loop.mesh is not None
        self._generation += 1
        self.loop.dispose()
        if had_mesh:
            self._notify_actions()

    def __enter__(self) -> "ReliefViewer":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- mesh builds --
    async def load_image(
        self,
        source: ImageSource,
        *,
        size: Optional[float] = None,
        thickness: Optional[float] = None,
        detail: Optional[int] = None,
    ) -> bool:
        """Decode ``source`` and rebuild the mesh. Returns False if superseded."""
        self._source = source
        self._update_params(size, thickness, detail)
        return await self._rebuild()

    async def update_relief(
        self,
        *,
        size: Optional[float] = None,
        thickness: Optional[float] = None,
        detail: Optional[int] = None,
    ) -> bool:
        self._update_params(size, thickness, detail)
        if self._source is None:
            return False
        return await self._rebuild()

    def _update_params(self, size: Optional[float], thickness: Optional[float], detail: Optional[int]) -> None:
        changes = {k: v for k, v in (("size", size), ("thickness", thickness), ("detail", detail)) if v is not None}
        if changes:
            self.params = replace(self.params, **changes)

    async def _rebuild(self) -> bool:
        if self.loop.state != LoopState.RUNNING:
            raise RuntimeError("Viewer is not running; call start() first")
        self._generation += 1
        generation = self._generation
        source, params = self._source, self.params

        # The old mesh goes before decoding starts, so at most one is ever alive.
        if self.loop.mesh is not None:
            self.loop.clear_mesh()
            self._notify_actions()

        heightfield = await asyncio.to_thread(sample_heightfield, source, params.grid)

        if generation != self._generation or self.loop.state != LoopState.RUNNING:
            _log.debug("Discarding stale build #%d (current #%d)", generation, self._generation)
            return False

        mesh = build_relief_mesh(heightfield, params.segments, params.size, params.thickness)
        node = MeshNode(Geometry(mesh, self.ledger), self.loop.build_material(self.material))
        self.loop.set_mesh(node)
        self._notify_actions()
        return True

    # -- appearance --
    def set_material(self, preset: Union[MaterialPreset, str]) -> None:
        self.material = coerce_material(preset)
        self.loop.set_material(self.material)

    def set_lighting(self, preset: Union[LightingPreset, str]) -> None:
        self.lighting = coerce_lighting(preset)
        if self.loop.state == LoopState.RUNNING:
            self.loop.apply_lighting(self.lighting)

    def set_auto_rotate(self, enabled: bool) -> None:
        self.loop.auto_rotate = bool(enabled)

    # -- actions --
    @property
    def actions(self) -> Optional[ViewerActions]:
        if self.loop.mesh is None:
            return None
        return ViewerActions(screenshot=self.screenshot, download_stl=self.download_stl)

    def _notify_actions(self) -> None:
        if self.on_actions_ready is not None:
            self.on_actions_ready(self.actions)

    def screenshot(self) -> Optional[ExportArtifact]:
        if self.loop.mesh is None:
            return None
        image = capture_screenshot(self.loop)
        return ExportArtifact(SCREENSHOT_FILENAME, encode_png(image), "image/png")

    def download_stl(self) -> Optional[ExportArtifact]:
        node = self.loop.mesh
        if node is None:
            return None
        data = encode_binary_stl(node.geometry.mesh, node.matrix_world())
        return ExportArtifact(stl_filename(self.stl_name), data, "model/stl")
