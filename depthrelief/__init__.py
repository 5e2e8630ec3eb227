"""depthrelief – depthmap image → interactive 3D relief.

Components, leaves first:
- Heightfield sampling from images (core.sampler)
- Relief mesh construction (core.mesh)
- Binary STL export (core.exporter)
- Procedural environment probe (render.probe)
- Material and lighting presets (render.materials, render.lights)
- Render loop with orbit camera and auto-rotate oscillation (render.loop)
- 2K screenshot export (render.screenshot)
- Viewer session tying it all together (sdk.viewer)
"""

from .core.sampler import DecodeError, Heightfield, sample_heightfield
from .core.mesh import ReliefMesh, build_relief_mesh, segments_for_detail
from .core.exporter import StlWriter, encode_binary_stl
from .core.resources import GpuResource, ResourceError, ResourceLedger
from .core.transform import Transform
from .render.probe import EnvironmentProbe, EnvironmentTexture
from .render.materials import MaterialPreset, StandardMaterial, build_material
from .render.lights import LightingPreset, apply_lighting
from .render.scene import Geometry, MeshNode, Scene
from .render.loop import (AsyncioFrameScheduler, FrameTick, LoopState,
                          ManualFrameScheduler, RenderLoop, Resize, Viewport)
from .render.backend import ContextLostError, PyrenderRenderer, Renderer
from .render.screenshot import capture_screenshot
from .sdk.viewer import ExportArtifact, ReliefParams, ReliefViewer, ViewerActions
from .sdk.run import ExportResult, export_from_config
