from __future__ import annotations
from typing import Any, Dict, List, Optional, Protocol, Tuple

import math
import numpy as np

from ..core.transform import look_at
from ..core.utils import get_logger, hex_to_rgb, srgb_to_linear
from .camera import PerspectiveCamera
from .lights import Light, LightKind
from .scene import MeshNode, Scene

_log = get_logger()

# Scene light intensities use the non-physical convention where a unit light
# reproduces the surface albedo; pyrender divides diffuse by pi.
LIGHT_INTENSITY_SCALE = math.pi


class ContextLostError(RuntimeError):
    """The rendering context is gone; the render loop cannot continue."""


class Renderer(Protocol):
    @property
    def pixel_ratio(self) -> float: ...
    def set_pixel_ratio(self, ratio: float) -> None: ...
    def set_size(self, width: int, height: int) -> None: ...
    def get_size(self) -> Tuple[int, int]: ...
    def render(self, scene: Scene, camera: PerspectiveCamera) -> np.ndarray: ...
    def dispose(self) -> None: ...


def _linear(color: int) -> np.ndarray:
    return np.asarray(srgb_to_linear(hex_to_rgb(color)), dtype=np.float64)


def ambient_term(lights: List[Light], meshes: List[MeshNode]) -> np.ndarray:
    """Flat ambient color: ambient + hemisphere lights + environment reflection."""
    ambient = np.zeros(3)
    for light in lights:
        spec = light.spec
        if spec.kind == LightKind.AMBIENT:
            ambient += _linear(spec.color) * spec.intensity
        elif spec.kind == LightKind.HEMISPHERE:
            ground = _linear(spec.ground_color if spec.ground_color is not None else 0x000000)
            ambient += 0.5 * (_linear(spec.color) + ground) * spec.intensity
    if meshes:
        ambient += meshes[0].material.environment_radiance()
    return ambient


class PyrenderRenderer:
    """OpenGL offscreen renderer backed by pyrender.

    Geometry is uploaded once per :class:`Geometry` resource and dropped from
    the pyrender scene once the scene graph no longer holds it, at which point
    pyrender frees its buffers on the next draw.
    """

    def __init__(self, width: int, height: int, pixel_ratio: float = 1.0) -> None:
        import pyrender
        from OpenGL import error as gl_error

        self._pyrender = pyrender
        self._gl_error = gl_error
        self._width = max(1, int(width))
        self._height = max(1, int(height))
        self._pixel_ratio = float(pixel_ratio)
        vw, vh = self.drawing_buffer_size()
        self._offscreen: Any = pyrender.OffscreenRenderer(viewport_width=vw, viewport_height=vh)
        self._pr_scene = pyrender.Scene(bg_color=[0.2, 0.2, 0.2, 1.0], ambient_light=[0.0, 0.0, 0.0])
        self._meshes: Dict[int, Tuple[Any, Any, int]] = {}   # geometry id -> (node, pr_mesh, material id)
        self._light_nodes: List[Any] = []
        self._light_revision = -1
        self._camera_node: Any = None
        self._disposed = False
        _log.info("Created pyrender offscreen context %dx%d", vw, vh)

    # -- sizing --
    @property
    def pixel_ratio(self) -> float:
        return self._pixel_ratio

    def set_pixel_ratio(self, ratio: float) -> None:
        self._pixel_ratio = float(ratio)
        self._apply_viewport()

    def set_size(self, width: int, height: int) -> None:
        self._width = max(1, int(width))
        self._height = max(1, int(height))
        self._apply_viewport()

    def get_size(self) -> Tuple[int, int]:
        return (self._width, self._height)

    def drawing_buffer_size(self) -> Tuple[int, int]:
        return (max(1, int(math.floor(self._width * self._pixel_ratio))),
                max(1, int(math.floor(self._height * self._pixel_ratio))))

    def _apply_viewport(self) -> None:
        if self._disposed:
            return
        vw, vh = self.drawing_buffer_size()
        self._offscreen.viewport_width = vw
        self._offscreen.viewport_height = vh

    # -- scene sync --
    def _material(self, node: MeshNode) -> Any:
        mat = node.material
        r, g, b = mat.base_color
        return self._pyrender.MetallicRoughnessMaterial(
            baseColorFactor=[r, g, b, 1.0],
            metallicFactor=mat.metalness,
            roughnessFactor=mat.roughness,
            doubleSided=True,
        )

    def _sync_meshes(self, scene: Scene) -> None:
        import trimesh

        live = {node.geometry.resource_id: node for node in scene.meshes}
        for gid in [g for g in self._meshes if g not in live]:
            pr_node, _, _ = self._meshes.pop(gid)
            self._pr_scene.remove_node(pr_node)

        for gid, node in live.items():
            entry = self._meshes.get(gid)
            if entry is None:
                mesh = node.geometry.mesh
                tm = trimesh.Trimesh(vertices=mesh.vertices, faces=mesh.faces,
                                     vertex_normals=mesh.normals, process=False)
                pr_mesh = self._pyrender.Mesh.from_trimesh(tm, material=self._material(node), smooth=True)
                pr_node = self._pr_scene.add(pr_mesh, pose=node.matrix_world())
                self._meshes[gid] = (pr_node, pr_mesh, node.material.resource_id)
                continue
            pr_node, pr_mesh, mat_id = entry
            if mat_id != node.material.resource_id:
                for prim in pr_mesh.primitives:
                    prim.material = self._material(node)
                self._meshes[gid] = (pr_node, pr_mesh, node.material.resource_id)
            self._pr_scene.set_pose(pr_node, node.matrix_world())

    def _sync_lights(self, scene: Scene) -> None:
        if scene.light_revision == self._light_revision:
            return
        for pr_node in self._light_nodes:
            self._pr_scene.remove_node(pr_node)
        self._light_nodes = []
        pr = self._pyrender
        for light in scene.lights:
            spec = light.spec
            color = _linear(spec.color)
            intensity = spec.intensity * LIGHT_INTENSITY_SCALE
            if spec.kind == LightKind.DIRECTIONAL:
                pr_light = pr.DirectionalLight(color=color, intensity=intensity)
            elif spec.kind == LightKind.SPOT:
                outer = min(spec.angle or math.pi / 3, math.pi / 2)
                pr_light = pr.SpotLight(color=color, intensity=intensity,
                                        innerConeAngle=outer * (1.0 - spec.penumbra), outerConeAngle=outer)
            else:
                continue  # folded into the ambient term
            pose = look_at(spec.position or (0.0, 1.0, 0.0), (0.0, 0.0, 0.0))
            self._light_nodes.append(self._pr_scene.add(pr_light, pose=pose))
        self._light_revision = scene.light_revision

    def _sync_camera(self, camera: PerspectiveCamera) -> None:
        if self._camera_node is None:
            pr_cam = self._pyrender.PerspectiveCamera(yfov=camera.yfov, aspectRatio=camera.aspect,
                                                      znear=camera.near, zfar=camera.far)
            self._camera_node = self._pr_scene.add(pr_cam, pose=camera.matrix_world())
            return
        pr_cam = self._camera_node.camera
        pr_cam.yfov = camera.yfov
        pr_cam.aspectRatio = camera.aspect
        pr_cam.znear = camera.near
        pr_cam.zfar = camera.far
        self._pr_scene.set_pose(self._camera_node, camera.matrix_world())

    def render(self, scene: Scene, camera: PerspectiveCamera) -> np.ndarray:
        if self._disposed:
            raise ContextLostError("Renderer has been disposed")
        self._sync_meshes(scene)
        self._sync_lights(scene)
        self._sync_camera(camera)
        bg = _linear(scene.background)
        self._pr_scene.bg_color = [bg[0], bg[1], bg[2], 1.0]
        self._pr_scene.ambient_light = ambient_term(scene.lights, scene.meshes)
        try:
            color, _ = self._offscreen.render(self._pr_scene)
        except self._gl_error.Error as exc:
            raise ContextLostError(f"OpenGL context lost: {exc}") from exc
        return np.ascontiguousarray(color[..., :3], dtype=np.uint8)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._meshes.clear()
        self._light_nodes = []
        self._offscreen.delete()
        _log.debug("Released pyrender context")
