"""Render loop state machine.

The loop is a single-threaded message consumer. The host's display refresh
delivers :class:`FrameTick` messages through a :class:`FrameScheduler`, the
container delivers :class:`Resize` messages through :class:`Viewport`, and
scene mutations (mesh swaps, material and light changes) happen between
ticks on the same thread.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

import asyncio
import itertools
import math
import time

import numpy as np

from ..core.resources import ResourceLedger
from ..core.utils import get_logger
from .backend import ContextLostError, Renderer
from .camera import OrbitControls, PerspectiveCamera
from .lights import LightingPreset, apply_lighting
from .materials import MaterialPreset, StandardMaterial, build_material
from .probe import EnvironmentProbe, EnvironmentTexture
from .scene import MeshNode, Scene

_log = get_logger()

AUTO_ROTATE_SPEED = 0.5                  # rad/s of the oscillation phase
AUTO_ROTATE_RANGE = math.radians(30.0)   # peak yaw
MAX_PIXEL_RATIO = 2.0


@dataclass(frozen=True)
class FrameTick:
    timestamp: float


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


Message = Union[FrameTick, Resize]
FrameCallback = Callable[[float], None]


class FrameScheduler(Protocol):
    def request_frame(self, callback: FrameCallback) -> Any: ...
    def cancel_frame(self, handle: Any) -> None: ...


class ManualFrameScheduler:
    """Holds pending frame callbacks until :meth:`step` is called."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._pending: Dict[int, FrameCallback] = {}
        self.now = 0.0

    @property
    def pending(self) -> int:
        return len(self._pending)

    def request_frame(self, callback: FrameCallback) -> int:
        handle = next(self._ids)
        self._pending[handle] = callback
        return handle

    def cancel_frame(self, handle: Any) -> None:
        self._pending.pop(handle, None)

    def step(self, dt: float = 1.0 / 60.0) -> int:
        """Run the callbacks pending right now; returns how many ran."""
        self.now += dt
        batch, self._pending = self._pending, {}
        for callback in batch.values():
            callback(self.now)
        return len(batch)


class AsyncioFrameScheduler:
    """Drives frames from an asyncio event loop at a fixed refresh rate."""

    def __init__(self, fps: float = 60.0, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if fps <= 0:
            raise ValueError("fps must be positive")
        self.interval = 1.0 / float(fps)
        self._loop = loop

    def _event_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def request_frame(self, callback: FrameCallback) -> asyncio.TimerHandle:
        loop = self._event_loop()
        return loop.call_later(self.interval, lambda: callback(loop.time()))

    def cancel_frame(self, handle: Any) -> None:
        handle.cancel()


ResizeObserver = Callable[[int, int], None]


class Viewport:
    """The container the renderer draws into; notifies observers on resize."""

    def __init__(self, width: int, height: int, device_pixel_ratio: float = 1.0) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("Viewport dimensions must be positive")
        self.width = int(width)
        self.height = int(height)
        self.device_pixel_ratio = float(device_pixel_ratio)
        self._observers: List[ResizeObserver] = []

    @property
    def aspect(self) -> float:
        return self.width / self.height

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def observe(self, observer: ResizeObserver) -> None:
        self._observers.append(observer)

    def unobserve(self, observer: ResizeObserver) -> None:
        self._observers = [o for o in self._observers if o is not observer]

    def resize(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("Viewport dimensions must be positive")
        self.width = int(width)
        self.height = int(height)
        for observer in list(self._observers):
            observer(self.width, self.height)


class LoopState(str, Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    DISPOSED = "disposed"


class RenderLoop:
    """Owns camera, orbit controls, the environment probe and the frame callback."""

    def __init__(
        self,
        renderer: Renderer,
        viewport: Viewport,
        scheduler: FrameScheduler,
        ledger: Optional[ResourceLedger] = None,
        clock: Callable[[], float] = time.perf_counter,
        probe: Optional[EnvironmentProbe] = None,
        fov_deg: float = 45.0,
        camera_position: tuple[float, float, float] = (0.8, 0.8, 1.2),
        background: int = 0x333333,
    ) -> None:
        self.renderer = renderer
        self.viewport = viewport
        self.scheduler = scheduler
        self.ledger = ledger if ledger is not None else ResourceLedger()
        self.clock = clock
        self.probe = probe if probe is not None else EnvironmentProbe(self.ledger)
        self._fov_deg = fov_deg
        self._camera_position = camera_position

        self.state = LoopState.UNINITIALIZED
        self.scene = Scene(background=background)
        self.camera: Optional[PerspectiveCamera] = None
        self.controls: Optional[OrbitControls] = None
        self.env_map: Optional[EnvironmentTexture] = None
        self.mesh: Optional[MeshNode] = None
        self.auto_rotate = True
        self.frames_rendered = 0
        self.last_frame: Optional[np.ndarray] = None
        self._frame_handle: Any = None
        self._start_time = 0.0

    # -- lifecycle --
    def start(self) -> "RenderLoop":
        if self.state == LoopState.RUNNING:
            return self
        if self.state == LoopState.DISPOSED:
            raise RuntimeError("RenderLoop was disposed; create a new one")

        vp = self.viewport
        self.renderer.set_pixel_ratio(min(vp.device_pixel_ratio, MAX_PIXEL_RATIO))
        self.renderer.set_size(vp.width, vp.height)
        self.camera = PerspectiveCamera(fov_deg=self._fov_deg, aspect=vp.aspect, near=0.1, far=100.0,
                                        position=self._camera_position)
        self.controls = OrbitControls(self.camera, viewport_height=vp.height)
        self.env_map = self.probe.generate()
        vp.observe(self._on_resize)

        self.state = LoopState.RUNNING
        self._start_time = self.clock()
        self._frame_handle = self.scheduler.request_frame(self._on_frame)
        _log.info("Render loop started (%dx%d)", vp.width, vp.height)
        return self

    def dispose(self) -> None:
        if self.state == LoopState.DISPOSED:
            return
        self.state = LoopState.DISPOSED
        if self._frame_handle is not None:
            self.scheduler.cancel_frame(self._frame_handle)
            self._frame_handle = None
        self.viewport.unobserve(self._on_resize)
        self.clear_mesh()
        if self.controls is not None:
            self.controls.dispose()
        self.renderer.dispose()
        if self.env_map is not None:
            self.env_map.dispose()
        _log.info("Render loop disposed after %d frames", self.frames_rendered)

    def __enter__(self) -> "RenderLoop":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # -- messages --
    def dispatch(self, message: Message) -> None:
        if isinstance(message, FrameTick):
            self._tick(message.timestamp)
        elif isinstance(message, Resize):
            self._resize(message.width, message.height)
        else:
            raise ValueError(f"Unsupported message: {message!r}")

    def _on_frame(self, timestamp: float) -> None:
        self.dispatch(FrameTick(timestamp))

    def _on_resize(self, width: int, height: int) -> None:
        self.dispatch(Resize(width, height))

    def _tick(self, timestamp: float) -> None:
        if self.state != LoopState.RUNNING:
            return
        self._frame_handle = self.scheduler.request_frame(self._on_frame)
        self.render_frame()

    def _resize(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Resize dimensions must be positive, got {width}x{height}")
        if self.state != LoopState.RUNNING:
            return
        assert self.camera is not None and self.controls is not None
        self.renderer.set_size(width, height)
        self.camera.aspect = width / height
        self.camera.update_projection_matrix()
        self.controls.viewport_height = max(1, int(height))

    def elapsed(self) -> float:
        return self.clock() - self._start_time

    def render_frame(self) -> np.ndarray:
        if self.state != LoopState.RUNNING:
            raise RuntimeError(f"Cannot render in state {self.state.value}")
        assert self.camera is not None and self.controls is not None
        self.controls.update()
        if self.auto_rotate and self.mesh is not None:
            self.mesh.transform.rotation[1] = oscillation_yaw(self.elapsed())
        frame = self.composite()
        self.frames_rendered += 1
        self.last_frame = frame
        return frame

    def composite(self) -> np.ndarray:
        """Draw the scene as it stands, without advancing controls or animation."""
        if self.state != LoopState.RUNNING:
            raise RuntimeError(f"Cannot render in state {self.state.value}")
        assert self.camera is not None
        try:
            frame = self.renderer.render(self.scene, self.camera)
        except ContextLostError:
            _log.error("Rendering context lost; disposing render loop")
            self.dispose()
            raise
        return frame

    # -- scene mutation (between frames) --
    def set_mesh(self, node: MeshNode) -> None:
        self.clear_mesh()
        self.scene.add(node)
        self.mesh = node

    def clear_mesh(self) -> None:
        if self.mesh is None:
            return
        old, self.mesh = self.mesh, None
        self.scene.remove(old)
        old.dispose()

    def build_material(self, preset: MaterialPreset | str) -> StandardMaterial:
        return build_material(preset, self.env_map, self.ledger)

    def set_material(self, preset: MaterialPreset | str) -> Optional[StandardMaterial]:
        if self.mesh is None:
            return None
        new = self.build_material(preset)
        old = self.mesh.swap_material(new)
        old.dispose()
        return new

    def apply_lighting(self, preset: LightingPreset | str) -> None:
        apply_lighting(self.scene, preset)


def oscillation_yaw(elapsed_s: float) -> float:
    return math.sin(elapsed_s * AUTO_ROTATE_SPEED) * AUTO_ROTATE_RANGE
