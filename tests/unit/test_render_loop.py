import asyncio
import math

import numpy as np
import pytest

from depthrelief.core.mesh import build_relief_mesh
from depthrelief.core.sampler import Heightfield
from depthrelief.render.backend import ContextLostError
from depthrelief.render.loop import (
    AUTO_ROTATE_RANGE,
    AsyncioFrameScheduler,
    FrameTick,
    LoopState,
    ManualFrameScheduler,
    RenderLoop,
    Resize,
    Viewport,
    oscillation_yaw,
)
from depthrelief.render.probe import EnvironmentProbe
from depthrelief.render.scene import Geometry, MeshNode


def _loop(renderer, clock=None, viewport=None):
    kwargs = {}
    if clock is not None:
        kwargs["clock"] = clock
    loop = RenderLoop(renderer, viewport or Viewport(320, 200), ManualFrameScheduler(), **kwargs)
    loop.probe = EnvironmentProbe(loop.ledger, width=32, height=16)
    return loop


def _node(loop, material="metal"):
    mesh = build_relief_mesh(Heightfield.constant(5, 0.5), 4, size=1.0, thickness=0.04)
    return MeshNode(Geometry(mesh, loop.ledger), loop.build_material(material))


def test_start_configures_renderer(fake_renderer) -> None:
    loop = _loop(fake_renderer, viewport=Viewport(320, 200, device_pixel_ratio=3.0))
    loop.start()
    assert loop.state is LoopState.RUNNING
    assert fake_renderer.pixel_ratio == 2.0
    assert fake_renderer.get_size() == (320, 200)
    assert loop.camera.aspect == pytest.approx(1.6)
    assert loop.scheduler.pending == 1
    assert loop.ledger.live_count("texture") == 1


def test_each_tick_renders_and_reschedules(fake_renderer) -> None:
    loop = _loop(fake_renderer).start()
    for _ in range(3):
        assert loop.scheduler.step() == 1
    assert loop.frames_rendered == 3
    assert len(fake_renderer.renders) == 3
    assert loop.scheduler.pending == 1
    assert loop.last_frame.shape == (200, 320, 3)


def test_auto_rotate_oscillates_yaw(fake_renderer, fake_clock) -> None:
    loop = _loop(fake_renderer, clock=fake_clock).start()
    node = _node(loop)
    loop.set_mesh(node)

    fake_clock.now += math.pi          # sin(pi * 0.5) = 1
    loop.dispatch(FrameTick(0.0))
    assert node.transform.rotation[1] == pytest.approx(AUTO_ROTATE_RANGE)
    assert node.transform.rotation[0] == pytest.approx(-math.pi / 2)

    loop.auto_rotate = False
    fake_clock.now += 1.0
    loop.dispatch(FrameTick(0.0))
    assert node.transform.rotation[1] == pytest.approx(AUTO_ROTATE_RANGE)


def test_oscillation_is_bounded() -> None:
    samples = [oscillation_yaw(t) for t in np.linspace(0.0, 30.0, 200)]
    assert max(abs(s) for s in samples) <= AUTO_ROTATE_RANGE + 1e-12
    assert oscillation_yaw(0.0) == 0.0


def test_viewport_resize_updates_camera_and_renderer(fake_renderer) -> None:
    viewport = Viewport(320, 200)
    loop = _loop(fake_renderer, viewport=viewport).start()
    viewport.resize(400, 100)
    assert fake_renderer.get_size() == (400, 100)
    assert loop.camera.aspect == pytest.approx(4.0)
    assert loop.controls.viewport_height == 100

    loop.dispatch(Resize(300, 300))
    assert loop.camera.aspect == pytest.approx(1.0)

    with pytest.raises(ValueError):
        loop.dispatch(Resize(300, 0))
    assert loop.camera.aspect == pytest.approx(1.0)


def test_dispose_releases_everything_once(fake_renderer) -> None:
    viewport = Viewport(320, 200)
    loop = _loop(fake_renderer, viewport=viewport).start()
    loop.set_mesh(_node(loop))
    loop.dispose()
    loop.dispose()

    assert loop.state is LoopState.DISPOSED
    assert fake_renderer.dispose_calls == 1
    assert viewport.observer_count == 0
    assert loop.scheduler.pending == 0
    assert loop.controls.disposed
    assert loop.ledger.live_count() == 0

    # Late ticks and resizes are ignored.
    loop.dispatch(FrameTick(1.0))
    viewport.resize(10, 10)
    assert loop.frames_rendered == 0
    with pytest.raises(RuntimeError):
        loop.start()


def test_dispose_before_start_still_releases_renderer(fake_renderer) -> None:
    loop = _loop(fake_renderer)
    loop.dispose()
    assert fake_renderer.dispose_calls == 1


def test_context_loss_tears_the_loop_down(fake_renderer) -> None:
    loop = _loop(fake_renderer).start()
    fake_renderer.fail_next = ContextLostError("lost")
    with pytest.raises(ContextLostError):
        loop.scheduler.step()
    assert loop.state is LoopState.DISPOSED
    assert loop.ledger.live_count() == 0
    assert loop.scheduler.pending == 0


def test_material_swap_keeps_geometry(fake_renderer) -> None:
    loop = _loop(fake_renderer).start()
    node = _node(loop, "standard")
    loop.set_mesh(node)
    geometry = node.geometry
    before = geometry.mesh.vertices.copy()

    for preset in ["wood", "antique", "plastic", "metal"]:
        new = loop.set_material(preset)
        assert node.material is new
        assert loop.ledger.live_count("material") == 1

    assert node.geometry is geometry
    np.testing.assert_array_equal(geometry.mesh.vertices, before)
    assert loop.ledger.released("material") == 4


def test_set_material_without_mesh_is_a_noop(fake_renderer) -> None:
    loop = _loop(fake_renderer).start()
    assert loop.set_material("wood") is None
    assert loop.ledger.live_count("material") == 0


def test_replacing_the_mesh_disposes_the_old_one(fake_renderer) -> None:
    loop = _loop(fake_renderer).start()
    first = _node(loop)
    loop.set_mesh(first)
    loop.set_mesh(_node(loop))
    assert first.geometry.disposed and first.material.disposed
    assert loop.ledger.live_count("geometry") == 1
    assert len(loop.scene.meshes) == 1


def test_lighting_preset_is_visible_on_next_frame(fake_renderer) -> None:
    loop = _loop(fake_renderer).start()
    loop.apply_lighting("studio")
    loop.apply_lighting("dramatic")
    loop.scheduler.step()
    assert fake_renderer.renders[-1]["lights"] == ["key", "rim"]


def test_asyncio_scheduler_drives_frames_until_dispose(fake_renderer) -> None:
    async def run():
        loop = RenderLoop(fake_renderer, Viewport(64, 48), AsyncioFrameScheduler(fps=200.0))
        loop.probe = EnvironmentProbe(loop.ledger, width=32, height=16)
        loop.start()
        await asyncio.sleep(0.1)
        running = loop.frames_rendered
        loop.dispose()
        await asyncio.sleep(0.05)
        return running, loop.frames_rendered

    running, after = asyncio.run(run())
    assert running > 0
    assert after == running


def test_asyncio_scheduler_rejects_bad_rate() -> None:
    with pytest.raises(ValueError):
        AsyncioFrameScheduler(fps=0)
