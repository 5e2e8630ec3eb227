import asyncio
import struct
import time

import numpy as np
import pytest

import depthrelief.sdk.viewer as viewer_module
from depthrelief.core.exporter import STL_RECORD_DTYPE
from depthrelief.core.sampler import DecodeError
from depthrelief.render.loop import ManualFrameScheduler, Viewport
from depthrelief.render.probe import EnvironmentProbe
from depthrelief.sdk.viewer import ReliefParams, ReliefViewer


def _viewer(renderer, **kwargs):
    kwargs.setdefault("params", ReliefParams(size=1.0, thickness=0.04, detail=9))
    viewer = ReliefViewer(renderer, Viewport(640, 360), ManualFrameScheduler(), **kwargs)
    viewer.loop.probe = EnvironmentProbe(viewer.ledger, width=32, height=16)
    return viewer


def test_actions_appear_after_first_load(fake_renderer, white_png) -> None:
    seen = []
    viewer = _viewer(fake_renderer, on_actions_ready=seen.append).start()
    assert viewer.actions is None
    assert viewer.download_stl() is None
    assert viewer.screenshot() is None

    assert asyncio.run(viewer.load_image(white_png)) is True
    assert viewer.actions is not None
    assert seen and seen[-1] is not None
    assert viewer.mesh.geometry.mesh.grid == 9

    viewer.close()
    assert seen[-1] is None
    assert viewer.ledger.live_count() == 0
    assert fake_renderer.dispose_calls == 1


def test_download_stl_matches_mesh(fake_renderer, white_png) -> None:
    with _viewer(fake_renderer, stl_name="relief") as viewer:
        asyncio.run(viewer.load_image(white_png))
        artifact = viewer.download_stl()
        triangles = viewer.mesh.geometry.mesh.triangle_count

    assert artifact.filename == "relief.stl"
    assert artifact.media_type == "model/stl"
    assert triangles == 2 * 8 * 8
    assert len(artifact.data) == 84 + 50 * triangles
    assert struct.unpack("<I", artifact.data[80:84])[0] == triangles
    recs = np.frombuffer(artifact.data, dtype=STL_RECORD_DTYPE, offset=84)
    # White image: the top surface faces +y once laid flat.
    np.testing.assert_allclose(recs["normal"][:, 1], 1.0, atol=1e-5)


def test_screenshot_artifact(fake_renderer, white_png, tmp_path) -> None:
    with _viewer(fake_renderer) as viewer:
        asyncio.run(viewer.load_image(white_png))
        shot = viewer.actions.screenshot()
    assert shot.filename == "screenshot-2k.png"
    assert shot.data[:4] == b"\x89PNG"
    path = shot.save(tmp_path)
    assert path.read_bytes() == shot.data


def test_only_latest_build_is_installed(fake_renderer, white_png, monkeypatch) -> None:
    real_sample = viewer_module.sample_heightfield

    def slow_sample(source, resolution):
        if source == b"slow":
            time.sleep(0.2)
            return real_sample(white_png, resolution)
        return real_sample(source, resolution)

    monkeypatch.setattr(viewer_module, "sample_heightfield", slow_sample)
    viewer = _viewer(fake_renderer).start()

    async def race():
        return await asyncio.gather(viewer.load_image(b"slow"), viewer.load_image(white_png, detail=5))

    assert asyncio.run(race()) == [False, True]
    assert viewer.generation == 2
    assert viewer.mesh.geometry.mesh.grid == 5
    assert viewer.ledger.live_count("geometry") == 1
    viewer.close()


def test_rebuild_keeps_a_single_geometry(fake_renderer, gradient_png_path) -> None:
    viewer = _viewer(fake_renderer).start()

    async def edits():
        await viewer.load_image(gradient_png_path)
        for thickness in (0.02, 0.03, 0.06):
            assert await viewer.update_relief(thickness=thickness)
            assert viewer.ledger.live_count("geometry") == 1
        await viewer.update_relief(size=2.5, detail=17)

    asyncio.run(edits())
    mesh = viewer.mesh.geometry.mesh
    assert (mesh.size, mesh.thickness, mesh.grid) == (2.5, 0.06, 17)
    assert viewer.ledger.released("geometry") == 4
    viewer.close()


def test_update_without_image_is_ignored(fake_renderer) -> None:
    viewer = _viewer(fake_renderer).start()
    assert asyncio.run(viewer.update_relief(size=2.0)) is False
    assert viewer.params.size == 2.0
    assert viewer.mesh is None
    viewer.close()


def test_decode_failure_leaves_no_mesh(fake_renderer, white_png) -> None:
    viewer = _viewer(fake_renderer).start()
    asyncio.run(viewer.load_image(white_png))
    with pytest.raises(DecodeError):
        asyncio.run(viewer.load_image(b"not an image"))
    assert viewer.mesh is None
    assert viewer.actions is None
    viewer.close()


def test_material_and_lighting_changes(fake_renderer, white_png) -> None:
    viewer = _viewer(fake_renderer, material="standard", lighting="studio").start()
    assert len(viewer.loop.scene.lights) == 3
    asyncio.run(viewer.load_image(white_png))
    geometry = viewer.mesh.geometry

    viewer.set_material("wood")
    viewer.set_lighting("none")
    assert viewer.mesh.geometry is geometry
    assert viewer.mesh.material.env_intensity == pytest.approx(0.2)
    assert [light.spec.name for light in viewer.loop.scene.lights] == ["ambient"]

    viewer.set_auto_rotate(False)
    viewer.loop.scheduler.step()
    assert viewer.mesh.transform.rotation[1] == 0.0
    viewer.close()


def test_load_requires_running_viewer(fake_renderer, white_png) -> None:
    viewer = _viewer(fake_renderer)
    with pytest.raises(RuntimeError):
        asyncio.run(viewer.load_image(white_png))
