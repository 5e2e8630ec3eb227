from __future__ import annotations

import numpy as np
import pytest

from depthrelief.render.loop import ManualFrameScheduler, Viewport
from depthrelief.render.probe import EnvironmentProbe
from depthrelief.sdk.viewer import ReliefParams, ReliefViewer

pyrender = pytest.importorskip("pyrender")


@pytest.fixture
def renderer():
    from depthrelief.render.backend import PyrenderRenderer

    try:
        r = PyrenderRenderer(160, 120)
    except Exception as exc:  # no display / EGL / OSMesa available
        pytest.skip(f"No OpenGL context: {exc}")
    yield r
    r.dispose()


def test_pyrender_draws_the_relief(renderer, gradient_png_path) -> None:
    import asyncio

    viewer = ReliefViewer(renderer, Viewport(160, 120), ManualFrameScheduler(),
                          params=ReliefParams(detail=16), lighting="studio")
    viewer.loop.probe = EnvironmentProbe(viewer.ledger, width=32, height=16)
    with viewer:
        asyncio.run(viewer.load_image(gradient_png_path))
        viewer.loop.scheduler.step()
        frame = viewer.loop.last_frame
        assert frame.shape == (120, 160, 3)
        background = frame[0, 0].copy()
        # The relief covers the center of the view.
        assert np.any(frame[60, 80] != background)

        viewer.set_material("wood")
        viewer.set_lighting("dramatic")
        viewer.loop.scheduler.step()

        shot = viewer.screenshot()
        assert shot is not None
    assert renderer.drawing_buffer_size() == (160, 120)
