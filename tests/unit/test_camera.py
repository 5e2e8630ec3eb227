import math

import numpy as np
import pytest

from depthrelief.render.camera import OrbitControls, PerspectiveCamera, Spherical


def test_default_camera() -> None:
    cam = PerspectiveCamera()
    np.testing.assert_allclose(cam.position, [0.8, 0.8, 1.2])
    assert cam.yfov == pytest.approx(math.radians(45.0))
    pose = cam.matrix_world()
    forward = -pose[:3, 2]
    expected = -cam.position / np.linalg.norm(cam.position)
    np.testing.assert_allclose(forward, expected, atol=1e-9)


def test_projection_follows_aspect() -> None:
    cam = PerspectiveCamera(aspect=1.0)
    cam.aspect = 2.0
    cam.update_projection_matrix()
    assert cam.projection_matrix[0, 0] == pytest.approx(cam.projection_matrix[1, 1] / 2.0)


def test_spherical_round_trip() -> None:
    v = np.array([0.8, 0.8, 1.2])
    np.testing.assert_allclose(Spherical.from_vector(v).to_vector(), v, atol=1e-12)


def test_damped_rotation_keeps_drifting() -> None:
    cam = PerspectiveCamera()
    controls = OrbitControls(cam, viewport_height=600)
    radius = np.linalg.norm(cam.position)
    controls.rotate(60.0, 0.0)

    assert controls.update()
    first = cam.position.copy()
    # No further input, but the remaining delta still moves the camera.
    assert controls.update()
    assert not np.allclose(cam.position, first)
    assert np.linalg.norm(cam.position) == pytest.approx(radius)


def test_without_input_camera_stays() -> None:
    cam = PerspectiveCamera()
    controls = OrbitControls(cam, viewport_height=600)
    start = cam.position.copy()
    assert not controls.update()
    np.testing.assert_allclose(cam.position, start, atol=1e-9)


def test_dolly_changes_distance() -> None:
    cam = PerspectiveCamera()
    controls = OrbitControls(cam)
    radius = np.linalg.norm(cam.position)
    controls.dolly_in()
    controls.update()
    assert np.linalg.norm(cam.position) < radius


def test_distance_is_clamped() -> None:
    cam = PerspectiveCamera()
    controls = OrbitControls(cam, min_distance=1.0, max_distance=2.0)
    controls.dolly(10.0)
    controls.update()
    assert np.linalg.norm(cam.position) == pytest.approx(2.0)
    with pytest.raises(ValueError):
        controls.dolly(0.0)


def test_polar_angle_stays_off_the_pole() -> None:
    cam = PerspectiveCamera()
    controls = OrbitControls(cam, viewport_height=100)
    controls.enable_damping = False
    controls.rotate(0.0, 1000.0)
    controls.update()
    assert cam.position[1] < np.linalg.norm(cam.position)
    assert Spherical.from_vector(cam.position).phi > 0.0
