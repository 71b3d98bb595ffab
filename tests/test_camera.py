"""
Tests for Camera, CameraIntrinsicsStore and CameraIntrinsicsPrior.
"""

import numpy as np
import pytest

from SceneReconstruction.core.structures import (
    Camera,
    CameraIntrinsicsPrior,
    CameraIntrinsicsStore,
    DEFAULT_FOCAL_LENGTH_RATIO,
)


def test_detached_camera_defaults():
    camera = Camera()
    assert camera.focal_length() == 1.0
    assert camera.aspect_ratio() == 1.0
    assert camera.skew() == 0.0
    assert camera.principal_point() == (0.0, 0.0)
    assert camera.radial_distortion() == (0.0, 0.0)


def test_set_from_prior_fills_defaults():
    prior = CameraIntrinsicsPrior(image_width=1000, image_height=600)
    camera = Camera()
    camera.set_from_camera_intrinsics_prior(prior)

    assert camera.focal_length() == pytest.approx(DEFAULT_FOCAL_LENGTH_RATIO * 1000)
    assert camera.principal_point() == (500.0, 300.0)
    assert camera.image_width == 1000
    assert camera.image_height == 600


def test_set_from_prior_uses_given_values():
    prior = CameraIntrinsicsPrior.from_focal_length(750.0, 640, 480)
    prior.principal_point.set([300.0, 250.0])
    prior.radial_distortion.set([0.1, -0.01])

    camera = Camera()
    camera.set_from_camera_intrinsics_prior(prior)

    assert camera.focal_length() == 750.0
    assert camera.principal_point() == (300.0, 250.0)
    assert camera.radial_distortion() == (0.1, -0.01)


def test_calibration_matrix():
    camera = Camera()
    camera.set_focal_length(800.0)
    camera.set_principal_point(320.0, 240.0)

    expected = np.array([[800.0, 0.0, 320.0],
                         [0.0, 800.0, 240.0],
                         [0.0, 0.0, 1.0]])
    assert np.allclose(camera.calibration_matrix(), expected)


def test_pixel_to_normalized_coordinates():
    camera = Camera()
    camera.set_focal_length(500.0)
    camera.set_principal_point(250.0, 200.0)

    ray = camera.pixel_to_normalized_coordinates(np.array([750.0, 700.0]))
    assert np.allclose(ray, [1.0, 1.0, 1.0])


def test_undistortion_inverts_distortion():
    camera = Camera()
    camera.set_focal_length(600.0)
    camera.set_principal_point(320.0, 240.0)
    camera.set_radial_distortion(0.05, -0.01)

    normalized = np.array([[0.2, -0.1], [-0.3, 0.25]])
    pixels = camera.normalized_to_pixel_coordinates(normalized)
    assert np.allclose(camera.pixels_to_normalized_coordinates(pixels), normalized, atol=1e-8)


def test_project_point():
    camera = Camera()
    camera.set_focal_length(100.0)
    camera.set_principal_point(50.0, 50.0)
    camera.set_position(np.array([0.0, 0.0, -10.0]))

    depth, pixel = camera.project_point(np.array([1.0, 2.0, 0.0]))
    assert depth == pytest.approx(10.0)
    assert np.allclose(pixel, [60.0, 70.0])

    depth_h, pixel_h = camera.project_point(np.array([2.0, 4.0, 0.0, 2.0]))
    assert depth_h == pytest.approx(depth)
    assert np.allclose(pixel_h, pixel)


def test_orientation_round_trip():
    camera = Camera()
    angle_axis = np.array([0.1, -0.2, 0.3])
    camera.set_orientation_from_angle_axis(angle_axis)

    rotation = camera.orientation_as_rotation_matrix()
    assert np.allclose(rotation @ rotation.T, np.eye(3))

    other = Camera()
    other.set_orientation_from_rotation_matrix(rotation)
    assert np.allclose(other.orientation_as_angle_axis(), angle_axis)


def test_cameras_bound_to_store_share_intrinsics():
    store = CameraIntrinsicsStore()
    store.add_member(0)
    store.add_member(0)
    camera1 = Camera(store, 0)
    camera2 = Camera(store, 0)

    camera1.set_focal_length(321.0)
    assert camera2.focal_length() == 321.0

    detached = camera1.copy_detached()
    detached.set_focal_length(10.0)
    assert camera1.focal_length() == 321.0


def test_store_member_counting():
    store = CameraIntrinsicsStore()
    assert store.add_member(3)
    assert not store.add_member(3)
    assert store.member_count(3) == 2
    assert 3 in store

    assert not store.remove_member(3)
    assert store.remove_member(3)
    assert 3 not in store
    assert len(store) == 0


def test_prior_copy_is_independent():
    prior = CameraIntrinsicsPrior.from_focal_length(500.0, 100, 100)
    copied = prior.copy()
    copied.focal_length.set(10.0)
    copied.principal_point.value[0] = 7.0

    assert prior.focal_length.value == 500.0
    assert prior.principal_point.value[0] == 0.0
