"""
Tests for the robust two-view estimator and the relative pose solvers.
"""

import logging

import cv2
import numpy as np
import pytest

from SceneReconstruction.algorithms.geometry import (
    bougnoux_focal_lengths,
    compute_resolution_scaled_threshold,
    estimate_twoview_info,
)
from SceneReconstruction.config import EstimateTwoViewInfoOptions
from SceneReconstruction.core.interfaces.base_solver import (
    RansacSummary,
    RelativePose,
    RelativePoseSolver,
    UncalibratedRelativePose,
)
from SceneReconstruction.core.structures import CameraIntrinsicsPrior, TwoViewInfo
from SceneReconstruction.core.structures.types import FeatureCorrespondence


IMAGE_WIDTH = 640
IMAGE_HEIGHT = 480
ROTATION_2 = np.array([0.3, 0.25, 0.1])
POSITION_2 = np.array([1.0, 0.6, 0.1])


def _calibration(focal_length):
    return np.array([[focal_length, 0.0, IMAGE_WIDTH / 2.0],
                     [0.0, focal_length, IMAGE_HEIGHT / 2.0],
                     [0.0, 0.0, 1.0]])


def _synthetic_scene(num_points=100, focal_length1=800.0, focal_length2=800.0,
                     noise=0.0, num_outliers=0, seed=42):
    """Project random points into two cameras and return pixel correspondences"""
    rng = np.random.default_rng(seed)
    points = np.column_stack([
        rng.uniform(-3.0, 3.0, num_points),
        rng.uniform(-3.0, 3.0, num_points),
        rng.uniform(8.0, 14.0, num_points),
    ])

    rotation, _ = cv2.Rodrigues(ROTATION_2.reshape(3, 1))
    translation = -rotation @ POSITION_2

    def project(K, points_in_camera):
        pixels = (K @ points_in_camera.T).T
        return pixels[:, :2] / pixels[:, 2:3]

    pixels1 = project(_calibration(focal_length1), points)
    pixels2 = project(_calibration(focal_length2), (rotation @ points.T).T + translation)
    pixels1 += rng.normal(0.0, noise, pixels1.shape) if noise > 0 else 0.0
    pixels2 += rng.normal(0.0, noise, pixels2.shape) if noise > 0 else 0.0

    correspondences = [FeatureCorrespondence(p1, p2) for p1, p2 in zip(pixels1, pixels2)]
    for _ in range(num_outliers):
        correspondences.append(FeatureCorrespondence(
            rng.uniform([0, 0], [IMAGE_WIDTH, IMAGE_HEIGHT]),
            rng.uniform([0, 0], [IMAGE_WIDTH, IMAGE_HEIGHT])))
    return correspondences


def _rotation_error(angle_axis1, angle_axis2):
    """Angle in radians of the rotation between two angle-axis orientations"""
    rotation1, _ = cv2.Rodrigues(np.asarray(angle_axis1, dtype=np.float64).reshape(3, 1))
    rotation2, _ = cv2.Rodrigues(np.asarray(angle_axis2, dtype=np.float64).reshape(3, 1))
    cos_angle = (np.trace(rotation1 @ rotation2.T) - 1.0) / 2.0
    return float(np.arccos(np.clip(cos_angle, -1.0, 1.0)))


def _options(**kwargs):
    return EstimateTwoViewInfoOptions(rng=np.random.default_rng(7), **kwargs)


class RecordingSolver(RelativePoseSolver):
    """Returns a fixed pose and records what it was called with"""

    def __init__(self, uncalibrated=False, inliers=None, succeed=True):
        self.uncalibrated = uncalibrated
        self.inliers = inliers
        self.succeed = succeed
        self.calls = []

    def estimate(self, params, ransac_type, correspondences):
        self.calls.append((params, ransac_type, list(correspondences)))
        if not self.succeed:
            return False, None, RansacSummary()

        inliers = self.inliers if self.inliers is not None else list(range(len(correspondences)))
        if self.uncalibrated:
            pose = UncalibratedRelativePose(rotation=np.eye(3), position=np.array([1.0, 0.0, 0.0]),
                                            focal_length1=500.0, focal_length2=600.0)
        else:
            pose = RelativePose(rotation=np.eye(3), position=np.array([1.0, 0.0, 0.0]))
        return True, pose, RansacSummary(inliers=inliers, confidence=0.99)


# =============================================================================
# Thresholds
# =============================================================================

def test_resolution_scaled_threshold():
    assert compute_resolution_scaled_threshold(6.0, 1024, 768) == pytest.approx(6.0)
    assert compute_resolution_scaled_threshold(6.0, 768, 2048) == pytest.approx(12.0)
    assert compute_resolution_scaled_threshold(6.0, 640, 480) == pytest.approx(3.75)


def test_resolution_scaled_threshold_unknown_size():
    assert compute_resolution_scaled_threshold(6.0, 0, 480) == 6.0
    assert compute_resolution_scaled_threshold(6.0, 640, 0) == 6.0


def test_options_are_required():
    with pytest.raises(ValueError):
        estimate_twoview_info(None, CameraIntrinsicsPrior(), CameraIntrinsicsPrior(), [])


# =============================================================================
# OpenCV solvers on synthetic scenes
# =============================================================================

def test_calibrated_pair_recovers_pose():
    prior1 = CameraIntrinsicsPrior.from_focal_length(800.0, IMAGE_WIDTH, IMAGE_HEIGHT)
    prior2 = CameraIntrinsicsPrior.from_focal_length(800.0, IMAGE_WIDTH, IMAGE_HEIGHT)
    correspondences = _synthetic_scene(noise=0.05, num_outliers=20)

    success, info, inliers = estimate_twoview_info(_options(), prior1, prior2, correspondences)

    assert success
    assert info.num_verified_matches == len(inliers)
    assert len(inliers) >= 95
    assert len([i for i in inliers if i >= 100]) <= 2
    assert info.focal_length_1 == 800.0
    assert info.focal_length_2 == 800.0
    assert _rotation_error(info.rotation_2, ROTATION_2) < np.deg2rad(3.0)
    assert np.linalg.norm(info.position_2) == pytest.approx(1.0)
    assert np.dot(info.position_2, POSITION_2 / np.linalg.norm(POSITION_2)) > np.cos(np.deg2rad(10.0))
    assert info.visibility_score > len(inliers)


def test_uncalibrated_pair_recovers_focal_lengths():
    prior1 = CameraIntrinsicsPrior(image_width=IMAGE_WIDTH, image_height=IMAGE_HEIGHT)
    prior2 = CameraIntrinsicsPrior(image_width=IMAGE_WIDTH, image_height=IMAGE_HEIGHT)
    correspondences = _synthetic_scene(focal_length1=800.0, focal_length2=900.0)

    success, info, inliers = estimate_twoview_info(_options(), prior1, prior2, correspondences)

    assert success
    assert len(inliers) >= 95
    assert info.focal_length_1 == pytest.approx(800.0, rel=0.05)
    assert info.focal_length_2 == pytest.approx(900.0, rel=0.05)
    assert _rotation_error(info.rotation_2, ROTATION_2) < np.deg2rad(2.0)


def test_bougnoux_on_exact_fundamental_matrix():
    K1 = np.diag([700.0, 700.0, 1.0])
    K2 = np.diag([1100.0, 1100.0, 1.0])
    rotation, _ = cv2.Rodrigues(ROTATION_2.reshape(3, 1))
    translation = -rotation @ POSITION_2
    t_cross = np.array([[0.0, -translation[2], translation[1]],
                        [translation[2], 0.0, -translation[0]],
                        [-translation[1], translation[0], 0.0]])
    F = np.linalg.inv(K2).T @ t_cross @ rotation @ np.linalg.inv(K1)

    f1_squared, f2_squared = bougnoux_focal_lengths(F / np.linalg.norm(F))
    assert np.sqrt(f1_squared) == pytest.approx(700.0, rel=1e-6)
    assert np.sqrt(f2_squared) == pytest.approx(1100.0, rel=1e-6)


def test_too_few_correspondences_fail():
    prior = CameraIntrinsicsPrior.from_focal_length(800.0, IMAGE_WIDTH, IMAGE_HEIGHT)

    success, info, inliers = estimate_twoview_info(_options(), prior, prior.copy(), [])
    assert not success
    assert info is None
    assert inliers == []

    success, info, inliers = estimate_twoview_info(
        _options(), CameraIntrinsicsPrior(), CameraIntrinsicsPrior(), _synthetic_scene(num_points=4))
    assert not success
    assert inliers == []


# =============================================================================
# Branching and parameters (recording solvers)
# =============================================================================

def test_calibrated_branch_threshold_and_normalization():
    solver = RecordingSolver()
    options = _options(calibrated_solver=solver, expected_ransac_confidence=0.95)
    prior1 = CameraIntrinsicsPrior.from_focal_length(500.0, 2048, 1024)
    prior2 = CameraIntrinsicsPrior.from_focal_length(1000.0, 1024, 512)
    correspondences = [FeatureCorrespondence([1524.0, 512.0], [512.0, 256.0])]

    success, info, inliers = estimate_twoview_info(options, prior1, prior2, correspondences)

    assert success
    params, _, normalized = solver.calls[0]
    # 12 px and 6 px scaled thresholds divided by both focal lengths
    assert params.error_thresh == pytest.approx(12.0 * 6.0 / (500.0 * 1000.0))
    assert params.failure_probability == pytest.approx(0.05)
    assert np.allclose(normalized[0].feature1, [1.0, 0.0])
    assert np.allclose(normalized[0].feature2, [0.0, 0.0])
    assert info.focal_length_1 == 500.0
    assert info.focal_length_2 == 1000.0
    assert inliers == [0]


def test_uncalibrated_branch_keeps_pixel_scale():
    solver = RecordingSolver(uncalibrated=True)
    options = _options(uncalibrated_solver=solver)
    prior1 = CameraIntrinsicsPrior(image_width=1024, image_height=1024)
    prior2 = CameraIntrinsicsPrior(image_width=1024, image_height=1024)
    correspondences = [FeatureCorrespondence([612.0, 512.0], [512.0, 412.0])]

    success, info, _ = estimate_twoview_info(options, prior1, prior2, correspondences)

    assert success
    params, _, centered = solver.calls[0]
    assert params.error_thresh == pytest.approx(36.0)
    assert np.allclose(centered[0].feature1, [100.0, 0.0])
    assert np.allclose(centered[0].feature2, [0.0, -100.0])
    assert info.focal_length_1 == 500.0
    assert info.focal_length_2 == 600.0


def test_single_focal_prior_is_treated_as_uncalibrated(caplog):
    calibrated = RecordingSolver()
    uncalibrated = RecordingSolver(uncalibrated=True)
    options = _options(calibrated_solver=calibrated, uncalibrated_solver=uncalibrated)
    prior1 = CameraIntrinsicsPrior.from_focal_length(800.0, 640, 480)
    prior2 = CameraIntrinsicsPrior(image_width=640, image_height=480)

    with caplog.at_level(logging.WARNING):
        success, _, _ = estimate_twoview_info(options, prior1, prior2,
                                              [FeatureCorrespondence([320.0, 240.0], [320.0, 240.0])])

    assert success
    assert calibrated.calls == []
    assert len(uncalibrated.calls) == 1
    # Focal length 1 is used for both images, so the principal point is the only change
    assert np.allclose(uncalibrated.calls[0][2][0].feature1, [0.0, 0.0])
    assert any("focal length" in record.getMessage() for record in caplog.records)


def test_solver_failure_is_reported():
    options = _options(calibrated_solver=RecordingSolver(succeed=False))
    prior = CameraIntrinsicsPrior.from_focal_length(800.0, 640, 480)

    success, info, inliers = estimate_twoview_info(options, prior, prior.copy(), _synthetic_scene())
    assert not success
    assert info is None
    assert inliers == []


def test_visibility_score_falls_back_to_inlier_count():
    solver = RecordingSolver(inliers=[0, 2, 3])
    options = _options(calibrated_solver=solver)
    prior1 = CameraIntrinsicsPrior.from_focal_length(800.0)
    prior2 = CameraIntrinsicsPrior.from_focal_length(800.0, 640, 480)

    success, info, inliers = estimate_twoview_info(options, prior1, prior2, _synthetic_scene(num_points=5))
    assert success
    assert inliers == [0, 2, 3]
    assert info.num_verified_matches == 3
    assert info.visibility_score == 3


def test_visibility_score_uses_inliers_only():
    correspondences = _synthetic_scene(num_points=10)
    prior = CameraIntrinsicsPrior.from_focal_length(800.0, IMAGE_WIDTH, IMAGE_HEIGHT)

    _, few, _ = estimate_twoview_info(_options(calibrated_solver=RecordingSolver(inliers=[0])),
                                      prior, prior.copy(), correspondences)
    _, many, _ = estimate_twoview_info(_options(calibrated_solver=RecordingSolver()),
                                       prior, prior.copy(), correspondences)
    assert few.visibility_score < many.visibility_score


# =============================================================================
# TwoViewInfo
# =============================================================================

def test_swap_cameras():
    info = TwoViewInfo(rotation_2=np.array([0.0, 0.0, np.pi / 2]),
                       position_2=np.array([1.0, 0.0, 0.0]),
                       focal_length_1=500.0,
                       focal_length_2=700.0)
    info.swap_cameras()

    assert np.allclose(info.rotation_2, [0.0, 0.0, -np.pi / 2])
    assert np.allclose(info.position_2, [0.0, -1.0, 0.0])
    assert info.focal_length_1 == 700.0
    assert info.focal_length_2 == 500.0

    info.swap_cameras()
    assert np.allclose(info.rotation_2, [0.0, 0.0, np.pi / 2])
    assert np.allclose(info.position_2, [1.0, 0.0, 0.0])
