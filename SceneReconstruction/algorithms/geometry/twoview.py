"""
Robust estimation of the relative geometry of two views.

Pairs where both focal lengths are known go through the calibrated path
(essential matrix on normalized coordinates). Every other pair goes through
the uncalibrated path, which only removes the principal point and lets the
solver recover both focal lengths.
"""

from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ...config import EstimateTwoViewInfoOptions
from ...core.interfaces.base_solver import RansacParameters, RelativePoseSolver
from ...core.structures.camera import Camera
from ...core.structures.camera_intrinsics_prior import CameraIntrinsicsPrior
from ...core.structures.twoview_info import TwoViewInfo
from ...core.structures.types import FeatureCorrespondence
from ...logger import get_logger
from .relative_pose import OpenCVEssentialMatrixSolver, OpenCVFundamentalMatrixSolver
from .visibility_pyramid import VisibilityPyramid

logger = get_logger("algorithms.twoview")


# Thresholds are given for images whose larger side is this many pixels
REFERENCE_IMAGE_DIMENSION = 1024.0
NUM_PYRAMID_LEVELS = 6


def compute_resolution_scaled_threshold(threshold: float, image_width: int, image_height: int) -> float:
    """
    Scale a pixel threshold defined for a 1024 pixel image to the given resolution

    Returns the threshold unchanged when the image size is unknown.
    """
    if image_width == 0 or image_height == 0:
        return threshold
    return threshold * max(image_width, image_height) / REFERENCE_IMAGE_DIMENSION


def _normalize_features(prior1: CameraIntrinsicsPrior,
                        prior2: CameraIntrinsicsPrior,
                        correspondences: Sequence[FeatureCorrespondence]
                        ) -> List[FeatureCorrespondence]:
    camera1 = Camera()
    camera2 = Camera()
    camera1.set_from_camera_intrinsics_prior(prior1)
    camera2.set_from_camera_intrinsics_prior(prior2)

    # Without both focal lengths only the principal point (and distortion) is removed
    if not prior1.focal_length.is_set or not prior2.focal_length.is_set:
        camera1.set_focal_length(1.0)
        camera2.set_focal_length(1.0)

    if len(correspondences) == 0:
        return []

    pts1 = camera1.pixels_to_normalized_coordinates(np.array([c.feature1 for c in correspondences]))
    pts2 = camera2.pixels_to_normalized_coordinates(np.array([c.feature2 for c in correspondences]))
    return [FeatureCorrespondence(p1, p2) for p1, p2 in zip(pts1, pts2)]


def _compute_visibility_score(prior1: CameraIntrinsicsPrior,
                              prior2: CameraIntrinsicsPrior,
                              correspondences: Sequence[FeatureCorrespondence],
                              inliers: Sequence[int]) -> int:
    if not prior1.has_image_size() or not prior2.has_image_size():
        return len(inliers)

    pyramid1 = VisibilityPyramid(prior1.image_width, prior1.image_height, NUM_PYRAMID_LEVELS)
    pyramid2 = VisibilityPyramid(prior2.image_width, prior2.image_height, NUM_PYRAMID_LEVELS)
    for index in inliers:
        pyramid1.add_point(correspondences[index].feature1)
        pyramid2.add_point(correspondences[index].feature2)
    return pyramid1.compute_score() + pyramid2.compute_score()


def _ransac_parameters(options: EstimateTwoViewInfoOptions, error_thresh: float) -> RansacParameters:
    return RansacParameters(
        rng=options.rng,
        error_thresh=error_thresh,
        failure_probability=1.0 - options.expected_ransac_confidence,
        min_iterations=options.min_ransac_iterations,
        max_iterations=options.max_ransac_iterations,
        use_mle=options.use_mle,
    )


def _scaled_thresholds(options: EstimateTwoViewInfoOptions,
                       prior1: CameraIntrinsicsPrior,
                       prior2: CameraIntrinsicsPrior) -> Tuple[float, float]:
    return (
        compute_resolution_scaled_threshold(options.max_sampson_error_pixels,
                                            prior1.image_width, prior1.image_height),
        compute_resolution_scaled_threshold(options.max_sampson_error_pixels,
                                            prior2.image_width, prior2.image_height),
    )


def _angle_axis(rotation: np.ndarray) -> np.ndarray:
    angle_axis, _ = cv2.Rodrigues(np.asarray(rotation, dtype=np.float64))
    return angle_axis.reshape(3)


# =============================================================================
# Calibrated / uncalibrated branches
# =============================================================================

def _estimate_calibrated(options: EstimateTwoViewInfoOptions,
                         prior1: CameraIntrinsicsPrior,
                         prior2: CameraIntrinsicsPrior,
                         correspondences: Sequence[FeatureCorrespondence]
                         ) -> Tuple[bool, Optional[TwoViewInfo], List[int]]:
    normalized = _normalize_features(prior1, prior2, correspondences)

    focal_length1 = float(prior1.focal_length.value)
    focal_length2 = float(prior2.focal_length.value)
    threshold1, threshold2 = _scaled_thresholds(options, prior1, prior2)
    params = _ransac_parameters(options, threshold1 * threshold2 / (focal_length1 * focal_length2))

    solver: RelativePoseSolver = options.calibrated_solver or OpenCVEssentialMatrixSolver()
    success, pose, summary = solver.estimate(params, options.ransac_type, normalized)
    if not success:
        return False, None, []

    inliers = list(summary.inliers)
    info = TwoViewInfo(
        rotation_2=_angle_axis(pose.rotation),
        position_2=np.asarray(pose.position, dtype=np.float64).reshape(3),
        focal_length_1=focal_length1,
        focal_length_2=focal_length2,
        num_verified_matches=len(inliers),
        visibility_score=_compute_visibility_score(prior1, prior2, correspondences, inliers),
    )
    return True, info, inliers


def _estimate_uncalibrated(options: EstimateTwoViewInfoOptions,
                           prior1: CameraIntrinsicsPrior,
                           prior2: CameraIntrinsicsPrior,
                           correspondences: Sequence[FeatureCorrespondence]
                           ) -> Tuple[bool, Optional[TwoViewInfo], List[int]]:
    centered = _normalize_features(prior1, prior2, correspondences)

    threshold1, threshold2 = _scaled_thresholds(options, prior1, prior2)
    params = _ransac_parameters(options, threshold1 * threshold2)

    solver: RelativePoseSolver = options.uncalibrated_solver or OpenCVFundamentalMatrixSolver()
    success, pose, summary = solver.estimate(params, options.ransac_type, centered)
    if not success:
        return False, None, []

    inliers = list(summary.inliers)
    info = TwoViewInfo(
        rotation_2=_angle_axis(pose.rotation),
        position_2=np.asarray(pose.position, dtype=np.float64).reshape(3),
        focal_length_1=float(pose.focal_length1),
        focal_length_2=float(pose.focal_length2),
        num_verified_matches=len(inliers),
        visibility_score=_compute_visibility_score(prior1, prior2, correspondences, inliers),
    )
    return True, info, inliers


def estimate_twoview_info(options: EstimateTwoViewInfoOptions,
                          intrinsics1: CameraIntrinsicsPrior,
                          intrinsics2: CameraIntrinsicsPrior,
                          correspondences: Sequence[FeatureCorrespondence]
                          ) -> Tuple[bool, Optional[TwoViewInfo], List[int]]:
    """
    Estimate the relative pose of two views from pixel correspondences

    Args:
        options: Estimation options
        intrinsics1: Calibration prior of the first view
        intrinsics2: Calibration prior of the second view
        correspondences: Pixel correspondences between the views

    Returns:
        (success, two-view info, inlier indices into correspondences). On
        failure the info is None and the inlier list is empty.
    """
    if options is None:
        raise ValueError("estimate_twoview_info requires options")

    focal1_set = intrinsics1.focal_length.is_set
    focal2_set = intrinsics2.focal_length.is_set

    if focal1_set and focal2_set:
        return _estimate_calibrated(options, intrinsics1, intrinsics2, correspondences)

    if focal1_set != focal2_set:
        logger.warning("Only one of the two views has a focal length prior; "
                       "estimating the pair as uncalibrated")

    return _estimate_uncalibrated(options, intrinsics1, intrinsics2, correspondences)
