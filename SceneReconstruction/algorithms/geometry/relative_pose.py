"""
OpenCV backed robust relative pose solvers.

Both solvers take correspondences in the frame prepared by the two-view
estimator: normalized camera coordinates for calibrated pairs, principal
point centred pixels for uncalibrated pairs. The squared inlier threshold in
RansacParameters is expressed in that same frame.
"""

from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from ...config import RansacType
from ...core.interfaces.base_solver import (
    RansacParameters,
    RansacSummary,
    RelativePose,
    UncalibratedRelativePose,
    RelativePoseSolver,
)
from ...core.structures.types import FeatureCorrespondence, correspondences_to_arrays
from ...logger import get_logger

logger = get_logger("algorithms.relative_pose")


MIN_ESSENTIAL_CORRESPONDENCES = 5
MIN_FUNDAMENTAL_CORRESPONDENCES = 8

_ESSENTIAL_METHODS = {
    RansacType.RANSAC: cv2.RANSAC,
    RansacType.LMEDS: cv2.LMEDS,
}

_FUNDAMENTAL_METHODS = {
    RansacType.RANSAC: cv2.FM_RANSAC,
    RansacType.LMEDS: cv2.FM_LMEDS,
}


def _cross_product_matrix(v: np.ndarray) -> np.ndarray:
    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0]
    ])


def _pose_from_essential_matrix(E: np.ndarray,
                                pts1: np.ndarray,
                                pts2: np.ndarray,
                                mask: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    Pick the (R, c) decomposition of E that puts the inliers in front of both cameras

    Returns:
        (rotation, unit position of camera 2) or None if no point passes the
        cheirality test
    """
    num_good, R, t, _ = cv2.recoverPose(E, pts1, pts2, focal=1.0, pp=(0.0, 0.0),
                                          mask=mask.copy())
    if num_good == 0:
        return None

    position = -R.T @ t.reshape(3)
    norm = np.linalg.norm(position)
    if norm == 0:
        return None
    return R, position / norm


def _first_solution(matrix: Optional[np.ndarray]) -> Optional[np.ndarray]:
    # OpenCV stacks multiple candidate solutions vertically
    if matrix is None or matrix.shape[0] < 3:
        return None
    return matrix[:3, :3].astype(np.float64)


def bougnoux_focal_lengths(F: np.ndarray) -> Tuple[float, float]:
    """
    Squared focal lengths encoded in a fundamental matrix

    Assumes square pixels, zero skew and principal points at the origin of
    both images, with x2^T F x1 = 0.

    Args:
        F: Fundamental matrix (3x3)

    Returns:
        (f1^2, f2^2); either may be non-positive for a degenerate F
    """
    F = np.asarray(F, dtype=np.float64)
    p = np.array([0.0, 0.0, 1.0])
    ii = np.diag([1.0, 1.0, 0.0])

    # Right null vector is the epipole of image 1, left null vector that of image 2
    U, _, Vt = np.linalg.svd(F)
    epipole1 = Vt[2]
    epipole2 = U[:, 2]
    e1_cross = _cross_product_matrix(epipole1)
    e2_cross = _cross_product_matrix(epipole2)

    f1_numerator = -(p @ e2_cross @ ii @ F @ p) * (p @ F.T @ p)
    f1_denominator = p @ e2_cross @ ii @ F @ ii @ F.T @ p
    f2_numerator = -(p @ e1_cross @ ii @ F.T @ p) * (p @ F @ p)
    f2_denominator = p @ e1_cross @ ii @ F.T @ ii @ F @ p

    if f1_denominator == 0 or f2_denominator == 0:
        return 0.0, 0.0
    return float(f1_numerator / f1_denominator), float(f2_numerator / f2_denominator)


# =============================================================================
# Solvers
# =============================================================================

class OpenCVEssentialMatrixSolver(RelativePoseSolver):
    """Five-point essential matrix inside OpenCV's robust estimator"""

    def estimate(self,
                 params: RansacParameters,
                 ransac_type: RansacType,
                 correspondences: Sequence[FeatureCorrespondence]
                 ) -> Tuple[bool, Optional[RelativePose], RansacSummary]:
        summary = RansacSummary()
        if len(correspondences) < MIN_ESSENTIAL_CORRESPONDENCES:
            return False, None, summary

        pts1, pts2 = correspondences_to_arrays(correspondences)
        cv2.setRNGSeed(params.draw_seed())

        E, mask = cv2.findEssentialMat(
            pts1, pts2,
            focal=1.0, pp=(0.0, 0.0),
            method=_ESSENTIAL_METHODS[ransac_type],
            prob=1.0 - params.failure_probability,
            threshold=float(np.sqrt(params.error_thresh)),
            maxIters=params.max_iterations
        )
        E = _first_solution(E)
        if E is None or mask is None:
            logger.debug("Essential matrix estimation returned no model")
            return False, None, summary

        pose = _pose_from_essential_matrix(E, pts1, pts2, mask)
        if pose is None:
            return False, None, summary

        summary.inliers = np.flatnonzero(mask.ravel()).tolist()
        summary.confidence = 1.0 - params.failure_probability
        rotation, position = pose
        return True, RelativePose(rotation=rotation, position=position), summary


class OpenCVFundamentalMatrixSolver(RelativePoseSolver):
    """
    Fundamental matrix with focal length recovery for uncalibrated pairs.

    Correspondences are expected to be centred on the principal points. The
    focal lengths are read off F, after which the pose is decomposed from the
    implied essential matrix.
    """

    def estimate(self,
                 params: RansacParameters,
                 ransac_type: RansacType,
                 correspondences: Sequence[FeatureCorrespondence]
                 ) -> Tuple[bool, Optional[UncalibratedRelativePose], RansacSummary]:
        summary = RansacSummary()
        if len(correspondences) < MIN_FUNDAMENTAL_CORRESPONDENCES:
            return False, None, summary

        pts1, pts2 = correspondences_to_arrays(correspondences)
        cv2.setRNGSeed(params.draw_seed())

        F, mask = cv2.findFundamentalMat(
            pts1, pts2,
            method=_FUNDAMENTAL_METHODS[ransac_type],
            ransacReprojThreshold=float(np.sqrt(params.error_thresh)),
            confidence=1.0 - params.failure_probability,
            maxIters=params.max_iterations
        )
        F = _first_solution(F)
        if F is None or mask is None:
            logger.debug("Fundamental matrix estimation returned no model")
            return False, None, summary

        f1_squared, f2_squared = bougnoux_focal_lengths(F)
        if f1_squared <= 0 or f2_squared <= 0:
            logger.debug(f"Degenerate focal lengths from F: {f1_squared:.3f}, {f2_squared:.3f}")
            return False, None, summary
        focal_length1 = float(np.sqrt(f1_squared))
        focal_length2 = float(np.sqrt(f2_squared))

        K1 = np.diag([focal_length1, focal_length1, 1.0])
        K2 = np.diag([focal_length2, focal_length2, 1.0])
        E = K2.T @ F @ K1

        pose = _pose_from_essential_matrix(E, pts1 / focal_length1, pts2 / focal_length2, mask)
        if pose is None:
            return False, None, summary

        summary.inliers = np.flatnonzero(mask.ravel()).tolist()
        summary.confidence = 1.0 - params.failure_probability
        rotation, position = pose
        return True, UncalibratedRelativePose(rotation=rotation,
                                              position=position,
                                              focal_length1=focal_length1,
                                              focal_length2=focal_length2), summary
