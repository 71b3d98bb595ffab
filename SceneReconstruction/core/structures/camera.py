"""
Pinhole camera used by views of the scene graph.

Extrinsics (orientation as angle-axis, position of the camera centre) belong
to the camera itself. Intrinsics are either looked up in a
CameraIntrinsicsStore by group id (cameras of a Reconstruction) or kept in a
private vector (detached cameras used for feature normalization).
"""

from typing import Optional, Tuple

import cv2
import numpy as np

from .camera_intrinsics import (
    CameraIntrinsicsStore,
    default_intrinsics,
    FOCAL_LENGTH,
    ASPECT_RATIO,
    SKEW,
    PRINCIPAL_POINT_X,
    PRINCIPAL_POINT_Y,
    RADIAL_DISTORTION_1,
    RADIAL_DISTORTION_2,
)
from .camera_intrinsics_prior import CameraIntrinsicsPrior
from .types import CameraIntrinsicsGroupId, INVALID_CAMERA_INTRINSICS_GROUP_ID


# Focal length guess (in units of the larger image dimension) for uncalibrated images
DEFAULT_FOCAL_LENGTH_RATIO = 1.2

_UNDISTORTION_ITERATIONS = 20


class Camera:
    """Pinhole camera with shared or private intrinsics"""

    def __init__(self,
                 store: Optional[CameraIntrinsicsStore] = None,
                 group_id: CameraIntrinsicsGroupId = INVALID_CAMERA_INTRINSICS_GROUP_ID):
        self._store = store
        self._group_id = group_id
        self._own_intrinsics = default_intrinsics() if store is None else None

        self._orientation = np.zeros(3)
        self._position = np.zeros(3)
        self.image_width = 0
        self.image_height = 0

    # =========================================================================
    # Intrinsics access
    # =========================================================================

    def _intrinsics(self) -> np.ndarray:
        if self._store is None:
            return self._own_intrinsics
        return self._store.params(self._group_id)

    @property
    def group_id(self) -> CameraIntrinsicsGroupId:
        return self._group_id

    def intrinsics(self) -> np.ndarray:
        """Copy of the intrinsics vector"""
        return self._intrinsics().copy()

    def set_intrinsics(self, params: np.ndarray):
        self._intrinsics()[:] = np.asarray(params, dtype=np.float64)

    def focal_length(self) -> float:
        return float(self._intrinsics()[FOCAL_LENGTH])

    def set_focal_length(self, focal_length: float):
        self._intrinsics()[FOCAL_LENGTH] = focal_length

    def aspect_ratio(self) -> float:
        return float(self._intrinsics()[ASPECT_RATIO])

    def set_aspect_ratio(self, aspect_ratio: float):
        self._intrinsics()[ASPECT_RATIO] = aspect_ratio

    def skew(self) -> float:
        return float(self._intrinsics()[SKEW])

    def set_skew(self, skew: float):
        self._intrinsics()[SKEW] = skew

    def principal_point(self) -> Tuple[float, float]:
        params = self._intrinsics()
        return float(params[PRINCIPAL_POINT_X]), float(params[PRINCIPAL_POINT_Y])

    def set_principal_point(self, x: float, y: float):
        params = self._intrinsics()
        params[PRINCIPAL_POINT_X] = x
        params[PRINCIPAL_POINT_Y] = y

    def radial_distortion(self) -> Tuple[float, float]:
        params = self._intrinsics()
        return float(params[RADIAL_DISTORTION_1]), float(params[RADIAL_DISTORTION_2])

    def set_radial_distortion(self, k1: float, k2: float):
        params = self._intrinsics()
        params[RADIAL_DISTORTION_1] = k1
        params[RADIAL_DISTORTION_2] = k2

    def calibration_matrix(self) -> np.ndarray:
        f = self.focal_length()
        px, py = self.principal_point()
        return np.array([
            [f, self.skew(), px],
            [0, f * self.aspect_ratio(), py],
            [0, 0, 1]
        ], dtype=np.float64)

    def set_from_camera_intrinsics_prior(self, prior: CameraIntrinsicsPrior):
        """
        Initialize intrinsics from a prior, filling unset values with defaults

        Unset focal length becomes 1.2 * max(width, height), an unset principal
        point becomes the image centre.
        """
        self.image_width = prior.image_width
        self.image_height = prior.image_height

        if prior.focal_length.is_set:
            self.set_focal_length(float(prior.focal_length.value))
        else:
            self.set_focal_length(
                DEFAULT_FOCAL_LENGTH_RATIO * max(prior.image_width, prior.image_height))

        if prior.principal_point.is_set:
            self.set_principal_point(float(prior.principal_point.value[0]),
                                     float(prior.principal_point.value[1]))
        else:
            self.set_principal_point(prior.image_width / 2.0, prior.image_height / 2.0)

        self.set_aspect_ratio(float(prior.aspect_ratio.value) if prior.aspect_ratio.is_set else 1.0)
        self.set_skew(float(prior.skew.value) if prior.skew.is_set else 0.0)

        if prior.radial_distortion.is_set:
            self.set_radial_distortion(float(prior.radial_distortion.value[0]),
                                       float(prior.radial_distortion.value[1]))
        else:
            self.set_radial_distortion(0.0, 0.0)

    # =========================================================================
    # Extrinsics
    # =========================================================================

    def orientation_as_angle_axis(self) -> np.ndarray:
        return self._orientation.copy()

    def set_orientation_from_angle_axis(self, angle_axis: np.ndarray):
        self._orientation = np.asarray(angle_axis, dtype=np.float64).reshape(3).copy()

    def orientation_as_rotation_matrix(self) -> np.ndarray:
        rotation, _ = cv2.Rodrigues(self._orientation.reshape(3, 1))
        return rotation

    def set_orientation_from_rotation_matrix(self, rotation: np.ndarray):
        angle_axis, _ = cv2.Rodrigues(np.asarray(rotation, dtype=np.float64))
        self._orientation = angle_axis.reshape(3)

    def position(self) -> np.ndarray:
        return self._position.copy()

    def set_position(self, position: np.ndarray):
        self._position = np.asarray(position, dtype=np.float64).reshape(3).copy()

    # =========================================================================
    # Coordinate conversion
    # =========================================================================

    def pixels_to_normalized_coordinates(self, pixels: np.ndarray) -> np.ndarray:
        """
        Convert pixel coordinates to normalized (undistorted) image coordinates

        Args:
            pixels: (N, 2) or (2,) pixel coordinates

        Returns:
            Array of the same shape in normalized coordinates
        """
        pixels = np.asarray(pixels, dtype=np.float64)
        single = pixels.ndim == 1
        pts = pixels.reshape(-1, 2)

        f = self.focal_length()
        px, py = self.principal_point()
        y = (pts[:, 1] - py) / (f * self.aspect_ratio())
        x = (pts[:, 0] - px - self.skew() * y) / f
        normalized = np.stack([x, y], axis=1)

        k1, k2 = self.radial_distortion()
        if k1 != 0.0 or k2 != 0.0:
            distorted = normalized.copy()
            for _ in range(_UNDISTORTION_ITERATIONS):
                r2 = np.sum(normalized ** 2, axis=1, keepdims=True)
                normalized = distorted / (1.0 + k1 * r2 + k2 * r2 ** 2)

        return normalized[0] if single else normalized

    def pixel_to_normalized_coordinates(self, pixel: np.ndarray) -> np.ndarray:
        """Ray (x, y, 1) through a pixel in the camera coordinate frame"""
        normalized = self.pixels_to_normalized_coordinates(np.asarray(pixel).reshape(2))
        return np.array([normalized[0], normalized[1], 1.0])

    def normalized_to_pixel_coordinates(self, normalized: np.ndarray) -> np.ndarray:
        normalized = np.asarray(normalized, dtype=np.float64)
        single = normalized.ndim == 1
        pts = normalized.reshape(-1, 2)

        k1, k2 = self.radial_distortion()
        r2 = np.sum(pts ** 2, axis=1, keepdims=True)
        pts = pts * (1.0 + k1 * r2 + k2 * r2 ** 2)

        f = self.focal_length()
        px, py = self.principal_point()
        u = f * pts[:, 0] + self.skew() * pts[:, 1] + px
        v = f * self.aspect_ratio() * pts[:, 1] + py
        pixels = np.stack([u, v], axis=1)
        return pixels[0] if single else pixels

    def project_point(self, point: np.ndarray) -> Tuple[float, np.ndarray]:
        """
        Project a 3D (or homogeneous 4D) point

        Returns:
            (depth, pixel) where depth is the z coordinate in the camera frame
        """
        point = np.asarray(point, dtype=np.float64)
        if point.shape[0] == 4:
            point = point[:3] / point[3]
        camera_point = self.orientation_as_rotation_matrix() @ (point - self._position)
        depth = float(camera_point[2])
        pixel = self.normalized_to_pixel_coordinates(camera_point[:2] / camera_point[2])
        return depth, pixel

    # =========================================================================
    # Copies
    # =========================================================================

    def copy_detached(self) -> 'Camera':
        """Independent camera with a private copy of the current intrinsics"""
        camera = Camera()
        camera._own_intrinsics = self.intrinsics()
        camera._orientation = self._orientation.copy()
        camera._position = self._position.copy()
        camera.image_width = self.image_width
        camera.image_height = self.image_height
        return camera
