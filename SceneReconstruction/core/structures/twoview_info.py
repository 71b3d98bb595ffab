"""
TwoViewInfo: the verified relative geometry between a pair of views.
"""

from dataclasses import dataclass, field

import cv2
import numpy as np


@dataclass
class TwoViewInfo:
    """
    Relative pose of the second camera w.r.t. the first one.

    The first camera sits at the origin with identity rotation. rotation_2 is
    the angle-axis rotation of the second camera and position_2 its (unit
    length) centre.

    Attributes:
        rotation_2: Angle-axis rotation of view 2
        position_2: Position of view 2 (up to scale)
        focal_length_1: Focal length of view 1 in pixels
        focal_length_2: Focal length of view 2 in pixels
        num_verified_matches: Number of inlier correspondences
        visibility_score: Spatial coverage score of the inliers
    """
    rotation_2: np.ndarray = field(default_factory=lambda: np.zeros(3))
    position_2: np.ndarray = field(default_factory=lambda: np.zeros(3))
    focal_length_1: float = 0.0
    focal_length_2: float = 0.0
    num_verified_matches: int = 0
    visibility_score: int = 0

    def swap_cameras(self):
        """Express the relationship with view 2 as the reference camera"""
        rotation, _ = cv2.Rodrigues(np.asarray(self.rotation_2, dtype=np.float64).reshape(3, 1))
        # The old first camera is at -R * c2 in the frame of camera 2
        new_position = -rotation @ np.asarray(self.position_2, dtype=np.float64)
        self.rotation_2 = -np.asarray(self.rotation_2, dtype=np.float64)
        self.position_2 = new_position
        self.focal_length_1, self.focal_length_2 = self.focal_length_2, self.focal_length_1
