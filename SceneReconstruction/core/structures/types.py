"""
Identifier types, sentinels and small value types shared by the scene graph.
"""

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np


ViewId = int
TrackId = int
CameraIntrinsicsGroupId = int
ViewIdPair = Tuple[ViewId, ViewId]

INVALID_VIEW_ID: ViewId = -1
INVALID_TRACK_ID: TrackId = -1
INVALID_CAMERA_INTRINSICS_GROUP_ID: CameraIntrinsicsGroupId = -1


@dataclass
class Feature:
    """2D observation in pixel coordinates"""
    x: float = 0.0
    y: float = 0.0


@dataclass
class FeatureCorrespondence:
    """A pair of matched pixel locations, one in each image"""
    feature1: np.ndarray = field(default_factory=lambda: np.zeros(2))
    feature2: np.ndarray = field(default_factory=lambda: np.zeros(2))

    def __post_init__(self):
        self.feature1 = np.asarray(self.feature1, dtype=np.float64).reshape(2)
        self.feature2 = np.asarray(self.feature2, dtype=np.float64).reshape(2)


def correspondences_to_arrays(correspondences) -> Tuple[np.ndarray, np.ndarray]:
    """Stack a list of FeatureCorrespondence into two (N, 2) arrays"""
    if len(correspondences) == 0:
        return np.zeros((0, 2)), np.zeros((0, 2))
    pts1 = np.array([c.feature1 for c in correspondences], dtype=np.float64)
    pts2 = np.array([c.feature2 for c in correspondences], dtype=np.float64)
    return pts1, pts2
