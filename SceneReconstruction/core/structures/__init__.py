"""
Scene graph data structures.
"""

from .types import (
    ViewId,
    TrackId,
    CameraIntrinsicsGroupId,
    ViewIdPair,
    Feature,
    FeatureCorrespondence,
    correspondences_to_arrays,
    INVALID_VIEW_ID,
    INVALID_TRACK_ID,
    INVALID_CAMERA_INTRINSICS_GROUP_ID,
)
from .camera_intrinsics_prior import Prior, CameraIntrinsicsPrior
from .camera_intrinsics import CameraIntrinsicsStore
from .camera import Camera, DEFAULT_FOCAL_LENGTH_RATIO
from .view import View
from .track import Track
from .twoview_info import TwoViewInfo
from .reconstruction import Reconstruction
from .track_builder import TrackBuilder

__all__ = [
    'ViewId',
    'TrackId',
    'CameraIntrinsicsGroupId',
    'ViewIdPair',
    'Feature',
    'FeatureCorrespondence',
    'correspondences_to_arrays',
    'INVALID_VIEW_ID',
    'INVALID_TRACK_ID',
    'INVALID_CAMERA_INTRINSICS_GROUP_ID',
    'Prior',
    'CameraIntrinsicsPrior',
    'CameraIntrinsicsStore',
    'Camera',
    'DEFAULT_FOCAL_LENGTH_RATIO',
    'View',
    'Track',
    'TwoViewInfo',
    'Reconstruction',
    'TrackBuilder',
]
