"""
View: a single image of the scene together with its camera and observations.
"""

from typing import Dict, List, Optional

from .camera import Camera
from .camera_intrinsics_prior import CameraIntrinsicsPrior
from .types import Feature, TrackId


class View:
    """
    One camera observation in a reconstruction.

    Attributes:
        features: Mapping from track id to the pixel observation of that track
    """

    def __init__(self, name: str, camera: Optional[Camera] = None):
        self._name = name
        self._camera = camera if camera is not None else Camera()
        self._is_estimated = False
        self._camera_intrinsics_prior = CameraIntrinsicsPrior()
        self.features: Dict[TrackId, Feature] = {}

    def name(self) -> str:
        return self._name

    def camera(self) -> Camera:
        return self._camera

    def mutable_camera(self) -> Camera:
        return self._camera

    def is_estimated(self) -> bool:
        return self._is_estimated

    def set_estimated(self, is_estimated: bool):
        self._is_estimated = is_estimated

    def camera_intrinsics_prior(self) -> CameraIntrinsicsPrior:
        return self._camera_intrinsics_prior

    def set_camera_intrinsics_prior(self, prior: CameraIntrinsicsPrior):
        self._camera_intrinsics_prior = prior.copy()

    def num_features(self) -> int:
        return len(self.features)

    def track_ids(self) -> List[TrackId]:
        return list(self.features.keys())

    def get_feature(self, track_id: TrackId) -> Optional[Feature]:
        return self.features.get(track_id)

    def add_feature(self, track_id: TrackId, feature: Feature):
        self.features[track_id] = feature

    def remove_feature(self, track_id: TrackId) -> bool:
        return self.features.pop(track_id, None) is not None

    def __repr__(self):
        return (f"View(name={self._name!r}, features={self.num_features()}, "
                f"estimated={self._is_estimated})")
