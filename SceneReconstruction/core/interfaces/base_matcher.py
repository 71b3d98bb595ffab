"""
Base interface for feature matchers.

A matcher is handed the features of every image, decides which pairs to
match, and returns the verified correspondences of each pair. How it
schedules, caches or parallelises the work is up to the implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..structures.camera_intrinsics_prior import CameraIntrinsicsPrior
from ..structures.twoview_info import TwoViewInfo
from ..structures.types import FeatureCorrespondence


@dataclass
class ImagePairMatch:
    """Verified matches between two images, identified by filename"""
    image1: str
    image2: str
    twoview_info: TwoViewInfo = field(default_factory=TwoViewInfo)
    correspondences: List[FeatureCorrespondence] = field(default_factory=list)

    @property
    def num_matches(self) -> int:
        return len(self.correspondences)


class FeatureMatcher(ABC):
    """Abstract matcher fed image by image, then asked to match everything at once"""

    @abstractmethod
    def add_image(self,
                  name: str,
                  keypoints: Optional[np.ndarray] = None,
                  descriptors: Optional[np.ndarray] = None,
                  intrinsics: Optional[CameraIntrinsicsPrior] = None):
        """
        Register an image

        When keypoints and descriptors are omitted the features are expected
        to exist already in the matcher's out-of-core storage.

        Args:
            name: Image filename (unique key)
            keypoints: (N, 2) pixel coordinates
            descriptors: (N, D) descriptors
            intrinsics: Calibration prior of the image
        """
        pass

    @abstractmethod
    def set_image_pairs_to_match(self, pairs: Sequence[Tuple[str, str]]):
        """Restrict matching to the given filename pairs"""
        pass

    @abstractmethod
    def match_images(self) -> List[ImagePairMatch]:
        """Match the registered images and return verified pairs"""
        pass
