"""
Calibration priors attached to an image before reconstruction.

A prior holds whatever is known about a camera's intrinsics (from EXIF, a
calibration file, or the caller) together with an is_set flag per parameter.
"""

import copy
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Prior:
    """A single prior value and whether it has been provided"""
    value: Any = 0.0
    is_set: bool = False

    def set(self, value):
        self.value = value
        self.is_set = True

    def reset(self):
        self.is_set = False


@dataclass
class CameraIntrinsicsPrior:
    """
    Calibration guesses for one view.

    Attributes:
        image_width: Image width in pixels (0 when unknown)
        image_height: Image height in pixels (0 when unknown)
        focal_length: Focal length in pixels
        principal_point: (x, y) principal point in pixels
        aspect_ratio: fy / fx
        skew: Pixel skew
        radial_distortion: (k1, k2) coefficients
    """
    image_width: int = 0
    image_height: int = 0
    focal_length: Prior = field(default_factory=lambda: Prior(0.0))
    principal_point: Prior = field(default_factory=lambda: Prior([0.0, 0.0]))
    aspect_ratio: Prior = field(default_factory=lambda: Prior(1.0))
    skew: Prior = field(default_factory=lambda: Prior(0.0))
    radial_distortion: Prior = field(default_factory=lambda: Prior([0.0, 0.0]))

    def has_image_size(self) -> bool:
        return self.image_width > 0 and self.image_height > 0

    def copy(self) -> 'CameraIntrinsicsPrior':
        return copy.deepcopy(self)

    @classmethod
    def from_focal_length(cls, focal_length: float, image_width: int = 0,
                          image_height: int = 0) -> 'CameraIntrinsicsPrior':
        prior = cls(image_width=image_width, image_height=image_height)
        prior.focal_length.set(float(focal_length))
        return prior
