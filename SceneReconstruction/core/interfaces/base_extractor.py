"""
Base interface for keypoint detection and descriptor extraction.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple

import cv2
import numpy as np


class DescriptorExtractor(ABC):
    """
    Abstract keypoint detector + descriptor extractor.

    Implementations are not required to be reentrant; the pipeline creates one
    instance per extraction task.
    """

    def __init__(self):
        self.name = self.__class__.__name__

    @abstractmethod
    def detect_and_extract_descriptors(self, image: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """
        Detect keypoints and compute their descriptors

        Args:
            image: Input image (BGR or grayscale)

        Returns:
            (keypoints (N, 2) pixel coordinates, descriptors (N, D)), sorted by
            decreasing detector response, or None if extraction failed
        """
        pass

    def preprocess_image(self, image: np.ndarray) -> np.ndarray:
        """Convert the image to 8-bit grayscale"""
        if image.ndim == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        if image.dtype != np.uint8:
            image = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
        return image
